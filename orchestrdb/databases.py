"""Database convergence: make sure a named database exists."""

import logging
from typing import Optional

from .credentials import AdminCredentials
from .postgres import AdminTarget, Cancellation, PostgresExecutor

logger = logging.getLogger("orchestrdb.databases")


class DatabaseEngine:

    def __init__(self, executor: PostgresExecutor):
        self.executor = executor

    def ensure_database(self, host: str, port: int, creds: AdminCredentials, name: str,
                        ssl_mode: str, cancel: Optional[Cancellation] = None) -> bool:
        """
        Converge a database into existence. Safe to call repeatedly.

        Returns:
            True once the database exists, whether created now or before

        Raises:
            TransportError: the server could not be reached or refused the statement
        """
        target = AdminTarget(host, port, creds.user, creds.password, ssl_mode)
        newly_created = self.executor.create_database(target, name, cancel)
        if not newly_created:
            logger.debug(f"Database {name} on {host}:{port} already present")
        return True
