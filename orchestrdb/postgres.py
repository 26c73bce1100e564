"""
PostgreSQL administrative command executor

Every operation opens its own autocommit connection and closes it before
returning; nothing is pooled across passes. Statements run strictly in order.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Optional

import psycopg2
from psycopg2 import errors as pg_errors
from psycopg2 import sql

from .config import Config, RESET, WHITE
from .errors import Cancelled, TransportError
from .grants import Grant, plan_grant

logger = logging.getLogger("orchestrdb.postgres")


@dataclass(frozen=True)
class AdminTarget:
    """Server address plus the admin identity used to reach it"""
    host: str
    port: int
    user: str
    password: str
    ssl_mode: str = "disable"

    def __repr__(self):
        return (f"AdminTarget(host={self.host!r}, port={self.port}, user={self.user!r}, "
                f"ssl_mode={self.ssl_mode!r})")


class Cancellation:
    """
    Cancellation signal for one reconcile pass

    Connections opened during the pass are attached while in use; cancel()
    interrupts whatever statement they are running and makes every later
    statement raise Cancelled.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._connections = set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()
        with self._lock:
            connections = list(self._connections)
        for conn in connections:
            try:
                conn.cancel()
            except psycopg2.Error as e:
                logger.warning(f"Failed to cancel in-flight statement: {e}")

    def check(self):
        if self._event.is_set():
            raise Cancelled("reconcile pass cancelled")

    @contextmanager
    def attached(self, conn):
        with self._lock:
            self._connections.add(conn)
        try:
            yield conn
        finally:
            with self._lock:
                self._connections.discard(conn)


class AdminSession:
    """A single administrative connection bound to one database"""

    def __init__(self, conn, cancel: Cancellation):
        self.conn = conn
        self.cancel = cancel

    def execute(self, statement, params=None):
        self.cancel.check()
        with self.conn.cursor() as cur:
            cur.execute(statement, params)

    def fetch_one(self, statement, params=None):
        self.cancel.check()
        with self.conn.cursor() as cur:
            cur.execute(statement, params)
            return cur.fetchone()


class PostgresExecutor:
    """Handles all PostgreSQL administrative operations"""

    def __init__(self, admin_database: str = None, schema: str = None, connect=None,
                 connect_timeout: int = None):
        self.admin_database = admin_database or Config.ADMIN_DATABASE
        self.schema = schema or Config.DEFAULT_SCHEMA
        self.connect_timeout = Config.CONNECT_TIMEOUT if connect_timeout is None else connect_timeout
        self._connect = connect or psycopg2.connect

    @contextmanager
    def session(self, target: AdminTarget, dbname: str, cancel: Cancellation):
        """Open an autocommit session on dbname, closed when the block exits"""
        cancel.check()
        try:
            conn = self._connect(
                host=target.host,
                port=target.port,
                dbname=dbname,
                user=target.user,
                password=target.password,
                sslmode=target.ssl_mode,
                connect_timeout=self.connect_timeout,
            )
        except psycopg2.Error as e:
            raise TransportError(f"postgres connection error: {e}".strip()) from e

        try:
            # CREATE DATABASE cannot run inside a transaction block
            conn.autocommit = True
            with cancel.attached(conn):
                yield AdminSession(conn, cancel)
        finally:
            conn.close()

    def _failure(self, action: str, error: psycopg2.Error, cancel: Cancellation) -> TransportError:
        if cancel.cancelled:
            return Cancelled(f"{action} cancelled")
        message = (getattr(error, "pgerror", None) or str(error)).strip()
        return TransportError(f"{action} error: {message}")

    def create_database(self, target: AdminTarget, name: str,
                        cancel: Optional[Cancellation] = None) -> bool:
        """
        Ensure a database exists

        Args:
            target: Server and admin identity
            name: Database to create
            cancel: Cancellation signal of the calling pass

        Returns:
            True if the database was created, False if it already existed

        Raises:
            TransportError: connection or statement failed for any other reason
        """
        cancel = cancel or Cancellation()
        try:
            with self.session(target, self.admin_database, cancel) as session:
                session.execute(sql.SQL("CREATE DATABASE {};").format(sql.Identifier(name)))
        except pg_errors.DuplicateDatabase:
            logger.info(f"Database already exists: {name}")
            return False
        except psycopg2.Error as e:
            logger.error(f"Error creating database {name}: {e}")
            raise self._failure("create database", e, cancel) from e

        logger.info(f"{WHITE}Created database: {name}{RESET}")
        return True

    def ensure_user(self, target: AdminTarget, username: str, password: str,
                    grants: Iterable[Grant], cancel: Optional[Cancellation] = None):
        """
        Create or update a login role and apply its grants in order

        Args:
            target: Server and admin identity
            username: Role to create or update
            password: Password to (re)apply, masked in logs
            grants: Normalized access rules, applied in the given order
            cancel: Cancellation signal of the calling pass

        Raises:
            TransportError: any connection or statement failure; grants
                already applied stay in place
        """
        cancel = cancel or Cancellation()
        try:
            with self.session(target, self.admin_database, cancel) as admin:
                self._upsert_role(admin, username, password)
                for grant in grants:
                    self._apply_grant(target, admin, username, grant, cancel)
        except psycopg2.Error as e:
            logger.error(f"Error ensuring user {username}: {e}")
            raise self._failure("ensure user", e, cancel) from e

    def _upsert_role(self, admin: AdminSession, username: str, password: str):
        exists = admin.fetch_one("SELECT 1 FROM pg_roles WHERE rolname = %s;", (username,))
        if not exists:
            try:
                admin.execute(
                    sql.SQL("CREATE ROLE {} WITH LOGIN PASSWORD %s;").format(sql.Identifier(username)),
                    (password,),
                )
                logger.info(f"{WHITE}Created user: {username}{RESET}")
                return
            except pg_errors.DuplicateObject:
                logger.info(f"Role {username} appeared concurrently, updating password instead")

        admin.execute(
            sql.SQL("ALTER ROLE {} WITH PASSWORD %s;").format(sql.Identifier(username)),
            (password,),
        )
        logger.info(f"{WHITE}Updated password for user: {username}{RESET}")

    def _apply_grant(self, target: AdminTarget, admin: AdminSession, username: str,
                     grant: Grant, cancel: Cancellation):
        plan = plan_grant(grant, username, self.schema)
        if plan.empty:
            logger.debug(f"Skipping {grant.scope.value} rule without dbName for {username}")
            return

        for statement in plan.database:
            admin.execute(statement)

        if plan.tables:
            with self.session(target, grant.db_name, cancel) as session:
                for statement in plan.tables:
                    session.execute(statement)

        logger.info(f"  ↳ Granted {grant.role.value} ({grant.scope.value}) "
                    f"on {grant.db_name} to {username}")
