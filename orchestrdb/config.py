"""
Controller configuration

All settings are read from environment variables once, at import time.
"""

import os

# ANSI color codes
BLUE = "\033[94m"
RED = "\033[91m"
WHITE = "\033[97m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RESET = "\033[0m"

# Delay before a failed pass is redelivered
RETRY_DELAY_SECONDS = 30


class Config:
    """Controller configuration loaded from environment variables"""

    # Kubernetes settings
    WATCH_NAMESPACE = os.getenv("WATCH_NAMESPACE", "")
    API_GROUP = os.getenv("API_GROUP", "orchestrdb.mertsaygi.net")
    API_VERSION = os.getenv("API_VERSION", "v1alpha1")

    # PostgreSQL settings
    ADMIN_DATABASE = os.getenv("ADMIN_DATABASE", "postgres")
    DEFAULT_SCHEMA = os.getenv("DEFAULT_SCHEMA", "public")
    DATABASE_SSL_MODE = os.getenv("DATABASE_SSL_MODE", "disable")
    USER_SSL_MODE = os.getenv("USER_SSL_MODE", "require")
    PASSWORD_LENGTH = int(os.getenv("PASSWORD_LENGTH", "32"))
    # Seconds, 0 waits forever; a pending connect cannot be cancelled
    CONNECT_TIMEOUT = int(os.getenv("CONNECT_TIMEOUT", "10"))

    # Controller settings
    SYNC_INTERVAL = int(os.getenv("SYNC_INTERVAL", "30"))
    WORKERS = int(os.getenv("WORKERS", "4"))
    MAX_RETRIES = int(os.getenv("MAX_RETRIES", "5"))
    RETRY_BACKOFF_BASE = float(os.getenv("RETRY_BACKOFF_BASE", "2.0"))
    MAX_BACKOFF = float(os.getenv("MAX_BACKOFF", "300"))

    # Leader election
    LEADER_ELECT = os.getenv("LEADER_ELECT", "false").lower() == "true"
    LEADER_ELECTION_ID = os.getenv("LEADER_ELECTION_ID", "orchestrdb-operator.mertsaygi.net")
    LEADER_ELECTION_NAMESPACE = os.getenv("LEADER_ELECTION_NAMESPACE",
                                          os.getenv("POD_NAMESPACE", "default"))
    LEASE_DURATION = int(os.getenv("LEASE_DURATION", "15"))
    LEASE_RETRY_PERIOD = float(os.getenv("LEASE_RETRY_PERIOD", "2"))

    # Observability
    METRICS_PORT = int(os.getenv("METRICS_PORT", "8080"))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
