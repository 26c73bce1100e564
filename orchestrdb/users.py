"""
User convergence

Owns the generated credential Secret: it is created once, never overwritten,
and holds the password that was applied to the database role in the same
pass.
"""

import logging
import secrets
import string
from typing import Optional

from .config import Config
from .credentials import AdminCredentials
from .errors import ResourceConflict
from .grants import normalize_access
from .models import ObjectMeta, UserSpec
from .postgres import AdminTarget, Cancellation, PostgresExecutor

logger = logging.getLogger("orchestrdb.users")

PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()-_=+"

SECRET_EXISTS_MESSAGE = "generatedSecret already exists; refusing to overwrite"
SECRET_RACE_MESSAGE = "generatedSecret already exists during create"


def generate_password(length: int = 32) -> str:
    """Random password, every character drawn uniformly from PASSWORD_ALPHABET"""
    if length < 1:
        raise ValueError("password length must be positive")
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def generated_secret_namespace(meta: ObjectMeta, spec: UserSpec) -> str:
    return spec.generated_secret.namespace or meta.namespace


class UserEngine:
    """Creates the generated Secret, the login role and its grants"""

    def __init__(self, store, executor: PostgresExecutor, password_length: int = None):
        self.store = store
        self.executor = executor
        self.password_length = password_length or Config.PASSWORD_LENGTH

    def check_secret_absent(self, meta: ObjectMeta, spec: UserSpec):
        """
        Make sure the destination Secret does not exist yet

        Raises:
            ResourceConflict: the Secret already exists
            StoreError: the existence check itself failed
        """
        namespace = generated_secret_namespace(meta, spec)
        if not self.store.secret_exists(spec.generated_secret.name, namespace):
            return
        logger.error(f"{SECRET_EXISTS_MESSAGE}: {namespace}/{spec.generated_secret.name}")
        raise ResourceConflict(SECRET_EXISTS_MESSAGE)

    def ensure_user(self, meta: ObjectMeta, spec: UserSpec, creds: AdminCredentials,
                    cancel: Optional[Cancellation] = None):
        """
        Run the user convergence steps in order

        Each step's failure aborts the rest; finished steps are not undone.

        Raises:
            UnsupportedValue: an access rule has an unknown role or scope
            ResourceConflict: another actor created the Secret first
            StoreError: creating the Secret failed
            TransportError: role or grant statements failed
        """
        grants = normalize_access(spec.access)

        password = generate_password(self.password_length)

        namespace = generated_secret_namespace(meta, spec)
        try:
            self.store.create_secret(
                spec.generated_secret.name,
                namespace,
                {"username": spec.username, "password": password},
            )
        except ResourceConflict:
            logger.error(f"{SECRET_RACE_MESSAGE}: {namespace}/{spec.generated_secret.name}")
            raise ResourceConflict(SECRET_RACE_MESSAGE) from None

        target = AdminTarget(spec.host, spec.port, creds.user, creds.password, spec.ssl_mode)
        self.executor.ensure_user(target, spec.username, password, grants, cancel)
