"""
Admin credential resolution

A secret reference always wins over inline adminUser/adminPassword. Nothing
is cached: every pass reads the Secret again so rotated credentials are
picked up on the next trigger.
"""

import logging
from dataclasses import dataclass

from .errors import KeyMissing, ValidationError

logger = logging.getLogger("orchestrdb.credentials")


@dataclass(frozen=True)
class AdminCredentials:
    user: str
    password: str

    def __repr__(self):
        return f"AdminCredentials(user={self.user!r}, password='***')"


def _decode(value: bytes, key: str, secret_name: str, what: str) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        raise ValidationError(
            f'admin {what} key "{key}" in adminSecretRef "{secret_name}" is not valid UTF-8'
        ) from None


class CredentialResolver:
    """Resolves the admin user/password pair for a Database or User spec"""

    def __init__(self, store):
        self.store = store

    def resolve(self, spec, namespace: str) -> AdminCredentials:
        """
        Resolve admin credentials for a spec

        Args:
            spec: DatabaseSpec or UserSpec
            namespace: Namespace of the owning resource

        Returns:
            AdminCredentials

        Raises:
            ResourceNotFound: the referenced Secret does not exist
            KeyMissing: the Secret lacks the user or password key
            ValidationError: no reference and incomplete inline credentials,
                or a referenced key that is not UTF-8
        """
        ref = spec.admin_secret_ref
        if ref is not None:
            secret_namespace = ref.namespace or namespace
            data = self.store.get_secret(ref.name, secret_namespace)

            if ref.user_key not in data:
                raise KeyMissing(ref.user_key, ref.name, "username")
            if ref.password_key not in data:
                raise KeyMissing(ref.password_key, ref.name, "password")

            user = _decode(data[ref.user_key], ref.user_key, ref.name, "username")
            password = _decode(data[ref.password_key], ref.password_key, ref.name, "password")

            logger.debug(f"Resolved admin credentials from secret {secret_namespace}/{ref.name}")
            return AdminCredentials(user, password)

        if not spec.admin_user or not spec.admin_password:
            raise ValidationError("adminUser/adminPassword or adminSecretRef must be provided")

        return AdminCredentials(spec.admin_user, spec.admin_password)
