"""Exception types raised across the controller."""

from typing import Iterable


class OrchestrDBError(Exception):
    """Base class for every error the controller raises on purpose"""


class ValidationError(OrchestrDBError):
    """A resource spec is missing required values or carries invalid ones"""


class UnsupportedValue(ValidationError):
    def __init__(self, field: str, value: str, allowed: Iterable[str]):
        self.field = field
        self.value = value
        self.allowed = tuple(allowed)
        super().__init__(
            f"unsupported {field} {value!r} (allowed: {', '.join(self.allowed)})"
        )


class ResourceNotFound(OrchestrDBError):
    def __init__(self, kind: str, name: str, namespace: str):
        self.kind = kind
        self.name = name
        self.namespace = namespace
        super().__init__(f'{kind} "{name}" not found in namespace "{namespace}"')


class KeyMissing(OrchestrDBError):
    def __init__(self, key: str, secret_name: str, what: str = "value"):
        self.key = key
        self.secret_name = secret_name
        super().__init__(
            f'admin {what} key "{key}" not found in adminSecretRef "{secret_name}"'
        )


class ResourceConflict(OrchestrDBError):
    """An object the controller must create already exists"""


class StoreError(OrchestrDBError):
    """The Kubernetes API rejected or failed a request"""


class TransportError(OrchestrDBError):
    """An administrative connection or statement failed"""


class Cancelled(TransportError):
    """The pass was cancelled while talking to the database server"""


class StatusWriteError(OrchestrDBError):
    """Persisting the outcome of a pass failed"""
