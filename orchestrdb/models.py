"""
Data models for the Database and User custom resources

Specs are parsed from the raw Kubernetes objects at the boundary and never
mutated afterwards. Status is the only part the controller writes.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import Config
from .errors import ValidationError


def _required(data: Dict[str, Any], key: str, owner: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(f"{owner}.{key} is required")
    return value


def _port(data: Dict[str, Any], owner: str) -> int:
    value = _required(data, "port", owner)
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{owner}.port must be an integer, got {value!r}")
    if not 0 < port < 65536:
        raise ValidationError(f"{owner}.port out of range: {port}")
    return port


# ============================================================================
# METADATA & STATUS
# ============================================================================

@dataclass
class ObjectMeta:
    """The slice of Kubernetes object metadata the controller looks at"""
    name: str
    namespace: str
    generation: int = 0
    deletion_timestamp: Optional[str] = None

    @property
    def deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    @classmethod
    def from_object(cls, obj: Dict[str, Any]) -> "ObjectMeta":
        meta = obj.get("metadata") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            generation=int(meta.get("generation") or 0),
            deletion_timestamp=meta.get("deletionTimestamp"),
        )


@dataclass
class Status:
    """Observed state written back by the controller, same shape for every kind"""
    created: bool = False
    last_error: str = ""
    updated_at: str = ""
    observed_generation: int = 0

    def to_dict(self) -> dict:
        return {
            "created": self.created,
            "lastError": self.last_error,
            "updatedAt": self.updated_at,
            "observedGeneration": self.observed_generation,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Status":
        data = data or {}
        return cls(
            created=bool(data.get("created", False)),
            last_error=data.get("lastError", "") or "",
            updated_at=data.get("updatedAt", "") or "",
            observed_generation=int(data.get("observedGeneration") or 0),
        )


# ============================================================================
# SPECS
# ============================================================================

@dataclass
class SecretRef:
    """Read-only pointer to externally managed admin credentials"""
    name: str
    namespace: str = ""
    user_key: str = "username"
    password_key: str = "password"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SecretRef"]:
        if not data or not data.get("name"):
            return None
        return cls(
            name=data["name"],
            namespace=data.get("namespace") or "",
            user_key=data.get("userKey") or "username",
            password_key=data.get("passwordKey") or "password",
        )


@dataclass
class GeneratedSecretRef:
    """Where the controller writes the generated username/password"""
    name: str
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GeneratedSecretRef":
        data = data or {}
        return cls(
            name=_required(data, "name", "spec.generatedSecret"),
            namespace=data.get("namespace") or "",
        )


@dataclass
class AccessRule:
    """
    One access rule as the resource author wrote it.

    Role and scope stay raw strings here; they are validated into the closed
    Role/Scope enumerations by grants.normalize_access before anything runs.
    """
    db_name: str = ""
    role: str = ""
    scope: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessRule":
        if not isinstance(data, dict):
            raise ValidationError(f"spec.access entries must be objects, got {data!r}")
        return cls(
            db_name=data.get("dbName") or "",
            role=data.get("role") or "",
            scope=data.get("scope") or "",
        )


@dataclass
class DatabaseSpec:
    host: str
    port: int
    name: str
    admin_user: str = ""
    admin_password: str = ""
    admin_secret_ref: Optional[SecretRef] = None
    ssl_mode: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DatabaseSpec":
        data = data or {}
        return cls(
            host=_required(data, "host", "spec"),
            port=_port(data, "spec"),
            name=_required(data, "name", "spec"),
            admin_user=data.get("adminUser") or "",
            admin_password=data.get("adminPassword") or "",
            admin_secret_ref=SecretRef.from_dict(data.get("adminSecretRef")),
            ssl_mode=data.get("sslMode") or Config.DATABASE_SSL_MODE,
        )


@dataclass
class UserSpec:
    host: str
    port: int
    username: str
    generated_secret: GeneratedSecretRef
    access: List[AccessRule] = field(default_factory=list)
    admin_user: str = ""
    admin_password: str = ""
    admin_secret_ref: Optional[SecretRef] = None
    ssl_mode: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "UserSpec":
        data = data or {}
        access = data.get("access") or []
        if not isinstance(access, list):
            raise ValidationError("spec.access must be a list")
        return cls(
            host=_required(data, "host", "spec"),
            port=_port(data, "spec"),
            username=_required(data, "username", "spec"),
            generated_secret=GeneratedSecretRef.from_dict(data.get("generatedSecret")),
            access=[AccessRule.from_dict(rule) for rule in access],
            admin_user=data.get("adminUser") or "",
            admin_password=data.get("adminPassword") or "",
            admin_secret_ref=SecretRef.from_dict(data.get("adminSecretRef")),
            ssl_mode=data.get("sslMode") or Config.USER_SSL_MODE,
        )
