"""
Registry of the custom resource kinds served by the controller

Built once in main() and handed to the store, the manager and the CRD
renderer. Nothing registers itself at import time.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Type

from .models import DatabaseSpec, UserSpec


@dataclass(frozen=True)
class ResourceKind:
    kind: str
    plural: str
    singular: str
    group: str
    version: str
    spec_type: Type
    short_names: tuple = ()

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"

    @property
    def crd_name(self) -> str:
        return f"{self.plural}.{self.group}"


@dataclass
class ResourceRegistry:
    _kinds: Dict[str, ResourceKind] = field(default_factory=dict)

    def register(self, resource_kind: ResourceKind) -> ResourceKind:
        if resource_kind.kind in self._kinds:
            raise ValueError(f"kind {resource_kind.kind} is already registered")
        self._kinds[resource_kind.kind] = resource_kind
        return resource_kind

    def get(self, kind: str) -> ResourceKind:
        try:
            return self._kinds[kind]
        except KeyError:
            raise KeyError(f"unknown resource kind: {kind}") from None

    def kinds(self) -> List[str]:
        return list(self._kinds)

    def __iter__(self) -> Iterator[ResourceKind]:
        return iter(self._kinds.values())

    def __contains__(self, kind: str) -> bool:
        return kind in self._kinds


def build_registry(group: str, version: str) -> ResourceRegistry:
    """Registry holding the Database and User kinds under one API group"""
    registry = ResourceRegistry()
    registry.register(ResourceKind(
        kind="Database",
        plural="databases",
        singular="database",
        group=group,
        version=version,
        spec_type=DatabaseSpec,
        short_names=("pgdb",),
    ))
    registry.register(ResourceKind(
        kind="User",
        plural="users",
        singular="user",
        group=group,
        version=version,
        spec_type=UserSpec,
        short_names=("pguser",),
    ))
    return registry
