"""
CustomResourceDefinition manifests for the registered kinds
"""

from typing import Dict, List

import yaml

from .registry import ResourceKind, ResourceRegistry


class _NoAliasDumper(yaml.SafeDumper):
    """Writes shared schema fragments out in full instead of as YAML aliases"""

    def ignore_aliases(self, data):
        return True


_STRING = {"type": "string"}

_SECRET_REF = {
    "type": "object",
    "required": ["name"],
    "properties": {
        "name": _STRING,
        "namespace": _STRING,
        "userKey": _STRING,
        "passwordKey": _STRING,
    },
}

_CONNECTION = {
    "host": _STRING,
    "port": {"type": "integer", "minimum": 1, "maximum": 65535},
    "adminUser": _STRING,
    "adminPassword": _STRING,
    "adminSecretRef": _SECRET_REF,
    "sslMode": {
        "type": "string",
        "enum": ["disable", "allow", "prefer", "require", "verify-ca", "verify-full"],
    },
}

_STATUS = {
    "type": "object",
    "properties": {
        "created": {"type": "boolean"},
        "lastError": _STRING,
        "updatedAt": {"type": "string", "format": "date-time"},
        "observedGeneration": {"type": "integer"},
    },
}

# Role and scope are left open so bad values surface in status, not at admission
SPEC_SCHEMAS = {
    "Database": {
        "type": "object",
        "required": ["host", "port", "name"],
        "properties": dict(_CONNECTION, name=_STRING),
    },
    "User": {
        "type": "object",
        "required": ["host", "port", "username", "generatedSecret"],
        "properties": dict(
            _CONNECTION,
            username=_STRING,
            generatedSecret={
                "type": "object",
                "required": ["name"],
                "properties": {"name": _STRING, "namespace": _STRING},
            },
            access={
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {"dbName": _STRING, "role": _STRING, "scope": _STRING},
                },
            },
        ),
    },
}


def crd_manifest(rk: ResourceKind) -> Dict:
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": rk.crd_name},
        "spec": {
            "group": rk.group,
            "scope": "Namespaced",
            "names": {
                "kind": rk.kind,
                "listKind": f"{rk.kind}List",
                "plural": rk.plural,
                "singular": rk.singular,
                "shortNames": list(rk.short_names),
            },
            "versions": [{
                "name": rk.version,
                "served": True,
                "storage": True,
                "subresources": {"status": {}},
                "additionalPrinterColumns": [
                    {"name": "Created", "type": "boolean", "jsonPath": ".status.created"},
                    {"name": "Error", "type": "string", "jsonPath": ".status.lastError"},
                    {"name": "Updated", "type": "string", "jsonPath": ".status.updatedAt"},
                ],
                "schema": {
                    "openAPIV3Schema": {
                        "type": "object",
                        "properties": {
                            "spec": SPEC_SCHEMAS[rk.kind],
                            "status": _STATUS,
                        },
                    },
                },
            }],
        },
    }


def render_crds(registry: ResourceRegistry) -> str:
    """All CRDs of the registry as one multi-document YAML string"""
    manifests: List[Dict] = [crd_manifest(rk) for rk in registry]
    return yaml.dump_all(manifests, Dumper=_NoAliasDumper, sort_keys=False)
