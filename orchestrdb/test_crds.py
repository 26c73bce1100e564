#!/usr/bin/env python3
"""
Tests for the registry and CRD rendering
"""

import io
import sys
from unittest.mock import patch

import yaml

from orchestrdb.crds import render_crds
from orchestrdb.main import main as entry_point
from orchestrdb.models import DatabaseSpec, UserSpec
from orchestrdb.registry import ResourceKind, ResourceRegistry, build_registry


def test_registry():
    print("🧪 Testing ResourceRegistry...")

    registry = build_registry("example.org", "v1")
    assert registry.kinds() == ["Database", "User"]
    assert registry.get("User").spec_type is UserSpec
    assert registry.get("Database").crd_name == "databases.example.org"
    assert "Database" in registry

    try:
        registry.register(ResourceKind("User", "users", "user", "example.org", "v1", UserSpec))
        assert False, "duplicate kind should fail"
    except ValueError:
        pass

    try:
        ResourceRegistry().get("Database")
        assert False, "empty registry knows nothing"
    except KeyError:
        pass

    other = build_registry("example.org", "v1")
    assert other is not registry and other.get("Database").spec_type is DatabaseSpec, \
        "registries are independent objects"

    print("✅ Registry tests passed!")


def test_render_crds():
    print("\n🧪 Testing CRD rendering...")

    documents = list(yaml.safe_load_all(render_crds(build_registry("example.org", "v1alpha1"))))
    assert [d["spec"]["names"]["kind"] for d in documents] == ["Database", "User"]

    for doc in documents:
        assert doc["kind"] == "CustomResourceDefinition"
        version = doc["spec"]["versions"][0]
        assert version["name"] == "v1alpha1"
        assert version["subresources"] == {"status": {}}, "status is a subresource"
        status = version["schema"]["openAPIV3Schema"]["properties"]["status"]["properties"]
        assert set(status) == {"created", "lastError", "updatedAt", "observedGeneration"}

    user_spec = documents[1]["spec"]["versions"][0]["schema"]["openAPIV3Schema"]["properties"]["spec"]
    assert "generatedSecret" in user_spec["required"]
    assert set(user_spec["properties"]["access"]["items"]["properties"]) == {"dbName", "role", "scope"}

    print("✅ CRD rendering tests passed!")


def test_crds_command():
    print("\n🧪 Testing crds command...")

    with patch("sys.stdout", new_callable=io.StringIO) as out:
        assert entry_point(["crds"]) == 0
    assert out.getvalue().count("kind: CustomResourceDefinition") == 2

    print("✅ crds command tests passed!")


def main():
    """Run all tests"""
    try:
        test_registry()
        test_render_crds()
        test_crds_command()
        print("\n✅ All CRD tests passed!")
        return 0
    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
