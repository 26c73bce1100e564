#!/usr/bin/env python3
"""
Tests for admin credential resolution
"""

import sys

from orchestrdb.credentials import AdminCredentials, CredentialResolver
from orchestrdb.errors import KeyMissing, ResourceNotFound, ValidationError
from orchestrdb.models import DatabaseSpec, UserSpec


class SecretStore:
    """Minimal store serving Secrets from a dict"""

    def __init__(self, secrets=None):
        self.secrets = secrets or {}
        self.reads = []

    def get_secret(self, name, namespace):
        self.reads.append((namespace, name))
        try:
            data = self.secrets[(namespace, name)]
        except KeyError:
            raise ResourceNotFound("Secret", name, namespace)
        return {k: v if isinstance(v, bytes) else v.encode() for k, v in data.items()}


def database_spec(**overrides):
    data = {"host": "db", "port": 5432, "name": "orders"}
    data.update(overrides)
    return DatabaseSpec.from_dict(data)


def test_inline_credentials():
    print("🧪 Testing inline credentials...")

    resolver = CredentialResolver(SecretStore())
    creds = resolver.resolve(database_spec(adminUser="admin", adminPassword="pw"), "team-a")
    assert creds == AdminCredentials("admin", "pw")
    assert "pw" not in repr(creds), "password must not leak through repr"

    print("✅ Inline credential tests passed!")


def test_inline_credentials_incomplete():
    print("\n🧪 Testing incomplete inline credentials...")

    resolver = CredentialResolver(SecretStore())
    for overrides in ({}, {"adminUser": "admin"}, {"adminPassword": "pw"}):
        try:
            resolver.resolve(database_spec(**overrides), "team-a")
            assert False, f"should fail for {overrides}"
        except ValidationError as e:
            assert "adminUser/adminPassword or adminSecretRef" in str(e)

    print("✅ Incomplete credential tests passed!")


def test_secret_ref_wins_over_inline():
    print("\n🧪 Testing secret reference precedence...")

    store = SecretStore({("team-a", "pg-admin"): {"username": "root", "password": "from-secret"}})
    resolver = CredentialResolver(store)
    spec = database_spec(adminUser="admin", adminPassword="inline",
                         adminSecretRef={"name": "pg-admin"})

    creds = resolver.resolve(spec, "team-a")
    assert creds == AdminCredentials("root", "from-secret"), "secret values used verbatim"
    assert store.reads == [("team-a", "pg-admin")], "namespace defaults to the owner's"

    print("✅ Precedence tests passed!")


def test_secret_ref_namespace_and_keys():
    print("\n🧪 Testing explicit namespace and keys...")

    store = SecretStore({("infra", "pg-admin"): {"login": "root", "pass": "x"}})
    spec = database_spec(adminSecretRef={
        "name": "pg-admin", "namespace": "infra", "userKey": "login", "passwordKey": "pass",
    })
    assert CredentialResolver(store).resolve(spec, "team-a") == AdminCredentials("root", "x")

    print("✅ Namespace and key tests passed!")


def test_missing_secret_and_keys():
    print("\n🧪 Testing missing secret and keys...")

    resolver = CredentialResolver(SecretStore({("team-a", "pg-admin"): {"password": "x"}}))

    try:
        resolver.resolve(database_spec(adminSecretRef={"name": "nope"}), "team-a")
        assert False, "missing secret should fail"
    except ResourceNotFound as e:
        assert '"nope"' in str(e)

    try:
        resolver.resolve(database_spec(adminSecretRef={"name": "pg-admin"}), "team-a")
        assert False, "missing key should fail"
    except KeyMissing as e:
        assert e.key == "username"
        assert '"username"' in str(e), "message names the missing key"

    try:
        resolver.resolve(database_spec(adminSecretRef={"name": "pg-admin", "userKey": "password",
                                                       "passwordKey": "secret"}), "team-a")
        assert False, "missing password key should fail"
    except KeyMissing as e:
        assert e.key == "secret"

    print("✅ Missing secret tests passed!")


def test_secret_values_must_be_utf8():
    print("\n🧪 Testing undecodable secret values...")

    store = SecretStore({("team-a", "pg-admin"): {
        "username": "root", "password": b"\xff\xfe\x00", "tls.der": b"\x30\x82\xff",
    }})
    resolver = CredentialResolver(store)

    try:
        resolver.resolve(database_spec(adminSecretRef={"name": "pg-admin"}), "team-a")
        assert False, "undecodable password should fail"
    except ValidationError as e:
        assert '"password"' in str(e) and "UTF-8" in str(e), "message names the bad key"

    store.secrets[("team-a", "pg-admin")]["password"] = "pw"
    creds = resolver.resolve(database_spec(adminSecretRef={"name": "pg-admin"}), "team-a")
    assert creds == AdminCredentials("root", "pw"), "other binary keys are ignored"

    print("✅ UTF-8 tests passed!")


def test_resolution_is_not_cached():
    print("\n🧪 Testing fresh resolution on every call...")

    store = SecretStore({("team-a", "pg-admin"): {"username": "root", "password": "v1"}})
    resolver = CredentialResolver(store)
    spec = UserSpec.from_dict({
        "host": "db", "port": 5432, "username": "alice",
        "generatedSecret": {"name": "alice-creds"},
        "adminSecretRef": {"name": "pg-admin"},
    })

    assert resolver.resolve(spec, "team-a").password == "v1"
    store.secrets[("team-a", "pg-admin")]["password"] = "v2"
    assert resolver.resolve(spec, "team-a").password == "v2", "rotated secret seen next time"

    print("✅ No-cache tests passed!")


def main():
    """Run all tests"""
    try:
        test_inline_credentials()
        test_inline_credentials_incomplete()
        test_secret_ref_wins_over_inline()
        test_secret_ref_namespace_and_keys()
        test_missing_secret_and_keys()
        test_secret_values_must_be_utf8()
        test_resolution_is_not_cached()
        print("\n✅ All credential tests passed!")
        return 0
    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
