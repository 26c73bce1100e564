#!/usr/bin/env python3
"""
Tests for access rule normalization and grant planning

Statements are rendered without a database connection by walking the
psycopg2.sql composition tree.
"""

import sys

from psycopg2 import sql

from orchestrdb.errors import UnsupportedValue
from orchestrdb.grants import Grant, Role, Scope, normalize_access, normalize_rule, plan_grant
from orchestrdb.models import AccessRule


def render(statement) -> str:
    """Render a psycopg2.sql object the way the server would receive it"""
    if isinstance(statement, str):
        return statement
    if isinstance(statement, sql.Composed):
        return "".join(render(part) for part in statement.seq)
    if isinstance(statement, sql.SQL):
        return statement.string
    if isinstance(statement, sql.Identifier):
        return ".".join(f'"{s}"' for s in statement.strings)
    raise TypeError(f"cannot render {statement!r}")


def test_defaults():
    print("🧪 Testing access rule defaults...")

    grant = normalize_rule(AccessRule(db_name="orders"))
    assert grant == Grant("orders", Role.READONLY, Scope.DATABASE), "role/scope should default"

    grant = normalize_rule(AccessRule(db_name="orders", role="owner", scope="instance"))
    assert grant.role is Role.OWNER
    assert grant.scope is Scope.INSTANCE

    print("✅ Defaults tests passed!")


def test_unsupported_values():
    print("\n🧪 Testing unsupported role and scope...")

    try:
        normalize_rule(AccessRule(db_name="orders", role="superuser"))
        assert False, "unsupported role should raise"
    except UnsupportedValue as e:
        assert e.field == "role"
        assert "superuser" in str(e)

    try:
        normalize_access([AccessRule(db_name="a"), AccessRule(db_name="b", scope="cluster")])
        assert False, "unsupported scope should raise"
    except UnsupportedValue as e:
        assert e.field == "scope"
        assert "cluster" in str(e)

    print("✅ Unsupported value tests passed!")


def test_readonly_plan():
    print("\n🧪 Testing readonly plan...")

    plan = plan_grant(Grant("orders", Role.READONLY, Scope.DATABASE), "alice")
    assert [render(s) for s in plan.database] == [
        'GRANT CONNECT ON DATABASE "orders" TO "alice";',
    ]
    assert [render(s) for s in plan.tables] == [
        'GRANT USAGE ON SCHEMA "public" TO "alice";',
        'GRANT SELECT ON ALL TABLES IN SCHEMA "public" TO "alice";',
    ]

    print("✅ Readonly plan tests passed!")


def test_readwrite_plan():
    print("\n🧪 Testing readwrite plan...")

    plan = plan_grant(Grant("orders", Role.READWRITE, Scope.DATABASE), "alice", schema="app")
    assert [render(s) for s in plan.database] == [
        'GRANT CONNECT ON DATABASE "orders" TO "alice";',
    ]
    assert [render(s) for s in plan.tables] == [
        'GRANT USAGE ON SCHEMA "app" TO "alice";',
        'GRANT SELECT, INSERT, UPDATE, DELETE ON ALL TABLES IN SCHEMA "app" TO "alice";',
    ]

    print("✅ Readwrite plan tests passed!")


def test_owner_falls_through_to_readwrite():
    print("\n🧪 Testing owner plan...")

    owner = plan_grant(Grant("orders", Role.OWNER, Scope.DATABASE), "alice")
    readwrite = plan_grant(Grant("orders", Role.READWRITE, Scope.DATABASE), "alice")

    assert [render(s) for s in owner.database] == [
        'GRANT ALL PRIVILEGES ON DATABASE "orders" TO "alice";',
        'GRANT CONNECT ON DATABASE "orders" TO "alice";',
    ], "owner grants all privileges first, then readwrite"
    assert [render(s) for s in owner.tables] == [render(s) for s in readwrite.tables]

    print("✅ Owner plan tests passed!")


def test_instance_scope_only_connects():
    print("\n🧪 Testing instance scope...")

    plan = plan_grant(Grant("orders", Role.OWNER, Scope.INSTANCE), "alice")
    assert [render(s) for s in plan.database] == [
        'GRANT CONNECT ON DATABASE "orders" TO "alice";',
    ]
    assert plan.tables == []

    print("✅ Instance scope tests passed!")


def test_empty_db_name_is_noop():
    print("\n🧪 Testing rules without dbName...")

    assert plan_grant(Grant("", Role.READWRITE, Scope.DATABASE), "alice").empty
    assert plan_grant(Grant("", Role.READONLY, Scope.INSTANCE), "alice").empty

    print("✅ Empty dbName tests passed!")


def test_identifiers_are_quoted():
    print("\n🧪 Testing identifier quoting...")

    plan = plan_grant(Grant('we"ird', Role.READONLY, Scope.INSTANCE), "bob")
    statement = plan.database[0]
    assert isinstance(statement, sql.Composed)
    identifiers = [part for part in statement.seq if isinstance(part, sql.Identifier)]
    assert [i.strings for i in identifiers] == [('we"ird',), ("bob",)], \
        "names must travel as identifiers, never as raw SQL"

    print("✅ Quoting tests passed!")


def main():
    """Run all tests"""
    try:
        test_defaults()
        test_unsupported_values()
        test_readonly_plan()
        test_readwrite_plan()
        test_owner_falls_through_to_readwrite()
        test_instance_scope_only_connects()
        test_empty_db_name_is_noop()
        test_identifiers_are_quoted()
        print("\n✅ All grant tests passed!")
        return 0
    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
