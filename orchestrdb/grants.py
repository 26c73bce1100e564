"""
Access rule validation and grant planning

Raw access rules are validated once into Role x Scope enumerations. After
that, grant logic only ever works with the enum values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

from psycopg2 import sql

from .errors import UnsupportedValue
from .models import AccessRule


class Role(str, Enum):
    READONLY = "readonly"
    READWRITE = "readwrite"
    OWNER = "owner"


class Scope(str, Enum):
    DATABASE = "database"
    INSTANCE = "instance"


# Table privileges granted in the default schema, per role
TABLE_PRIVILEGES = {
    Role.READONLY: ("SELECT",),
    Role.READWRITE: ("SELECT", "INSERT", "UPDATE", "DELETE"),
    Role.OWNER: ("SELECT", "INSERT", "UPDATE", "DELETE"),
}


@dataclass(frozen=True)
class Grant:
    db_name: str
    role: Role
    scope: Scope


@dataclass
class GrantPlan:
    """Statements for one grant, split by the session they must run in"""
    database: List[sql.Composable] = field(default_factory=list)
    tables: List[sql.Composable] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.database and not self.tables


def normalize_rule(rule: AccessRule) -> Grant:
    """
    Apply defaults and validate a single access rule

    Raises:
        UnsupportedValue: role or scope is not one of the known values
    """
    role_value = rule.role or Role.READONLY.value
    scope_value = rule.scope or Scope.DATABASE.value
    try:
        role = Role(role_value)
    except ValueError:
        raise UnsupportedValue("role", role_value, [r.value for r in Role]) from None
    try:
        scope = Scope(scope_value)
    except ValueError:
        raise UnsupportedValue("scope", scope_value, [s.value for s in Scope]) from None
    return Grant(db_name=rule.db_name, role=role, scope=scope)


def normalize_access(rules: Iterable[AccessRule]) -> List[Grant]:
    return [normalize_rule(rule) for rule in rules]


def plan_grant(grant: Grant, username: str, schema: str = "public") -> GrantPlan:
    """
    Build the GRANT statements for one access rule

    Args:
        grant: Normalized access rule
        username: Role receiving the privileges
        schema: Schema whose tables are granted on

    Returns:
        GrantPlan; empty when the rule names no database
    """
    if not grant.db_name:
        return GrantPlan()

    user = sql.Identifier(username)
    database = sql.Identifier(grant.db_name)
    connect = sql.SQL("GRANT CONNECT ON DATABASE {} TO {};").format(database, user)

    # No instance-wide privileges yet, only CONNECT on the named database
    if grant.scope is Scope.INSTANCE:
        return GrantPlan(database=[connect])

    plan = GrantPlan()
    if grant.role is Role.OWNER:
        plan.database.append(
            sql.SQL("GRANT ALL PRIVILEGES ON DATABASE {} TO {};").format(database, user)
        )
    plan.database.append(connect)

    privileges = sql.SQL(", ").join(sql.SQL(p) for p in TABLE_PRIVILEGES[grant.role])
    plan.tables.append(
        sql.SQL("GRANT USAGE ON SCHEMA {} TO {};").format(sql.Identifier(schema), user)
    )
    plan.tables.append(
        sql.SQL("GRANT {} ON ALL TABLES IN SCHEMA {} TO {};").format(
            privileges, sql.Identifier(schema), user
        )
    )
    return plan
