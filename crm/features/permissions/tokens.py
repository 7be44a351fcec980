"""
Permission tokens of the form ``entity:action[:scope]``.

Examples: ``account:read:own``, ``deal:update:assigned``, ``organization:create``.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from crm.features.permissions.errors import UnknownPermission


class Entity(str, enum.Enum):
    ORGANIZATION = "organization"
    ACCOUNT = "account"
    CONTACT = "contact"
    DEAL = "deal"
    PROJECT = "project"
    TASK = "task"
    ACTIVITY = "activity"
    SYSTEM = "system"


class Action(str, enum.Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


class Scope(str, enum.Enum):
    ALL = "all"
    OWN = "own"            # resource's owning account is one of the principal's accounts
    ASSIGNED = "assigned"  # resource is assigned to the principal
    MEMBER = "member"      # principal is a recorded member of the resource

    @property
    def is_narrow(self) -> bool:
        return self is not Scope.ALL


@dataclass(frozen=True)
class Permission:
    """A single capability, e.g. ``Permission(Entity.ACCOUNT, Action.READ, Scope.OWN)``."""
    entity: Entity
    action: Action
    scope: Scope | None = None

    @classmethod
    def parse(cls, token: "str | Permission") -> Permission:
        """
        Parse a token string.

        Raises:
            UnknownPermission: malformed token or unknown entity/action/scope
        """
        if isinstance(token, Permission):
            return token
        if not isinstance(token, str):
            raise UnknownPermission(f"Permission token must be a string, got {type(token).__name__}")

        parts = token.strip().lower().split(":")
        if len(parts) not in (2, 3) or not all(parts):
            raise UnknownPermission(f"Malformed permission token: {token!r}")

        try:
            entity = Entity(parts[0])
            action = Action(parts[1])
            scope = Scope(parts[2]) if len(parts) == 3 else None
        except ValueError:
            raise UnknownPermission(f"Unknown permission token: {token!r}")

        return cls(entity, action, scope)

    @property
    def family(self) -> tuple[Entity, Action]:
        return (self.entity, self.action)

    @property
    def is_broad(self) -> bool:
        """Unscoped and ``:all`` tokens grant organization-wide rights."""
        return self.scope is None or self.scope is Scope.ALL

    def __str__(self) -> str:
        token = f"{self.entity.value}:{self.action.value}"
        if self.scope is not None:
            token = f"{token}:{self.scope.value}"
        return token
