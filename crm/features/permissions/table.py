"""
Role -> permission table.

The table is static, versioned configuration. The built-in default can be
replaced with a JSON file (``ROLE_PERMISSIONS_PATH``) of the form::

    {
        "version": "2",
        "roles": {
            "USER": ["account:read:own", "..."],
            "ADMIN": ["..."]
        }
    }

Every table is validated on load: unknown roles, unparseable tokens and a
non-monotonic hierarchy are rejected with ConfigurationError.
"""
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

from crm.core import config
from crm.features.permissions.errors import ConfigurationError, UnknownPermission
from crm.features.permissions.roles import Role
from crm.features.permissions.tokens import Action, Entity, Permission, Scope
from crm.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Built-in configuration
# ============================================================================

DEFAULT_VERSION = "1"

_USER = [
    "organization:read",
    "account:create",
    "account:read:own",
    "account:update:own",
    "contact:create",
    "contact:read:own",
    "contact:update:own",
    "deal:create",
    "deal:read:assigned",
    "deal:update:assigned",
    "project:read:member",
    "project:update:member",
    "task:create",
    "task:read:assigned",
    "task:update:assigned",
    "activity:create",
    "activity:read:assigned",
]

_ADMIN = [
    "organization:read",
    "account:create",
    "account:read:all",
    "account:update:all",
    # Narrower of the two readings; org-wide account deletion stays with OWNER.
    "account:delete:own",
    "contact:create",
    "contact:read:all",
    "contact:update:all",
    "contact:delete:all",
    "deal:create",
    "deal:read:all",
    "deal:update:all",
    "deal:delete:all",
    "project:create",
    "project:read:all",
    "project:update:all",
    "project:delete:all",
    "task:create",
    "task:read:all",
    "task:update:all",
    "task:delete:all",
    "activity:create",
    "activity:read:all",
]

_OWNER = [token for token in _ADMIN if token != "account:delete:own"] + [
    "account:delete:all",
    "organization:update",
    "organization:manage",
    "activity:delete:all",
]

_SUPER_ADMIN = [
    "organization:create",
    "organization:read:all",
    "organization:update:all",
    "organization:delete:all",
    "organization:manage:all",
    "account:create",
    "account:read:all",
    "account:update:all",
    "account:delete:all",
    "contact:create",
    "contact:read:all",
    "contact:update:all",
    "contact:delete:all",
    "deal:create",
    "deal:read:all",
    "deal:update:all",
    "deal:delete:all",
    "project:create",
    "project:read:all",
    "project:update:all",
    "project:delete:all",
    "task:create",
    "task:read:all",
    "task:update:all",
    "task:delete:all",
    "activity:create",
    "activity:read:all",
    "activity:delete:all",
    "system:read",
    "system:manage",
]

DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    Role.USER.value: _USER,
    Role.ADMIN.value: _ADMIN,
    Role.OWNER.value: _OWNER,
    Role.SUPER_ADMIN.value: _SUPER_ADMIN,
}


# ============================================================================
# Table
# ============================================================================

class RolePermissionTable:
    """
    Immutable role -> permission set mapping.

    Safe for unsynchronized concurrent reads; nothing mutates it after
    construction.
    """

    def __init__(self, permissions: Mapping[Role, frozenset[Permission]], version: str = DEFAULT_VERSION):
        self._permissions = MappingProxyType(dict(permissions))
        self.version = version

        families: set[tuple[Entity, Action]] = set()
        tokens: set[Permission] = set()
        for perms in self._permissions.values():
            tokens.update(perms)
            families.update(p.family for p in perms)
        self._families = frozenset(families)
        self._tokens = frozenset(tokens)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]], version: str = DEFAULT_VERSION) -> RolePermissionTable:
        """
        Build and validate a table from role names to token strings.

        Raises:
            ConfigurationError: unknown role, bad token, or broken hierarchy
        """
        parsed: dict[Role, frozenset[Permission]] = {}
        for role_name, tokens in mapping.items():
            role = Role.parse(role_name)
            if role is None:
                raise ConfigurationError(f"Unknown role in permission table: {role_name!r}")
            if isinstance(tokens, str):
                raise ConfigurationError(f"Permissions for {role_name} must be a list of tokens")
            try:
                parsed[role] = frozenset(Permission.parse(token) for token in tokens)
            except UnknownPermission as e:
                raise ConfigurationError(f"Invalid permission for role {role_name}: {e}") from e

        table = cls(parsed, version=str(version))
        table.validate()
        return table

    @classmethod
    def from_json_file(cls, path: str | Path) -> RolePermissionTable:
        """Load a table from a versioned JSON document."""
        try:
            data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read role permission table {path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("roles"), dict):
            raise ConfigurationError(f"Role permission table {path} must contain a 'roles' object")

        return cls.from_mapping(data["roles"], version=str(data.get("version", "unversioned")))

    @classmethod
    def default(cls) -> RolePermissionTable:
        return cls.from_mapping(DEFAULT_ROLE_PERMISSIONS, version=DEFAULT_VERSION)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check the hierarchy is monotonic.

        For every entity:action family a role holds, each higher role must
        hold the same scope or a broad (unscoped / ``:all``) variant, and
        SUPER_ADMIN must hold a broad variant of every family in the table.
        """
        roles = [role for role in Role.ordered() if role in self._permissions]

        for i, lower in enumerate(roles):
            for higher in roles[i + 1:]:
                for family in {p.family for p in self._permissions[lower]}:
                    lower_scopes = self.scopes_for(lower, *family)
                    higher_scopes = self.scopes_for(higher, *family)
                    if _has_broad(higher_scopes):
                        continue
                    if _has_broad(lower_scopes) or not lower_scopes <= higher_scopes:
                        raise ConfigurationError(
                            f"Role {higher.value} must hold at least the scopes of {lower.value} "
                            f"for {family[0].value}:{family[1].value}"
                        )

        if Role.SUPER_ADMIN in self._permissions:
            for family in self._families:
                if not _has_broad(self.scopes_for(Role.SUPER_ADMIN, *family)):
                    raise ConfigurationError(
                        f"SUPER_ADMIN must hold an unscoped or :all variant of "
                        f"{family[0].value}:{family[1].value}"
                    )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def roles(self) -> list[Role]:
        return [role for role in Role.ordered() if role in self._permissions]

    def permissions_for(self, role: Role) -> frozenset[Permission] | None:
        """Permission set for a role, or None if the role has no entry."""
        return self._permissions.get(role)

    def scopes_for(self, role: Role, entity: Entity, action: Action) -> set[Scope | None]:
        """Scopes (None = unscoped) the role holds for an entity:action family."""
        perms = self._permissions.get(role) or frozenset()
        return {p.scope for p in perms if p.entity is entity and p.action is action}

    def is_known(self, permission: Permission) -> bool:
        """
        True if some role could ever be granted this permission.

        Broad requests are known whenever the family exists; narrow requests
        must appear verbatim for at least one role.
        """
        if permission.family not in self._families:
            return False
        return permission.is_broad or permission in self._tokens

    def as_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "roles": {
                role.value: sorted(str(p) for p in self._permissions[role])
                for role in self.roles
            },
        }


def _has_broad(scopes: set[Scope | None]) -> bool:
    return None in scopes or Scope.ALL in scopes


@lru_cache(maxsize=1)
def load_role_permission_table() -> RolePermissionTable:
    """
    Active table for the process.

    Loaded once from ``ROLE_PERMISSIONS_PATH`` when set, otherwise the
    built-in default.
    """
    if config.ROLE_PERMISSIONS_PATH:
        table = RolePermissionTable.from_json_file(config.ROLE_PERMISSIONS_PATH)
        log.info("Loaded role permission table version %s from %s", table.version, config.ROLE_PERMISSIONS_PATH)
    else:
        table = RolePermissionTable.default()
        log.info("Using built-in role permission table version %s", table.version)
    return table
