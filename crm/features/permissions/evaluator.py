"""
Permission evaluation.

Decides allow/deny for a (principal, permission, resource) tuple. Evaluation
is pure: no I/O, no state, and every fact must be supplied by the caller.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from crm.features.permissions.errors import UnknownPermission
from crm.features.permissions.principal import Principal, ResourceRef
from crm.features.permissions.roles import Role
from crm.features.permissions.table import RolePermissionTable
from crm.features.permissions.tokens import Action, Entity, Permission, Scope
from crm.utils import get_logger


log = get_logger(__name__)


class Outcome(str, enum.Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    UNKNOWN_PERMISSION = "unknown_permission"
    UNKNOWN_ROLE = "unknown_role"


@dataclass(frozen=True)
class Decision:
    """Result of a permission check. Denial is a value, not an exception."""
    outcome: Outcome
    permission: str
    reason: str

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOWED

    @property
    def is_configuration_error(self) -> bool:
        """Caller or table bug rather than a legitimate access attempt."""
        return self.outcome in (Outcome.UNKNOWN_PERMISSION, Outcome.UNKNOWN_ROLE)

    def __bool__(self) -> bool:
        return self.allowed


class PermissionEvaluator:
    """
    Evaluates permissions against a role permission table.

    Usage:
        evaluator = PermissionEvaluator(load_role_permission_table())
        decision = evaluator.evaluate(principal, "account:read:own", ResourceRef(owner_ref="acc1"))
        if decision.allowed:
            ...
    """

    def __init__(self, table: RolePermissionTable):
        self.table = table

    def _held(self, principal: Principal) -> frozenset[Permission] | None:
        # Bare role strings never match a grant.
        if not isinstance(principal.role, Role):
            return None
        return self.table.permissions_for(principal.role)

    def evaluate(
        self,
        principal: Principal,
        permission: Permission | str,
        resource: ResourceRef | None = None,
    ) -> Decision:
        token = str(permission)
        try:
            requested = Permission.parse(permission)
        except UnknownPermission as e:
            return Decision(Outcome.UNKNOWN_PERMISSION, token, str(e))
        token = str(requested)

        if not self.table.is_known(requested):
            return Decision(Outcome.UNKNOWN_PERMISSION, token, f"Permission {token} is not granted to any role")

        held = self._held(principal)
        if held is None:
            return Decision(Outcome.UNKNOWN_ROLE, token, f"Role {principal.role!r} has no permission entry")

        # Tenant boundary applies whatever permission matched.
        if (
            resource is not None
            and resource.organization_id is not None
            and resource.organization_id != principal.organization_id
            and not principal.is_super_admin
        ):
            return Decision(Outcome.DENIED, token, "Resource belongs to another organization")

        scopes = {p.scope for p in held if p.family == requested.family}
        if not scopes:
            return Decision(Outcome.DENIED, token, f"Role {principal.role.value} lacks {token}")

        if None in scopes or Scope.ALL in scopes:
            return Decision(Outcome.ALLOWED, token, "Organization-wide permission")

        if requested.scope is Scope.ALL:
            return Decision(Outcome.DENIED, token, "Only narrower scopes are held")

        candidates = [requested.scope] if requested.scope is not None else sorted(scopes, key=lambda s: s.value)
        for scope in candidates:
            if scope in scopes and _scope_proven(scope, principal, resource):
                return Decision(Outcome.ALLOWED, token, f"Scope {scope.value} proven")

        return Decision(Outcome.DENIED, token, "Scope proof missing or not satisfied")

    def is_allowed(
        self,
        principal: Principal,
        permission: Permission | str,
        resource: ResourceRef | None = None,
    ) -> bool:
        return self.evaluate(principal, permission, resource).allowed

    def visibility(self, principal: Principal, entity: Entity, action: Action = Action.READ) -> Scope | None:
        """
        Broadest scope the principal holds for a family.

        Returns Scope.ALL for unscoped or ``:all`` grants, the narrow scope
        otherwise, or None if the family is not held. Used to filter list
        queries before rows are fetched.
        """
        held = self._held(principal)
        if not held:
            return None
        scopes = {p.scope for p in held if p.entity is entity and p.action is action}
        if not scopes:
            return None
        if None in scopes or Scope.ALL in scopes:
            return Scope.ALL
        # Roles hold at most one narrow scope per family in practice.
        return sorted(scopes, key=lambda s: s.value)[0]


def _scope_proven(scope: Scope, principal: Principal, resource: ResourceRef | None) -> bool:
    if resource is None:
        return False
    if scope is Scope.OWN:
        return resource.owner_ref is not None and resource.owner_ref in principal.account_ids
    if scope is Scope.ASSIGNED:
        return resource.assigned_user_id is not None and resource.assigned_user_id == principal.user_id
    if scope is Scope.MEMBER:
        return principal.user_id in resource.member_ids
    return False
