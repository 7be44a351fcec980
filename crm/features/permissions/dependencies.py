"""
Request gate and FastAPI dependencies for route protection.

Implements:
- Per-request gate composing claims resolution and permission evaluation
- FastAPI dependencies for authenticated / permission-checked routes
"""
import enum
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database.engine import get_db
from crm.features.permissions.errors import Forbidden, Unauthenticated
from crm.features.permissions.evaluator import Decision, PermissionEvaluator
from crm.features.permissions.principal import Principal, ResourceRef
from crm.features.permissions.table import load_role_permission_table
from crm.features.permissions.tokens import Action, Entity, Permission, Scope
from crm.features.users.auth import get_identity_provider
from crm.features.users.resolver import ClaimsResolver
from crm.utils import get_logger


log = get_logger(__name__)


class GateState(str, enum.Enum):
    UNRESOLVED = "unresolved"
    AUTHENTICATED = "authenticated"
    AUTHORIZED = "authorized"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


_TERMINAL = (GateState.UNAUTHENTICATED, GateState.FORBIDDEN)


class RequestGate:
    """
    Authorization gate for one request.

    Resolves the principal at most once per request and evaluates each
    permission the handler asks for. The first failure is terminal: every
    later call on the same gate fails the same way.

    Usage:
        @router.delete("/{account_id}")
        async def delete_account(account_id: str, gate: RequestGate = Depends(get_gate)):
            account = ...
            await gate.require_permission("account:delete", account_ref(account))
    """

    def __init__(self, request: Request, resolver: ClaimsResolver, evaluator: PermissionEvaluator):
        self.request = request
        self.resolver = resolver
        self.evaluator = evaluator
        self.state = GateState.UNRESOLVED
        self.principal: Optional[Principal] = None
        self._failure: Optional[Exception] = None

    def _fail(self, state: GateState, error: Exception) -> Exception:
        self.state = state
        self._failure = error
        return error

    async def require_authenticated(self) -> Principal:
        """
        Resolve the caller.

        Raises:
            Unauthenticated: no principal could be resolved
        """
        if self.state in _TERMINAL:
            raise self._failure
        if self.principal is not None:
            return self.principal

        principal = await self.resolver.resolve(self.request)
        if principal is None:
            log.info("Unauthenticated request to %s", self.request.url.path)
            raise self._fail(GateState.UNAUTHENTICATED, Unauthenticated())

        self.principal = principal
        self.state = GateState.AUTHENTICATED
        return principal

    def _enforce(self, principal: Principal, decision: Decision) -> Principal:
        if decision.allowed:
            self.state = GateState.AUTHORIZED
            return principal

        if decision.is_configuration_error:
            log.error(
                "Authorization configuration error for user %s on %s: %s",
                principal.user_id, decision.permission, decision.reason
            )
        else:
            log.info(
                "Forbidden: user=%s role=%s permission=%s reason=%s",
                principal.user_id, principal.role.value, decision.permission, decision.reason
            )
        raise self._fail(GateState.FORBIDDEN, Forbidden(decision))

    async def require_permission(
        self,
        permission: "Permission | str",
        resource: Optional[ResourceRef] = None,
    ) -> Principal:
        """
        Require a permission, optionally against a specific resource.

        Raises:
            Unauthenticated: no principal
            Forbidden: permission or tenant check failed
        """
        principal = await self.require_authenticated()
        return self._enforce(principal, self.evaluator.evaluate(principal, permission, resource))

    async def require_visibility(self, entity: Entity, action: Action = Action.READ) -> tuple[Principal, Scope]:
        """
        Require some grant of an entity:action family, for list endpoints.

        Returns the principal and the broadest scope it holds, which the
        caller turns into a query filter.

        Raises:
            Unauthenticated: no principal
            Forbidden: the family is not held in any scope
        """
        principal = await self.require_authenticated()
        scope = self.evaluator.visibility(principal, entity, action)
        if scope is None:
            # Evaluate for the typed decision and the logging it carries.
            self._enforce(principal, self.evaluator.evaluate(principal, Permission(entity, action, Scope.ALL)))
        self.state = GateState.AUTHORIZED
        return principal, scope

    async def require_organization(self, organization_id: str) -> Principal:
        """
        Enforce only the tenant boundary.

        For actions allowed to anyone inside the tenant that must never
        reach across tenants. SUPER_ADMIN passes for any organization.
        """
        principal = await self.require_authenticated()
        if principal.is_super_admin or principal.organization_id == organization_id:
            self.state = GateState.AUTHORIZED
            return principal

        log.info(
            "Forbidden: user=%s outside organization %s",
            principal.user_id, organization_id
        )
        raise self._fail(
            GateState.FORBIDDEN,
            Forbidden(message="Resource belongs to another organization")
        )


# ============================================================================
# FastAPI Dependencies
# ============================================================================

@lru_cache(maxsize=1)
def get_evaluator() -> PermissionEvaluator:
    """Process-wide evaluator over the read-only permission table."""
    return PermissionEvaluator(load_role_permission_table())


async def get_claims_resolver(db: Annotated[AsyncSession, Depends(get_db)]) -> ClaimsResolver:
    return ClaimsResolver(db, identity_provider=get_identity_provider())


async def get_gate(
    request: Request,
    resolver: Annotated[ClaimsResolver, Depends(get_claims_resolver)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
) -> RequestGate:
    """One gate per request; FastAPI caches it across dependencies of the same request."""
    return RequestGate(request, resolver, evaluator)


async def get_principal(gate: Annotated[RequestGate, Depends(get_gate)]) -> Principal:
    """
    Require an authenticated caller.

    Usage:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_principal)):
            return principal
    """
    return await gate.require_authenticated()


def require_permission(permission: str):
    """
    FastAPI dependency to require a permission that needs no resource facts.

    Usage:
        @router.post("/accounts")
        async def create_account(
            principal: Principal = Depends(require_permission("account:create"))
        ):
            pass

    Returns:
        Dependency function that returns the principal if allowed
    """
    Permission.parse(permission)

    async def permission_dependency(gate: Annotated[RequestGate, Depends(get_gate)]) -> Principal:
        return await gate.require_permission(permission)

    return permission_dependency
