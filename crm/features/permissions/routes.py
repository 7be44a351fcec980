"""
Permission API routes.

Read-only views of the role permission table and a check endpoint that
evaluates a permission for the caller without performing the action.
"""
from typing import Annotated
from fastapi import APIRouter, Depends

from crm.features.permissions.dependencies import get_evaluator, get_principal
from crm.features.permissions.evaluator import PermissionEvaluator
from crm.features.permissions.principal import Principal, ResourceRef
from crm.features.permissions.roles import Role
from crm.features.permissions.schemas import (
    PermissionCheckRequest,
    PermissionCheckResponse,
    PrincipalPermissionsResponse,
    RoleTableResponse,
)
from crm.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("/roles", response_model=RoleTableResponse)
async def get_role_table(
    principal: Annotated[Principal, Depends(get_principal)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
):
    """Get the active role permission table."""
    table = evaluator.table.as_dict()
    return RoleTableResponse(
        version=table["version"],
        hierarchy=[role.value for role in reversed(Role.ordered())],
        roles=table["roles"],
    )


@router.get("/me", response_model=PrincipalPermissionsResponse)
async def get_my_permissions(
    principal: Annotated[Principal, Depends(get_principal)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
):
    """Get the caller's principal and the permissions its role holds."""
    held = evaluator.table.permissions_for(principal.role) or frozenset()
    return PrincipalPermissionsResponse(
        **principal.to_dict(),
        permissions=sorted(str(p) for p in held),
    )


@router.post("/check", response_model=PermissionCheckResponse)
async def check_permission(
    check_request: PermissionCheckRequest,
    principal: Annotated[Principal, Depends(get_principal)],
    evaluator: Annotated[PermissionEvaluator, Depends(get_evaluator)],
):
    """
    Check whether the caller holds a permission.
    
    The resource facts in the request stand in for a target resource. A
    denial is reported in the response body, not as an error.
    """
    resource = ResourceRef(
        organization_id=check_request.organization_id,
        owner_ref=check_request.owner_ref,
        assigned_user_id=check_request.assigned_user_id,
        member_ids=frozenset(check_request.member_ids),
    )
    decision = evaluator.evaluate(principal, check_request.permission, resource)
    if decision.is_configuration_error:
        log.error("Permission check for unknown token %r by user %s", check_request.permission, principal.user_id)
    
    return PermissionCheckResponse(
        allowed=decision.allowed,
        outcome=decision.outcome.value,
        reason=decision.reason,
    )
