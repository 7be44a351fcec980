"""
Resolved identity and the resource facts used to check it.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from crm.features.permissions.roles import Role


@dataclass(frozen=True)
class Principal:
    """
    Identity for the duration of one request.

    Built fresh per request by the claims resolver and never persisted.
    """
    user_id: str
    organization_id: str
    role: Role
    account_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "organization_id": self.organization_id,
            "role": self.role.value,
            "account_ids": sorted(self.account_ids),
        }


@dataclass(frozen=True)
class ResourceRef:
    """
    Ownership facts about a target resource, pre-fetched by the caller.

    Attributes:
        organization_id: Tenant the resource belongs to
        owner_ref: Owning account id (proof for ``own`` scope)
        assigned_user_id: Assignee (proof for ``assigned`` scope)
        member_ids: Recorded members (proof for ``member`` scope)
    """
    organization_id: str | None = None
    owner_ref: str | None = None
    assigned_user_id: str | None = None
    member_ids: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def for_organization(cls, organization_id: str) -> ResourceRef:
        return cls(organization_id=organization_id)
