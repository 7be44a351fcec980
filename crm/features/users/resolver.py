"""
Claims resolution: turn a request's session evidence into a Principal.

Two sources are supported and produce identical Principal values:

- Session token (``Authorization: Bearer`` or the session cookie), verified
  against the identity provider and the local user database.
- Trusted headers (``x-user-id``, ``x-user-role``, ``x-organization-id`` and
  optional ``x-account-ids``) forwarded by an upstream gate that already
  resolved the session. Only honoured when TRUST_FORWARDED_HEADERS is on.

Resolution never raises for a missing or stale identity; it returns None.
Only backend faults raise IdentityLookupFailure.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from crm.core import config
from crm.features.accounts.models import account_members
from crm.features.organizations.models import Organization
from crm.features.permissions.errors import IdentityLookupFailure
from crm.features.permissions.principal import Principal
from crm.features.permissions.roles import Role
from crm.features.users.auth import decode_session_token
from crm.features.users.models import User
from crm.utils import get_logger


log = get_logger(__name__)


USER_ID_HEADER = "x-user-id"
USER_ROLE_HEADER = "x-user-role"
ORGANIZATION_ID_HEADER = "x-organization-id"
ACCOUNT_IDS_HEADER = "x-account-ids"


class IdentityProvider(Protocol):
    async def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        ...

    async def verify_session(self, token: str) -> Optional[dict[str, Any]]:
        ...


def session_token_from_request(request: Request) -> Optional[str]:
    """Bearer token if present, otherwise the session cookie."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(config.SESSION_COOKIE_NAME) or None


def principal_from_headers(headers: Mapping[str, str]) -> Optional[Principal]:
    """
    Parse a Principal from trusted forwarded headers.

    Returns None if any required header is missing or the role is unknown.
    """
    user_id = (headers.get(USER_ID_HEADER) or "").strip()
    role_name = headers.get(USER_ROLE_HEADER)
    organization_id = (headers.get(ORGANIZATION_ID_HEADER) or "").strip()

    if not user_id or not role_name or not organization_id:
        return None

    role = Role.parse(role_name)
    if role is None:
        log.error("Forwarded headers carry unknown role %r for user %s", role_name, user_id)
        return None

    raw_accounts = headers.get(ACCOUNT_IDS_HEADER) or ""
    account_ids = frozenset(a.strip() for a in raw_accounts.split(",") if a.strip())

    return Principal(
        user_id=user_id,
        organization_id=organization_id,
        role=role,
        account_ids=account_ids,
    )


class ClaimsResolver:
    """
    Resolves the Principal for one request.

    A resolver is created per request and keeps nothing between requests,
    so revoked sessions and role changes take effect immediately.
    """

    def __init__(
        self,
        db: AsyncSession,
        identity_provider: Optional[IdentityProvider] = None,
        trust_forwarded_headers: Optional[bool] = None,
    ):
        self.db = db
        self.identity_provider = identity_provider
        if trust_forwarded_headers is None:
            trust_forwarded_headers = config.TRUST_FORWARDED_HEADERS
        self.trust_forwarded_headers = trust_forwarded_headers

    async def resolve(self, request: Request) -> Optional[Principal]:
        if self.trust_forwarded_headers and request.headers.get(USER_ID_HEADER):
            return principal_from_headers(request.headers)

        token = session_token_from_request(request)
        if not token:
            return None
        return await self.from_session_token(token)

    async def from_session_token(self, token: str) -> Optional[Principal]:
        """
        Resolve a session token.

        With SESSION_JWT_SECRET set the signature is verified locally and the
        identity provider, when configured, confirms the user still exists.
        Without a secret the identity provider must accept the token itself.
        With neither, no token is trusted.
        """
        if config.SESSION_JWT_SECRET:
            payload = decode_session_token(token)
            if payload is None:
                return None

            subject = payload.get("userId") or payload.get("sub")
            if not subject:
                log.debug("Session token has no subject")
                return None

            if self.identity_provider is not None:
                identity = await self.identity_provider.get_user(subject)
                if identity is None:
                    return None
        elif self.identity_provider is not None:
            identity = await self.identity_provider.verify_session(token)
            if identity is None:
                return None

            subject = identity.get("$id")
            if not subject:
                log.error("Identity provider returned an account without an id")
                return None
        else:
            log.error("Session token rejected: neither SESSION_JWT_SECRET nor an identity provider is configured")
            return None

        return await self.load_principal(subject)

    async def load_principal(self, appwrite_id: str) -> Optional[Principal]:
        """
        Build a Principal from the local user, its organization and its
        account memberships, read in a single query.

        Raises:
            IdentityLookupFailure: the database could not be read
        """
        try:
            result = await self.db.execute(
                select(User, Organization, func.aggregate_strings(account_members.c.account_id, ","))
                .outerjoin(Organization, User.organization_id == Organization.id)
                .outerjoin(account_members, account_members.c.user_id == User.id)
                .where(User.appwrite_id == appwrite_id)
                .group_by(User.id, Organization.id)
            )
            row = result.first()
        except SQLAlchemyError as e:
            log.exception("User lookup failed for identity %s", appwrite_id)
            raise IdentityLookupFailure(f"User lookup failed: {e}") from e

        if row is None:
            log.info("No local user for identity %s", appwrite_id)
            return None

        user, organization, joined_accounts = row
        if not user.is_active:
            log.info("User %s is deactivated", user.id)
            return None
        if user.organization_id is None:
            # Not onboarded: never treat as an org-less principal
            log.info("User %s has no organization", user.id)
            return None
        if organization is None or not organization.is_active:
            log.info("Organization %s of user %s is missing or inactive", user.organization_id, user.id)
            return None

        role = Role.parse(user.role)
        if role is None:
            log.error("User %s has unknown role %r", user.id, user.role)
            return None

        account_ids = frozenset(a for a in (joined_accounts or "").split(",") if a)

        return Principal(
            user_id=user.id,
            organization_id=organization.id,
            role=role,
            account_ids=account_ids,
        )
