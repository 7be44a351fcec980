"""
Authorization error taxonomy.

Denials inside the evaluator and resolver are plain return values; these
exceptions are only raised by the request gate (to stop a handler) and for
genuine faults such as a broken permission table or an unreachable identity
backend.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crm.features.permissions.evaluator import Decision


class AuthorizationError(Exception):
    """Base class for signals raised by the request gate."""


class Unauthenticated(AuthorizationError):
    """No principal could be resolved for the request."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)
        self.message = message


class Forbidden(AuthorizationError):
    """A principal was resolved but the permission or tenant check failed."""

    def __init__(self, decision: "Decision | None" = None, message: str | None = None):
        self.decision = decision
        if message is None:
            message = f"Permission denied: {decision.permission}" if decision else "Permission denied"
        super().__init__(message)
        self.message = message


class UnknownPermission(ValueError):
    """Permission token that is malformed or absent from the role table."""


class ConfigurationError(Exception):
    """Role permission table is invalid (unknown role, bad token, broken hierarchy)."""


class IdentityLookupFailure(Exception):
    """The identity store or user database could not be read."""
