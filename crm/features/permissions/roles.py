"""
Role hierarchy for tenant users.

SUPER_ADMIN > OWNER > ADMIN > USER. This enum is the only place the ordering
is declared; everything else compares roles through it.
"""
from __future__ import annotations

import enum


_RANKS = {
    "SUPER_ADMIN": 4,
    "OWNER": 3,
    "ADMIN": 2,
    "USER": 1,
}


class Role(str, enum.Enum):
    """User role, totally ordered by rank."""
    SUPER_ADMIN = "SUPER_ADMIN"
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    USER = "USER"

    @property
    def rank(self) -> int:
        return _RANKS[self.value]

    def __lt__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank >= other.rank

    def at_least(self, other: Role) -> bool:
        """True if this role is ranked equal to or above `other`."""
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        """
        Parse a role name in any case.

        Returns None for missing or unrecognized names instead of raising, so
        callers can fail closed.
        """
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @classmethod
    def ordered(cls) -> list[Role]:
        """All roles from lowest to highest rank."""
        return sorted(cls)
