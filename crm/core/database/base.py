"""
SQLAlchemy declarative base and shared column mixins.

All CRM models inherit from Base. Tenant-scoped models also inherit
TenantMixin, so every row carries the organization it belongs to.
"""
from datetime import datetime
from sqlalchemy import DateTime, ForeignKey, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string (26 characters, lexicographically sortable)."""
    return str(ulid.new())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from crm.core.database.base import Base, TenantMixin, TimestampMixin
        
        class Deal(Base, TenantMixin, TimestampMixin):
            __tablename__ = "deals"
            
            id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    """
    pass


class TimestampMixin:
    """Adds created_at and updated_at, both set by the database."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TenantMixin:
    """
    Adds the owning organization.
    
    Rows are removed with their organization. Queries filter on this column
    through ``crm.features.permissions.filters.tenant_filter``.
    """
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
