"""
Organization model.

An organization is a tenant: the isolation boundary for every account,
contact, deal, project, task and activity.
"""
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TimestampMixin, generate_ulid


class Organization(Base, TimestampMixin):
    """Tenant organization. Users belong to exactly one."""
    __tablename__ = "organizations"
    
    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    
    # Optional organization details
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[str | None] = mapped_column(String(50), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    
    # Organization settings
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
        
    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r}, slug={self.slug})>"
