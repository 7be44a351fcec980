"""
Activity log model.

Records who did what to which CRM entity, inside which organization.
"""
from typing import Any, Dict
from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TenantMixin, TimestampMixin, generate_ulid


class Activity(Base, TenantMixin, TimestampMixin):
    """
    Audit activity entry.
    
    Tracks who did what, when, and from where.
    """
    __tablename__ = "activities"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor; the "assigned" scope for activities means "performed by me"
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    
    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)
    
    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, user_id={self.user_id}, action={self.action}, entity={self.entity_type})>"
