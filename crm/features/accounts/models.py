"""
Account (customer company) models.
"""
from datetime import datetime
from sqlalchemy import String, Text, ForeignKey, Table, Column, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TenantMixin, TimestampMixin, generate_ulid


# Explicit user membership of an account; backs the "own" permission scope
account_members = Table(
    "account_members",
    Base.metadata,
    Column("account_id", String(26), ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Account(Base, TenantMixin, TimestampMixin):
    """
    Customer account managed by an organization.
    
    Contacts and deals hang off an account; users listed in
    `account_members` own it for scoped permissions.
    """
    __tablename__ = "accounts"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    website: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    created_by_id: Mapped[str | None] = mapped_column(String(26), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    
    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name!r}, org_id={self.organization_id})>"
