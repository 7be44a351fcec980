"""
Contact model.
"""
from sqlalchemy import String, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TenantMixin, TimestampMixin, generate_ulid


class Contact(Base, TenantMixin, TimestampMixin):
    """
    Person at a customer account.
    
    Ownership for scoped permissions follows the contact's account.
    """
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    account_id: Mapped[str | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    title: Mapped[str | None] = mapped_column(String(100))

    __table_args__ = (
        Index("ix_contacts_name", "last_name", "first_name"),
    )

    def __repr__(self):
        return f"<Contact(id={self.id}, name='{self.first_name} {self.last_name}')>"
