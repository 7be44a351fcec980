"""
Deal model.
"""
from datetime import date
from decimal import Decimal
import enum
from sqlalchemy import String, ForeignKey, Numeric, Date, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TenantMixin, TimestampMixin, generate_ulid


class DealStage(str, enum.Enum):
    LEAD = "LEAD"
    QUALIFIED = "QUALIFIED"
    PROPOSAL = "PROPOSAL"
    NEGOTIATION = "NEGOTIATION"
    CLOSED_WON = "CLOSED_WON"
    CLOSED_LOST = "CLOSED_LOST"


class Deal(Base, TenantMixin, TimestampMixin):
    """Sales opportunity against an account, assigned to one user."""
    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    account_id: Mapped[str | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_user_id: Mapped[str | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    stage: Mapped[DealStage] = mapped_column(SQLEnum(DealStage), default=DealStage.LEAD, nullable=False, index=True)
    expected_close_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self):
        return f"<Deal(id={self.id}, name={self.name!r}, stage={self.stage})>"
