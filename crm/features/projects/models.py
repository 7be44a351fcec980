"""
Project models.
"""
from datetime import date, datetime
import enum
from sqlalchemy import String, Text, ForeignKey, Date, Table, Column, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from crm.core.database.base import Base, TenantMixin, TimestampMixin, generate_ulid


# Users working on a project; backs the "member" permission scope
project_members = Table(
    "project_members",
    Base.metadata,
    Column("project_id", String(26), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class ProjectStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Project(Base, TenantMixin, TimestampMixin):
    """Delivery project for an account."""
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    account_id: Mapped[str | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProjectStatus] = mapped_column(SQLEnum(ProjectStatus), default=ProjectStatus.PLANNING, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self):
        return f"<Project(id={self.id}, name={self.name!r}, status={self.status})>"
