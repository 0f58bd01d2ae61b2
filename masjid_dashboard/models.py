from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from masjid_dashboard.database import Base

ROLES = ("admin", "user", "guest")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityLog(Base):
    """One audit record. Rows are inserted once and only ever bulk-deleted."""

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_user_timestamp", "user", "timestamp"),
        Index("ix_activity_logs_role_timestamp", "role", "timestamp"),
        Index("ix_activity_logs_action_timestamp", "action", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user: Mapped[str] = mapped_column(String, nullable=False, default="Unknown")
    role: Mapped[str] = mapped_column(String(10), nullable=False, default="user")
    action: Mapped[str] = mapped_column(String, nullable=False, default="Unknown Action")
    details: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
