"""
Activity log service.
Records one row per meaningful action and serves the admin console's
listing, stats and retention tools. Writing never raises: a failed write is
logged and reported through LogWriteResult so the business operation that
triggered it carries on. Each write runs in its own session, separate from
the caller's transaction. Reads and deletions propagate their failures.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from masjid_dashboard.config import settings
from masjid_dashboard.errors import ActivityQueryError, LogWriteError, RetentionError
from masjid_dashboard.models import ROLES, ActivityLog
from masjid_dashboard.schemas import ActivityLogSchema, ActivityPage, ActivityStats
from masjid_dashboard.services.activity_store import (
    ActivityFilters,
    ActivityStore,
    action_matches,
    user_matches,
)

logger = logging.getLogger(__name__)

UTC = timezone.utc


class RequestContext(NamedTuple):
    ip_address: str
    user_agent: str

    @classmethod
    def from_request(cls, request: HTTPConnection) -> "RequestContext":
        host = request.client.host if request.client else None
        return cls(
            ip_address=host or "Unknown",
            user_agent=request.headers.get("user-agent") or "Unknown",
        )


def _clean(value: str | None, default: str) -> str:
    value = (value or "").strip()
    return value or default


class LogWriteResult(NamedTuple):
    event: ActivityLog | None
    error: LogWriteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def log_activity(
    db: AsyncSession,
    user: str | None,
    role: str | None,
    action: str | None,
    details: str | None = "",
    context: RequestContext | None = None,
    success: bool | None = None,
) -> LogWriteResult:
    role = _clean(role, "user")
    entry = ActivityLog(
        user=_clean(user, "Unknown"),
        role=role if role in ROLES else "user",
        action=_clean(action, "Unknown Action"),
        details=_clean(details, ""),
        success=success,
    )
    if context is not None:
        entry.ip_address = _clean(context.ip_address, "Unknown")
        entry.user_agent = _clean(context.user_agent, "Unknown")

    # Own session: the caller's pending work is neither committed nor rolled back here.
    async with AsyncSession(db.bind, expire_on_commit=False) as log_db:
        try:
            await ActivityStore(log_db).insert(entry)
        except Exception as exc:
            logger.error("Error logging activity %r for %s: %s", action, user, exc)
            try:
                await log_db.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.error("Rollback after failed activity write also failed: %s", rollback_exc)
            return LogWriteResult(event=None, error=LogWriteError(str(exc)))

    logger.info("Activity logged: %s (%s) - %s", entry.user, entry.role, entry.action)
    return LogWriteResult(event=entry)


async def get_recent_activities(
    db: AsyncSession,
    limit: int = 50,
    skip: int = 0,
    filters: ActivityFilters | None = None,
) -> ActivityPage:
    clauses = (filters or ActivityFilters()).clauses()
    store = ActivityStore(db)
    try:
        rows = await store.find(clauses, limit=limit, skip=skip)
        total = await store.count(clauses)
    except SQLAlchemyError as exc:
        logger.error("Error fetching activities: %s", exc)
        raise ActivityQueryError("Failed to fetch activities") from exc

    return ActivityPage(
        activities=[ActivityLogSchema.model_validate(row) for row in rows],
        total=total,
        has_more=skip + len(rows) < total,
    )


async def get_activity_stats(db: AsyncSession) -> ActivityStats:
    store = ActivityStore(db)
    try:
        total = await store.count()
        roles = await store.role_counts()
        unique_users = await store.unique_user_count()
    except SQLAlchemyError as exc:
        logger.error("Error fetching activity stats: %s", exc)
        raise ActivityQueryError("Failed to fetch activity statistics") from exc

    return ActivityStats(
        total_activities=total,
        unique_user_count=unique_users,
        admin_count=roles.get("admin", 0),
        user_count=roles.get("user", 0),
        guest_count=roles.get("guest", 0),
    )


# ── Retention ─────────────────────────────────────────────────────────────────

async def _delete(db: AsyncSession, clauses: list, description: str) -> int:
    try:
        deleted = await ActivityStore(db).delete_many(clauses)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Error clearing %s: %s", description, exc)
        raise RetentionError(f"Failed to clear {description}") from exc
    logger.info("Cleared %d %s", deleted, description)
    return deleted


async def clear_all_logs(db: AsyncSession) -> int:
    return await _delete(db, [], "activity logs")


async def clear_logs_older_than(db: AsyncSession, days: int) -> int:
    try:
        cutoff = datetime.now(UTC) - timedelta(days=days)
    except OverflowError:
        # Out of calendar range: nothing is that old, or for negative days everything is.
        cutoff = datetime.min.replace(tzinfo=UTC) if days > 0 else datetime.max.replace(tzinfo=UTC)
    return await _delete(
        db, [ActivityLog.timestamp < cutoff], f"logs older than {days} days"
    )


async def cleanup_old_logs(db: AsyncSession, days: int | None = None) -> int:
    return await clear_logs_older_than(db, days or settings.ACTIVITY_CLEANUP_DAYS)


async def clear_logs_by_date_range(
    db: AsyncSession,
    start: datetime | None = None,
    end: datetime | None = None,
) -> int:
    clauses = []
    if start is not None:
        clauses.append(ActivityLog.timestamp >= _as_utc(start))
    if end is not None:
        clauses.append(ActivityLog.timestamp <= _as_utc(end))
    return await _delete(db, clauses, "logs by date range")


async def clear_logs_by_user(db: AsyncSession, username: str) -> int:
    return await _delete(db, [user_matches(username)], f"logs for user: {username}")


async def clear_logs_by_action(db: AsyncSession, action: str) -> int:
    return await _delete(db, [action_matches(action)], f"logs for action: {action}")


async def clear_logs_by_role(db: AsyncSession, role: str) -> int:
    return await _delete(db, [ActivityLog.role == role], f"logs for role: {role}")


async def clear_failed_actions(db: AsyncSession) -> int:
    return await _delete(db, [ActivityLog.success.is_(False)], "failed action logs")


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
