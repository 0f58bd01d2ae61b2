"""
Activity log endpoints: listing, stats, retention and export.
Mounted at /api/activity-logs. Every route requires an admin session.
Each retention and export call is itself written to the activity log.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from masjid_dashboard.config import settings
from masjid_dashboard.database import get_db
from masjid_dashboard.dependencies import AdminIdentity, get_notification_service, require_admin
from masjid_dashboard.schemas import (
    CleanupRequest,
    ClearByActionRequest,
    ClearByRoleRequest,
    ClearByUserRequest,
    DateRangeRequest,
    OlderThanRequest,
)
from masjid_dashboard.services import activity_log
from masjid_dashboard.services.activity_export import (
    Exporter,
    export_filename,
    render_csv,
    render_pdf,
)
from masjid_dashboard.services.activity_log import RequestContext
from masjid_dashboard.services.activity_store import ActivityFilters
from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.notifications import AdminAction, NotificationLevel

router = APIRouter(prefix="/api/activity-logs", tags=["activity-logs"])
logger = logging.getLogger(__name__)

RETENTION_ACTION = "ACTIVITY_LOGS_CLEAR"


async def _audit(
    db: AsyncSession,
    request: Request,
    admin: AdminIdentity,
    action: str,
    details: str,
) -> None:
    await activity_log.log_activity(
        db, admin.username, "admin", action, details, RequestContext.from_request(request)
    )


async def _after_retention(
    db: AsyncSession,
    request: Request,
    admin: AdminIdentity,
    notifier: AdminNotificationService,
    summary: str,
    details: str,
) -> None:
    await _audit(db, request, admin, summary, details)
    await notifier.notify_action(
        RETENTION_ACTION,
        admin.username,
        details={"summary": summary},
        resource="activity_logs",
        severity=NotificationLevel.HIGH,
    )


def _deleted(message: str, count: int) -> JSONResponse:
    return JSONResponse({"success": True, "message": message, "deletedCount": count})


def _parse_date(value: str | None, field: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field}: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Queries ───────────────────────────────────────────────────────────────────

@router.get("")
async def list_activities(
    limit: int = Query(default=settings.ACTIVITY_PAGE_LIMIT, ge=1, le=1000),
    skip: int = Query(default=0, ge=0),
    user: Optional[str] = None,
    role: Optional[str] = None,
    action: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    page = await activity_log.get_recent_activities(
        db, limit, skip, ActivityFilters(user=user, role=role, action=action)
    )
    return JSONResponse({"success": True, "data": page.model_dump(mode="json", by_alias=True)})


@router.get("/stats")
async def activity_stats(
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    stats = await activity_log.get_activity_stats(db)
    return JSONResponse({"success": True, "data": stats.model_dump(by_alias=True)})


@router.get("/user/{username}")
async def activities_for_user(
    username: str,
    limit: int = Query(default=settings.ACTIVITY_SCOPED_PAGE_LIMIT, ge=1, le=1000),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    page = await activity_log.get_recent_activities(
        db, limit, skip, ActivityFilters(user=username)
    )
    return JSONResponse({"success": True, "data": page.model_dump(mode="json", by_alias=True)})


@router.get("/role/{role}")
async def activities_for_role(
    role: str,
    limit: int = Query(default=settings.ACTIVITY_SCOPED_PAGE_LIMIT, ge=1, le=1000),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
):
    page = await activity_log.get_recent_activities(
        db, limit, skip, ActivityFilters(role=role)
    )
    return JSONResponse({"success": True, "data": page.model_dump(mode="json", by_alias=True)})


# ── Retention ─────────────────────────────────────────────────────────────────

@router.delete("/cleanup")
async def cleanup_logs(
    request: Request,
    body: Optional[CleanupRequest] = None,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    days = (body.days if body else None) or settings.ACTIVITY_CLEANUP_DAYS
    deleted = await activity_log.cleanup_old_logs(db, days)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleaned up {deleted} old activity logs (older than {days} days)",
        f"Cleanup performed by {admin.username}",
    )
    return _deleted(f"Successfully cleaned up {deleted} old activity logs", deleted)


@router.delete("/clear-all")
async def clear_all(
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    deleted = await activity_log.clear_all_logs(db)
    # Written after the wipe, so it becomes the first row of the new log.
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared all {deleted} activity logs",
        f"Clear all logs performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared all {deleted} activity logs", deleted)


@router.delete("/clear-by-date")
async def clear_by_date(
    request: Request,
    body: DateRangeRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    start = _parse_date(body.startDate, "startDate")
    end = _parse_date(body.endDate, "endDate")
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="startDate must be before endDate")
    deleted = await activity_log.clear_logs_by_date_range(db, start, end)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} logs by date range",
        f"Date range: {body.startDate or 'start'} to {body.endDate or 'end'}, "
        f"performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} logs by date range", deleted)


@router.delete("/clear-by-user")
async def clear_by_user(
    request: Request,
    body: ClearByUserRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    if not body.username:
        raise HTTPException(status_code=400, detail="Username is required")
    deleted = await activity_log.clear_logs_by_user(db, body.username)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} logs for user: {body.username}",
        f"Clear user logs performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} logs for user: {body.username}", deleted)


@router.delete("/clear-by-action")
async def clear_by_action(
    request: Request,
    body: ClearByActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    if not body.action:
        raise HTTPException(status_code=400, detail="Action type is required")
    deleted = await activity_log.clear_logs_by_action(db, body.action)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} logs for action: {body.action}",
        f"Clear action logs performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} logs for action: {body.action}", deleted)


@router.delete("/clear-by-role")
async def clear_by_role(
    request: Request,
    body: ClearByRoleRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    if not body.role:
        raise HTTPException(status_code=400, detail="Role is required")
    deleted = await activity_log.clear_logs_by_role(db, body.role)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} logs for role: {body.role}",
        f"Clear role logs performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} logs for role: {body.role}", deleted)


@router.delete("/clear-failed")
async def clear_failed(
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    deleted = await activity_log.clear_failed_actions(db)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} failed action logs",
        f"Clear failed actions performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} failed action logs", deleted)


@router.delete("/clear-older-than")
async def clear_older_than(
    request: Request,
    body: OlderThanRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    if not body.days or body.days < 1:
        raise HTTPException(
            status_code=400, detail="Valid number of days is required (minimum 1)"
        )
    deleted = await activity_log.clear_logs_older_than(db, body.days)
    await _after_retention(
        db, request, admin, notifier,
        f"Cleared {deleted} logs older than {body.days} days",
        f"Clear old logs performed by {admin.username}",
    )
    return _deleted(f"Successfully cleared {deleted} logs older than {body.days} days", deleted)


# ── Export ────────────────────────────────────────────────────────────────────

async def _export_payload(db: AsyncSession, limit: int):
    page = await activity_log.get_recent_activities(db, limit, 0)
    stats = await activity_log.get_activity_stats(db)
    return page.activities, stats


async def _after_export(
    db: AsyncSession,
    request: Request,
    admin: AdminIdentity,
    notifier: AdminNotificationService,
    count: int,
    fmt: str,
) -> None:
    await _audit(
        db, request, admin,
        f"Exported {count} activity logs to {fmt}",
        f"{fmt} export performed by {admin.username}",
    )
    await notifier.notify_action(
        AdminAction.DATA_EXPORT,
        admin.username,
        details={"format": fmt, "records": count},
        resource="activity_logs",
    )


def _attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/export")
async def export_csv(
    request: Request,
    limit: int = Query(default=settings.ACTIVITY_EXPORT_LIMIT, ge=1),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    events, stats = await _export_payload(db, limit)
    generated_at = datetime.now(timezone.utc)
    content = render_csv(events, stats, Exporter(admin.username, admin.role), generated_at)
    await _after_export(db, request, admin, notifier, len(events), "CSV")
    filename = export_filename(len(events), "csv", generated_at.date())
    return _attachment(content, "text/csv", filename)


@router.get("/export-pdf")
async def export_pdf(
    request: Request,
    limit: int = Query(default=settings.ACTIVITY_EXPORT_LIMIT, ge=1),
    db: AsyncSession = Depends(get_db),
    admin: AdminIdentity = Depends(require_admin),
    notifier: AdminNotificationService = Depends(get_notification_service),
):
    events, stats = await _export_payload(db, limit)
    generated_at = datetime.now(timezone.utc)
    content = render_pdf(events, stats, Exporter(admin.username, admin.role), generated_at)
    await _after_export(db, request, admin, notifier, len(events), "PDF")
    filename = export_filename(len(events), "pdf", generated_at.date())
    return _attachment(content, "application/pdf", filename)
