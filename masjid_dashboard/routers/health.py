import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from masjid_dashboard.database import get_db
from masjid_dashboard.models import ActivityLog

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    db_status = "ok"
    activities_total = 0
    last_activity = None
    try:
        activities_total = (
            await db.execute(select(func.count(ActivityLog.id)))
        ).scalar_one()
        latest = (
            await db.execute(select(func.max(ActivityLog.timestamp)))
        ).scalar_one_or_none()
        if latest:
            last_activity = latest.strftime("%Y-%m-%d %H:%M UTC")
    except Exception as exc:
        logger.error("Health check database probe failed: %s", exc)
        db_status = "error"

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_status = "running" if scheduler and scheduler.running else "stopped"

    service = getattr(request.app.state, "notification_service", None)
    notifications = service.get_stats().model_dump(by_alias=True) if service else None

    return JSONResponse({
        "status": "ok" if db_status == "ok" else "degraded",
        "db": db_status,
        "activities_total": activities_total,
        "last_activity": last_activity,
        "scheduler": scheduler_status,
        "notifications": notifications,
    })
