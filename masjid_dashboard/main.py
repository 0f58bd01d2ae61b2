import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from sqladmin import Admin
from sqlalchemy import select
from starlette.middleware.sessions import SessionMiddleware

from masjid_dashboard.admin.views import ActivityLogAdmin, AdminAuth, UserAdmin
from masjid_dashboard.config import settings
from masjid_dashboard.database import AsyncSessionLocal, create_all_tables, engine
from masjid_dashboard.errors import register_exception_handlers
from masjid_dashboard.models import User
from masjid_dashboard.routers.activity_logs import router as activity_logs_router
from masjid_dashboard.routers.admin_notifications import router as admin_notifications_router
from masjid_dashboard.routers.health import router as health_router
from masjid_dashboard.services.admin_notifier import (
    AdminNotificationService,
    DatabaseAdminResolver,
)
from masjid_dashboard.services.connections import AdminConnectionManager
from masjid_dashboard.services.scheduler import create_scheduler

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_notification_service() -> AdminNotificationService:
    return AdminNotificationService(
        DatabaseAdminResolver(AsyncSessionLocal),
        history_limit=settings.NOTIFICATION_HISTORY_LIMIT,
        history_max_age=timedelta(hours=settings.NOTIFICATION_HISTORY_HOURS),
        queue_limit=settings.NOTIFICATION_QUEUE_LIMIT,
        dispatch_delay=settings.NOTIFICATION_DISPATCH_DELAY_MS / 1000,
    )


async def seed_admin_user() -> None:
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(User).where(User.username == settings.ADMIN_USERNAME))
        if result.scalar_one_or_none() is None:
            db.add(
                User(
                    username=settings.ADMIN_USERNAME,
                    email=settings.ADMIN_EMAIL or None,
                    role="admin",
                )
            )
            await db.commit()
            logger.info("Seeded admin user %s", settings.ADMIN_USERNAME)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── STARTUP ──────────────────────────────────────────────────────────────
    await create_all_tables()
    try:
        await seed_admin_user()
    except Exception as exc:
        logger.error("Failed to seed admin user: %s", exc)

    scheduler = create_scheduler(app.state.notification_service, app.state.admin_connections)
    scheduler.start()
    app.state.scheduler = scheduler
    logger.info("Scheduler started")

    yield

    # ── SHUTDOWN ─────────────────────────────────────────────────────────────
    scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")
    await app.state.notification_service.shutdown()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# One notification service per process, shared through app.state
app.state.notification_service = build_notification_service()
app.state.admin_connections = AdminConnectionManager(
    app.state.notification_service,
    pong_timeout=timedelta(seconds=settings.WS_PONG_TIMEOUT_SECONDS),
)

# ── Session middleware: admin panel login + admin API/websocket auth ────────
app.add_middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET)

register_exception_handlers(app)

# ── Routers ───────────────────────────────────────────────────────────────────
app.include_router(activity_logs_router)
app.include_router(admin_notifications_router)
app.include_router(health_router)

# ── Admin ─────────────────────────────────────────────────────────────────────
auth_backend = AdminAuth(secret_key=settings.SESSION_SECRET)
admin = Admin(app, engine, authentication_backend=auth_backend, base_url="/admin")
admin.add_view(ActivityLogAdmin)
admin.add_view(UserAdmin)


# ── Request logging middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s → %d [%.1fms]",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response
