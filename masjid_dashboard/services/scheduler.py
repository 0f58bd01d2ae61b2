import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from masjid_dashboard.config import settings
from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.connections import AdminConnectionManager

logger = logging.getLogger(__name__)


def create_scheduler(
    notification_service: AdminNotificationService,
    connections: AdminConnectionManager,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        prune_notification_history,
        "interval",
        minutes=settings.NOTIFICATION_PRUNE_INTERVAL_MINUTES,
        args=[notification_service],
        id="notification_prune_job",
        replace_existing=True,
    )
    scheduler.add_job(
        ping_admin_connections,
        "interval",
        seconds=settings.WS_PING_INTERVAL_SECONDS,
        args=[connections],
        id="admin_ping_job",
        replace_existing=True,
    )
    return scheduler


async def prune_notification_history(service: AdminNotificationService) -> None:
    """Hourly housekeeping: drop delivered notifications older than the
    history window. Live connections are left alone."""
    service.prune_history()


async def ping_admin_connections(connections: AdminConnectionManager) -> None:
    if len(connections):
        logger.debug("Pinging %d admin connection(s)", len(connections))
    await connections.ping_all()
