from datetime import datetime, timedelta, timezone

import pytest

from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.connections import AdminConnectionManager
from masjid_dashboard.services.notifications import build_notification
from masjid_dashboard.services.scheduler import (
    create_scheduler,
    ping_admin_connections,
    prune_notification_history,
)
from conftest import FakeChannel, static_admins


@pytest.fixture
def service():
    return AdminNotificationService(static_admins("imam"), dispatch_delay=0)


class TestCreateScheduler:
    def test_registers_both_jobs(self, service):
        scheduler = create_scheduler(service, AdminConnectionManager(service))
        job_ids = {job.id for job in scheduler.get_jobs()}
        assert job_ids == {"notification_prune_job", "admin_ping_job"}


class TestJobs:
    @pytest.mark.asyncio
    async def test_prune_job_drops_old_history(self):
        now = [datetime.now(timezone.utc)]
        service = AdminNotificationService(
            static_admins("imam"), dispatch_delay=0, clock=lambda: now[0]
        )
        service.add_subscriber("imam", FakeChannel())
        await service.notify(build_notification("BACKUP_CREATE", "imam"))
        await service.join()

        await prune_notification_history(service)
        assert len(service.history("imam")) == 1

        now[0] += timedelta(hours=25)
        await prune_notification_history(service)
        assert service.history("imam") == []

    @pytest.mark.asyncio
    async def test_ping_job_with_no_connections(self, service):
        connections = AdminConnectionManager(service)
        await ping_admin_connections(connections)
        assert len(connections) == 0
