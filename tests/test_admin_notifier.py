import json
from datetime import datetime, timedelta, timezone

import pytest

from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.notifications import (
    AdminNotification,
    NotificationLevel,
    NotificationPriority,
    build_notification,
)
from conftest import FakeChannel, static_admins

T0 = datetime(2026, 10, 17, 8, tzinfo=timezone.utc)


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _notification(message: str, priority=NotificationPriority.IMPORTANT) -> AdminNotification:
    return AdminNotification(
        message=message,
        priority=priority,
        level=NotificationLevel.MEDIUM,
        action="HOUSE_UPDATE",
        username="imam",
    )


def _messages(channel: FakeChannel) -> list[str]:
    return [json.loads(raw)["data"]["message"] for raw in channel.sent]


def _service(**kwargs) -> AdminNotificationService:
    kwargs.setdefault("dispatch_delay", 0)
    return AdminNotificationService(static_admins("imam", "hafiz"), **kwargs)


class TestSubscribers:
    def test_add_and_remove(self):
        service = _service()
        service.add_subscriber("imam", FakeChannel())
        assert service.has_subscriber("imam")
        service.remove_subscriber("imam")
        service.remove_subscriber("imam")
        assert service.subscriber_ids() == []

    @pytest.mark.asyncio
    async def test_reconnect_replaces_channel(self):
        service = _service()
        old, new = FakeChannel(), FakeChannel()
        service.add_subscriber("imam", old)
        service.add_subscriber("imam", new)

        await service.notify(_notification("hello"))
        await service.join()

        assert old.sent == []
        assert _messages(new) == ["hello"]
        assert service.get_stats().active_subscribers == 1


class TestNotify:
    @pytest.mark.asyncio
    async def test_message_envelope(self):
        service = _service()
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        assert await service.notify(_notification("📊 Data exported by imam")) is True
        await service.join()

        envelope = json.loads(channel.sent[0])
        assert envelope["type"] == "ADMIN_NOTIFICATION"
        assert envelope["data"]["message"] == "📊 Data exported by imam"
        assert envelope["data"]["recipients"] == ["imam", "hafiz"]
        assert "queued_at" in envelope["data"]

    @pytest.mark.asyncio
    async def test_fifo_order(self):
        service = _service()
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        for message in ("first", "second", "third"):
            await service.notify(_notification(message))
        await service.join()

        assert _messages(channel) == ["first", "second", "third"]
        assert service.get_stats().is_processing is False

    @pytest.mark.asyncio
    async def test_no_admins_drops_notification(self):
        service = AdminNotificationService(static_admins(), dispatch_delay=0)
        service.add_subscriber("imam", FakeChannel())
        assert await service.notify(_notification("nobody home")) is False
        assert service.get_stats().queue_length == 0

    @pytest.mark.asyncio
    async def test_resolver_failure_drops_notification(self):
        async def broken():
            raise RuntimeError("database unavailable")

        service = AdminNotificationService(broken, dispatch_delay=0)
        assert await service.notify(_notification("lost")) is False

    @pytest.mark.asyncio
    async def test_notify_action_skips_unimportant(self):
        service = _service()
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        assert await service.notify_action("LOGIN", "imam") is False
        assert await service.notify_action("USER_DELETE", "imam") is True
        await service.join()
        assert _messages(channel) == ["🗑️ User account deleted by imam"]

    @pytest.mark.asyncio
    async def test_dispatch_isolation(self):
        service = _service()
        first, broken, third = FakeChannel(), FakeChannel(fail=True), FakeChannel()
        service.add_subscriber("one", first)
        service.add_subscriber("two", broken)
        service.add_subscriber("three", third)

        await service.notify(_notification("salaam"))
        await service.join()

        assert _messages(first) == ["salaam"]
        assert _messages(third) == ["salaam"]
        assert service.subscriber_ids() == ["one", "three"]

    @pytest.mark.asyncio
    async def test_closed_channel_is_removed(self):
        service = _service()
        service.add_subscriber("imam", FakeChannel(open_=False))
        await service.notify(_notification("anyone?"))
        await service.join()
        assert not service.has_subscriber("imam")

    @pytest.mark.asyncio
    async def test_queue_overflow_drops_oldest(self):
        service = _service(queue_limit=2)
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        for message in ("one", "two", "three"):
            await service.notify(_notification(message))
        assert service.get_stats().queue_length == 2

        await service.join()
        assert _messages(channel) == ["two", "three"]


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_keeps_most_recent_hundred(self):
        service = _service(history_limit=100)
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        for i in range(150):
            await service.notify(_notification(f"n{i}"))
        await service.join()

        history = service.history("imam")
        assert len(channel.sent) == 150
        assert len(history) == 100
        assert [item.notification.message for item in history] == [f"n{i}" for i in range(50, 150)]

    @pytest.mark.asyncio
    async def test_prune_removes_expired_entries(self):
        clock = Clock()
        service = _service(clock=clock)
        service.add_subscriber("imam", FakeChannel())

        await service.notify(_notification("yesterday"))
        await service.join()
        clock.now = T0 + timedelta(hours=20)
        await service.notify(_notification("today"))
        await service.join()

        assert service.prune_history(now=T0 + timedelta(hours=1)) == 0
        assert service.prune_history(now=T0 + timedelta(hours=25)) == 1
        assert [item.notification.message for item in service.history("imam")] == ["today"]
        assert service.has_subscriber("imam")

    @pytest.mark.asyncio
    async def test_stats_count_queue_and_history(self):
        service = _service()
        service.add_subscriber("imam", FakeChannel())
        service.add_subscriber("hafiz", FakeChannel())

        await service.notify(_notification("one"))
        await service.join()
        await service.notify(_notification("two"))

        stats = service.get_stats()
        assert stats.active_subscribers == 2
        assert stats.queue_length == 1
        assert stats.is_processing is True
        assert stats.total_notifications == 3

        await service.join()
        assert service.get_stats().total_notifications == 4


class TestEscalation:
    @pytest.mark.asyncio
    async def test_critical_and_important_are_escalated(self):
        calls = []

        async def escalate(notification, admins):
            calls.append((notification.message, [admin.email for admin in admins]))

        service = _service(escalate=escalate)
        await service.notify(build_notification("BACKUP_RESTORE", "imam"))
        await service.notify(build_notification("HOUSE_CREATE", "imam"))
        await service.notify(build_notification("ROOF_REPAIR", "imam", severity="CRITICAL"))
        await service.join()

        assert calls == [
            ("🔄 Backup restored by imam", ["imam@masjid.test", "hafiz@masjid.test"]),
            ("🏠 New house created by imam", ["imam@masjid.test", "hafiz@masjid.test"]),
        ]

    @pytest.mark.asyncio
    async def test_escalation_failure_does_not_block_delivery(self):
        async def escalate(notification, admins):
            raise ConnectionError("smtp down")

        service = _service(escalate=escalate)
        channel = FakeChannel()
        service.add_subscriber("imam", channel)

        assert await service.notify(_notification("still delivered")) is True
        await service.join()
        assert _messages(channel) == ["still delivered"]


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_clears_state(self):
        service = _service(dispatch_delay=10)
        service.add_subscriber("imam", FakeChannel())
        await service.notify(_notification("one"))
        await service.notify(_notification("two"))

        await service.shutdown()
        stats = service.get_stats()
        assert stats.queue_length == 0
        assert stats.active_subscribers == 0
