"""
Admin notification fan-out.

One AdminNotificationService is built at startup and shared through
app.state. It owns the subscriber registry, a bounded FIFO delivery queue and
the draining flag; all three are only touched from the event loop.
"""
import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, NamedTuple, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from masjid_dashboard.models import User
from masjid_dashboard.schemas import NotificationStats
from masjid_dashboard.services.notifications import (
    AdminAction,
    AdminNotification,
    NotificationLevel,
    NotificationPriority,
    build_notification,
)

logger = logging.getLogger(__name__)

ESCALATED_PRIORITIES = frozenset({NotificationPriority.CRITICAL, NotificationPriority.IMPORTANT})


class Channel(Protocol):
    async def send(self, message: str) -> None: ...

    def is_open(self) -> bool: ...


class AdminRecipient(NamedTuple):
    id: str
    email: str | None = None


AdminResolver = Callable[[], Awaitable[Sequence[AdminRecipient]]]
Escalation = Callable[[AdminNotification, Sequence[AdminRecipient]], Awaitable[None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class QueuedNotification:
    notification: AdminNotification
    queued_at: datetime
    recipient_ids: tuple[str, ...]

    def to_payload(self) -> dict:
        payload = self.notification.to_payload()
        payload["queued_at"] = self.queued_at.isoformat()
        payload["recipients"] = list(self.recipient_ids)
        return payload

    def to_message(self) -> str:
        return json.dumps(
            {"type": "ADMIN_NOTIFICATION", "data": self.to_payload()},
            ensure_ascii=False,
            default=str,
        )


@dataclass
class Subscriber:
    channel: Channel
    last_seen: datetime
    history: deque = field(default_factory=deque)


class DatabaseAdminResolver:
    """Active users with the admin role are the notification audience."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def __call__(self) -> list[AdminRecipient]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(User).where(User.role == "admin", User.is_active.is_(True))
            )
            return [AdminRecipient(id=u.username, email=u.email) for u in result.scalars()]


class AdminNotificationService:
    def __init__(
        self,
        resolve_admins: AdminResolver,
        *,
        history_limit: int = 100,
        history_max_age: timedelta = timedelta(hours=24),
        queue_limit: int = 1000,
        dispatch_delay: float = 0.1,
        escalate: Escalation | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._resolve_admins = resolve_admins
        self._history_limit = history_limit
        self._history_max_age = history_max_age
        self._queue_limit = queue_limit
        self._dispatch_delay = dispatch_delay
        self._escalate = escalate
        self._clock = clock

        self._subscribers: dict[str, Subscriber] = {}
        self._queue: deque[QueuedNotification] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None

    # ── Subscribers ──────────────────────────────────────────────────────────

    def add_subscriber(self, admin_id: str, channel: Channel) -> None:
        # Reconnects replace the previous entry: last connection wins.
        self._subscribers[admin_id] = Subscriber(
            channel=channel,
            last_seen=self._clock(),
            history=deque(maxlen=self._history_limit),
        )
        logger.info("Admin %s subscribed to notifications", admin_id)

    def remove_subscriber(self, admin_id: str) -> None:
        if self._subscribers.pop(admin_id, None) is not None:
            logger.info("Admin %s unsubscribed from notifications", admin_id)

    def has_subscriber(self, admin_id: str) -> bool:
        return admin_id in self._subscribers

    def subscriber_ids(self) -> list[str]:
        return list(self._subscribers)

    def history(self, admin_id: str) -> list[QueuedNotification]:
        subscriber = self._subscribers.get(admin_id)
        return list(subscriber.history) if subscriber else []

    # ── Dispatch ─────────────────────────────────────────────────────────────

    async def notify(self, notification: AdminNotification) -> bool:
        """Queue ``notification`` for every connected admin.
        Returns False when it was dropped because nobody can receive it."""
        try:
            admins = list(await self._resolve_admins())
        except Exception as exc:
            logger.error("Failed to resolve admin recipients for %r: %s", notification.message, exc)
            return False

        if not admins:
            logger.warning("No admin users found for notification: %s", notification.message)
            return False

        self._enqueue(
            QueuedNotification(
                notification=notification,
                queued_at=self._clock(),
                recipient_ids=tuple(admin.id for admin in admins),
            )
        )
        logger.info("Admin notification queued: %s", notification.message)

        if self._escalate is not None and notification.priority in ESCALATED_PRIORITIES:
            try:
                await self._escalate(notification, admins)
            except Exception as exc:
                logger.error("Notification escalation failed for %r: %s", notification.message, exc)

        if not self._draining:
            self._draining = True
            self._drain_task = asyncio.create_task(self._drain())
        return True

    async def notify_action(
        self,
        action: AdminAction | str,
        username: str | None,
        details: dict | None = None,
        resource: str | None = None,
        severity: NotificationLevel | str | None = None,
    ) -> bool:
        notification = build_notification(action, username, details, resource, severity)
        if notification is None:
            return False
        return await self.notify(notification)

    def _enqueue(self, item: QueuedNotification) -> None:
        if self._queue_limit and len(self._queue) >= self._queue_limit:
            dropped = self._queue.popleft()
            logger.warning(
                "Notification queue full (%d), dropping oldest: %s",
                self._queue_limit,
                dropped.notification.message,
            )
        self._queue.append(item)

    async def _drain(self) -> None:
        try:
            while self._queue:
                item = self._queue.popleft()
                await self._dispatch(item)
                if self._queue and self._dispatch_delay:
                    await asyncio.sleep(self._dispatch_delay)
        finally:
            self._draining = False

    async def _dispatch(self, item: QueuedNotification) -> None:
        message = item.to_message()
        for admin_id, subscriber in list(self._subscribers.items()):
            # Removed or replaced while earlier sends were in flight.
            if self._subscribers.get(admin_id) is not subscriber:
                continue
            if not subscriber.channel.is_open():
                self._drop(admin_id, subscriber, "connection closed")
                continue
            try:
                await subscriber.channel.send(message)
            except Exception as exc:
                logger.error("Failed to send notification to admin %s: %s", admin_id, exc)
                self._drop(admin_id, subscriber, "send failed")
                continue
            subscriber.history.append(item)
            subscriber.last_seen = self._clock()

    def _drop(self, admin_id: str, subscriber: Subscriber, reason: str) -> None:
        if self._subscribers.get(admin_id) is subscriber:
            del self._subscribers[admin_id]
            logger.info("Admin %s removed from notifications (%s)", admin_id, reason)

    async def join(self) -> None:
        """Wait until the queue has been drained."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    async def shutdown(self) -> None:
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        self._queue.clear()
        self._subscribers.clear()

    # ── Housekeeping ─────────────────────────────────────────────────────────

    def prune_history(self, now: datetime | None = None) -> int:
        cutoff = (now or self._clock()) - self._history_max_age
        removed = 0
        for subscriber in self._subscribers.values():
            kept = [item for item in subscriber.history if item.queued_at > cutoff]
            removed += len(subscriber.history) - len(kept)
            subscriber.history.clear()
            subscriber.history.extend(kept)
        logger.info("Old notifications cleared: %d removed", removed)
        return removed

    def get_stats(self) -> NotificationStats:
        return NotificationStats(
            active_subscribers=len(self._subscribers),
            queue_length=len(self._queue),
            is_processing=self._draining,
            total_notifications=len(self._queue)
            + sum(len(s.history) for s in self._subscribers.values()),
        )
