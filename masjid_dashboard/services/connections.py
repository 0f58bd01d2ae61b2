"""
Admin websocket connections.

WebSocketChannel adapts a Starlette websocket to the notification channel
contract. AdminConnectionManager tracks liveness for every open admin socket
and keeps the notification registry in step with connects and disconnects.
A single scheduled sweep (ping_all) probes every connection.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from starlette.websockets import WebSocket, WebSocketState

from masjid_dashboard.services.admin_notifier import AdminNotificationService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WebSocketChannel:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, message: str) -> None:
        await self.websocket.send_text(message)

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if self.is_open():
            await self.websocket.close(code=code, reason=reason)


@dataclass
class AdminConnection:
    channel: WebSocketChannel
    connected_at: datetime
    last_pong: datetime


def _message(kind: str, data: Any = None) -> str:
    payload: dict[str, Any] = {"type": kind}
    if data is not None:
        payload["data"] = data
    return json.dumps(payload, ensure_ascii=False, default=str)


class AdminConnectionManager:
    def __init__(
        self,
        service: AdminNotificationService,
        pong_timeout: timedelta = timedelta(seconds=60),
    ) -> None:
        self.service = service
        self.pong_timeout = pong_timeout
        self._connections: dict[str, AdminConnection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    async def connect(self, admin_id: str, websocket: WebSocket) -> WebSocketChannel:
        await websocket.accept()
        channel = WebSocketChannel(websocket)
        now = _utcnow()
        self._connections[admin_id] = AdminConnection(channel, connected_at=now, last_pong=now)
        self.service.add_subscriber(admin_id, channel)
        logger.info("Admin %s connected to websocket", admin_id)
        await channel.send(
            _message(
                "CONNECTION_ESTABLISHED",
                {
                    "message": "Connected to admin notifications",
                    "userId": admin_id,
                    "timestamp": now.isoformat(),
                },
            )
        )
        return channel

    def disconnect(self, admin_id: str, channel: WebSocketChannel | None = None) -> None:
        connection = self._connections.get(admin_id)
        if connection is None:
            return
        # A newer socket for the same admin must survive the old one closing.
        if channel is not None and connection.channel is not channel:
            return
        del self._connections[admin_id]
        self.service.remove_subscriber(admin_id)
        logger.info("Admin %s disconnected from websocket", admin_id)

    def touch(self, admin_id: str) -> None:
        connection = self._connections.get(admin_id)
        if connection is not None:
            connection.last_pong = _utcnow()

    async def handle_message(self, admin_id: str, raw: str) -> None:
        connection = self._connections.get(admin_id)
        if connection is None:
            return
        self.touch(admin_id)
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON websocket message from admin %s", admin_id)
            return
        kind = message.get("type") if isinstance(message, dict) else None

        if kind == "PING":
            await connection.channel.send(_message("PONG", {"timestamp": _utcnow().isoformat()}))
        elif kind == "PONG":
            pass
        elif kind == "GET_STATS":
            stats = self.service.get_stats().model_dump(by_alias=True)
            await connection.channel.send(_message("STATS", stats))
        elif kind == "CLEAR_NOTIFICATIONS":
            self.service.prune_history()
            await connection.channel.send(
                _message("NOTIFICATIONS_CLEARED", {"message": "Notifications cleared"})
            )
        else:
            logger.warning("Unknown websocket message type from admin %s: %s", admin_id, kind)

    async def ping_all(self, now: datetime | None = None) -> None:
        now = now or _utcnow()
        for admin_id, connection in list(self._connections.items()):
            channel = connection.channel
            try:
                if not channel.is_open():
                    self.disconnect(admin_id, channel)
                elif now - connection.last_pong > self.pong_timeout:
                    logger.warning("Admin %s not responding to pings, closing connection", admin_id)
                    await channel.close(code=1000, reason="Connection timeout")
                    self.disconnect(admin_id, channel)
                else:
                    await channel.send(_message("PING"))
            except Exception as exc:
                logger.error("Error pinging admin %s: %s", admin_id, exc)
                self.disconnect(admin_id, channel)
