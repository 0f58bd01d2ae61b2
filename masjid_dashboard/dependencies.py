from typing import NamedTuple

from fastapi import HTTPException, Request, WebSocket
from starlette.requests import HTTPConnection

from masjid_dashboard.config import settings
from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.connections import AdminConnectionManager


class AdminIdentity(NamedTuple):
    username: str
    role: str = "admin"


def _session_admin(conn: HTTPConnection) -> AdminIdentity | None:
    if not conn.session.get("authenticated"):
        return None
    return AdminIdentity(username=conn.session.get("admin_username") or settings.ADMIN_USERNAME)


def require_admin(request: Request) -> AdminIdentity:
    admin = _session_admin(request)
    if admin is None:
        raise HTTPException(status_code=401, detail="Admin authentication required")
    return admin


def websocket_admin(websocket: WebSocket) -> AdminIdentity | None:
    return _session_admin(websocket)


def get_notification_service(conn: HTTPConnection) -> AdminNotificationService:
    return conn.app.state.notification_service


def get_connection_manager(conn: HTTPConnection) -> AdminConnectionManager:
    return conn.app.state.admin_connections
