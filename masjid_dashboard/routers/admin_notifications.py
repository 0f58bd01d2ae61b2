import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from masjid_dashboard.dependencies import (
    AdminIdentity,
    get_connection_manager,
    get_notification_service,
    require_admin,
    websocket_admin,
)
from masjid_dashboard.schemas import SendNotificationRequest
from masjid_dashboard.services.admin_notifier import AdminNotificationService
from masjid_dashboard.services.connections import AdminConnectionManager
from masjid_dashboard.services.notifications import build_notification, classify

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin-notifications"])


@router.websocket("/ws/admin-notifications")
async def admin_notifications_socket(
    websocket: WebSocket,
    admin: AdminIdentity | None = Depends(websocket_admin),
    connections: AdminConnectionManager = Depends(get_connection_manager),
) -> None:
    if admin is None:
        await websocket.close(code=1008, reason="Admin access required")
        return

    channel = await connections.connect(admin.username, websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            await connections.handle_message(admin.username, raw)
    except WebSocketDisconnect:
        connections.disconnect(admin.username, channel)
    except Exception as exc:
        logger.error("Websocket error for admin %s: %s", admin.username, exc)
        connections.disconnect(admin.username, channel)
        raise


@router.get("/api/admin-notifications/stats")
async def notification_stats(
    admin: AdminIdentity = Depends(require_admin),
    service: AdminNotificationService = Depends(get_notification_service),
):
    return JSONResponse({"success": True, "data": service.get_stats().model_dump(by_alias=True)})


@router.get("/api/admin-notifications/history")
async def notification_history(
    admin: AdminIdentity = Depends(require_admin),
    service: AdminNotificationService = Depends(get_notification_service),
):
    history = [item.to_payload() for item in reversed(service.history(admin.username))]
    return JSONResponse({"success": True, "data": history})


@router.post("/api/admin-notifications/test")
async def send_test_notification(
    body: SendNotificationRequest,
    admin: AdminIdentity = Depends(require_admin),
    service: AdminNotificationService = Depends(get_notification_service),
):
    """Classify, format and dispatch an arbitrary action, as the console's
    notification tester does."""
    result = classify(body.action, body.severity)
    notification = build_notification(
        body.action, admin.username, body.details, body.resource, body.severity
    )
    queued = await service.notify(notification) if notification is not None else False
    return JSONResponse({
        "success": True,
        "queued": queued,
        "classification": {
            "important": result.important,
            "priority": result.priority.value,
            "level": result.level.value,
        },
        "message": notification.message if notification else None,
    })
