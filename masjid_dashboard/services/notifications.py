"""
Admin notification classification and message formatting.

The tables below are the single place that decides whether an action is
worth interrupting an admin for. Everything here is a pure lookup: no I/O,
and unknown actions fall back to generic output instead of raising.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple


class AdminAction(str, Enum):
    # Critical
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    ADMIN_LOGIN = "ADMIN_LOGIN"
    ADMIN_LOGOUT = "ADMIN_LOGOUT"
    USER_DELETE = "USER_DELETE"
    HOUSE_DELETE = "HOUSE_DELETE"
    MEMBER_DELETE = "MEMBER_DELETE"
    DATA_EXPORT = "DATA_EXPORT"
    DATA_IMPORT = "DATA_IMPORT"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    BACKUP_CREATE = "BACKUP_CREATE"
    BACKUP_RESTORE = "BACKUP_RESTORE"
    # Important
    USER_REGISTER = "USER_REGISTER"
    USER_LOGIN = "USER_LOGIN"
    USER_LOGOUT = "USER_LOGOUT"
    HOUSE_CREATE = "HOUSE_CREATE"
    HOUSE_UPDATE = "HOUSE_UPDATE"
    MEMBER_ADD = "MEMBER_ADD"
    MEMBER_UPDATE = "MEMBER_UPDATE"
    RESOURCE_UPLOAD = "RESOURCE_UPLOAD"
    RESOURCE_DELETE = "RESOURCE_DELETE"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    PROFILE_UPDATE = "PROFILE_UPDATE"
    PRAYER_TIMES_UPDATE = "PRAYER_TIMES_UPDATE"
    # Regular
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    REGISTER = "REGISTER"


class NotificationPriority(str, Enum):
    CRITICAL = "CRITICAL"
    IMPORTANT = "IMPORTANT"
    SEVERITY_BASED = "SEVERITY_BASED"
    LOW = "LOW"


class NotificationLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


ESCALATED_SEVERITIES = frozenset({NotificationLevel.HIGH, NotificationLevel.CRITICAL})

CRITICAL_ACTIONS = frozenset({
    AdminAction.SECURITY_VIOLATION,
    AdminAction.ADMIN_LOGIN,
    AdminAction.ADMIN_LOGOUT,
    AdminAction.USER_DELETE,
    AdminAction.HOUSE_DELETE,
    AdminAction.MEMBER_DELETE,
    AdminAction.DATA_EXPORT,
    AdminAction.DATA_IMPORT,
    AdminAction.SYSTEM_ERROR,
    AdminAction.BACKUP_CREATE,
    AdminAction.BACKUP_RESTORE,
})

IMPORTANT_ACTIONS = frozenset({
    AdminAction.USER_REGISTER,
    AdminAction.USER_LOGIN,
    AdminAction.USER_LOGOUT,
    AdminAction.HOUSE_CREATE,
    AdminAction.HOUSE_UPDATE,
    AdminAction.MEMBER_ADD,
    AdminAction.MEMBER_UPDATE,
    AdminAction.RESOURCE_UPLOAD,
    AdminAction.RESOURCE_DELETE,
    AdminAction.PASSWORD_CHANGE,
    AdminAction.PROFILE_UPDATE,
    AdminAction.PRAYER_TIMES_UPDATE,
})


class Classification(NamedTuple):
    important: bool
    priority: NotificationPriority
    level: NotificationLevel


_CRITICAL = Classification(True, NotificationPriority.CRITICAL, NotificationLevel.HIGH)
_IMPORTANT = Classification(True, NotificationPriority.IMPORTANT, NotificationLevel.MEDIUM)
_NOT_IMPORTANT = Classification(False, NotificationPriority.LOW, NotificationLevel.LOW)

CLASSIFICATIONS: Mapping[AdminAction, Classification] = MappingProxyType({
    **{action: _CRITICAL for action in CRITICAL_ACTIONS},
    **{action: _IMPORTANT for action in IMPORTANT_ACTIONS},
})

MESSAGE_TEMPLATES: Mapping[AdminAction, str] = MappingProxyType({
    AdminAction.SECURITY_VIOLATION: "🚨 SECURITY ALERT: {username} attempted unauthorized action",
    AdminAction.ADMIN_LOGIN: "👑 Admin {username} logged in",
    AdminAction.ADMIN_LOGOUT: "👑 Admin {username} logged out",
    AdminAction.USER_DELETE: "🗑️ User account deleted by {username}",
    AdminAction.HOUSE_DELETE: "🏠 House deleted by {username}",
    AdminAction.MEMBER_DELETE: "👤 Member deleted by {username}",
    AdminAction.DATA_EXPORT: "📊 Data exported by {username}",
    AdminAction.DATA_IMPORT: "📥 Data imported by {username}",
    AdminAction.SYSTEM_ERROR: "❌ System error occurred",
    AdminAction.BACKUP_CREATE: "💾 Backup created by {username}",
    AdminAction.BACKUP_RESTORE: "🔄 Backup restored by {username}",
    AdminAction.USER_REGISTER: "📝 New user registered: {registered}",
    AdminAction.USER_LOGIN: "🔐 User {username} logged in",
    AdminAction.USER_LOGOUT: "🔓 User {username} logged out",
    AdminAction.HOUSE_CREATE: "🏠 New house created by {username}",
    AdminAction.HOUSE_UPDATE: "✏️ House updated by {username}",
    AdminAction.MEMBER_ADD: "➕ Member added by {username}",
    AdminAction.MEMBER_UPDATE: "✏️ Member updated by {username}",
    AdminAction.RESOURCE_UPLOAD: "📁 Resource uploaded by {username}",
    AdminAction.RESOURCE_DELETE: "🗑️ Resource deleted by {username}",
    AdminAction.PASSWORD_CHANGE: "🔑 Password changed by {username}",
    AdminAction.PROFILE_UPDATE: "👤 Profile updated by {username}",
    AdminAction.PRAYER_TIMES_UPDATE: "🕌 Prayer times updated by {username}",
})

DEFAULT_TEMPLATE = "📋 Action performed by {username}: {action}"


def _to_action(action: "AdminAction | str | None") -> AdminAction | None:
    if isinstance(action, AdminAction):
        return action
    try:
        return AdminAction(action)
    except (TypeError, ValueError):
        return None


def _to_level(severity: "NotificationLevel | str | None") -> NotificationLevel | None:
    if isinstance(severity, NotificationLevel):
        return severity
    if not isinstance(severity, str):
        return None
    try:
        return NotificationLevel(severity.upper())
    except ValueError:
        return None


def classify(
    action: "AdminAction | str | None",
    severity: "NotificationLevel | str | None" = None,
) -> Classification:
    known = _to_action(action)
    if known is not None and known in CLASSIFICATIONS:
        return CLASSIFICATIONS[known]

    level = _to_level(severity)
    if level in ESCALATED_SEVERITIES:
        return Classification(True, NotificationPriority.SEVERITY_BASED, level)
    return _NOT_IMPORTANT


def format_message(
    action: "AdminAction | str | None",
    details: Mapping[str, Any] | None = None,
    username: str | None = None,
    resource: str | None = None,
) -> str:
    known = _to_action(action)
    name = username or "Unknown"
    registered = "Unknown"
    if isinstance(details, Mapping):
        registered = details.get("username") or "Unknown"

    template = MESSAGE_TEMPLATES.get(known) if known is not None else None
    if template is None:
        label = known.value if known is not None else (str(action) if action else "Unknown Action")
        return DEFAULT_TEMPLATE.format(username=name, action=label)
    return template.format(username=name, registered=registered, resource=resource or "")


@dataclass(frozen=True)
class AdminNotification:
    message: str
    priority: NotificationPriority
    level: NotificationLevel
    action: str
    username: str | None = None
    resource: str | None = None
    details: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["priority"] = self.priority.value
        payload["level"] = self.level.value
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


def build_notification(
    action: "AdminAction | str",
    username: str | None,
    details: Mapping[str, Any] | None = None,
    resource: str | None = None,
    severity: "NotificationLevel | str | None" = None,
    now: datetime | None = None,
) -> AdminNotification | None:
    """Classify and format ``action``; ``None`` when admins need not hear about it."""
    result = classify(action, severity)
    if not result.important:
        return None
    known = _to_action(action)
    return AdminNotification(
        message=format_message(action, details, username, resource),
        priority=result.priority,
        level=result.level,
        action=known.value if known is not None else str(action),
        username=username,
        resource=resource,
        details=dict(details) if details else None,
        timestamp=now or datetime.now(timezone.utc),
    )
