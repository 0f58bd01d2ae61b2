from sqladmin import ModelView
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request

from masjid_dashboard.config import settings
from masjid_dashboard.models import ActivityLog, User


class ActivityLogAdmin(ModelView, model=ActivityLog):
    name = "Activity Log"
    name_plural = "Activity Logs"
    icon = "fa-solid fa-clock-rotate-left"
    column_list = [
        ActivityLog.id,
        ActivityLog.timestamp,
        ActivityLog.user,
        ActivityLog.role,
        ActivityLog.action,
        ActivityLog.success,
        ActivityLog.ip_address,
    ]
    column_searchable_list = [ActivityLog.user, ActivityLog.action, ActivityLog.details]
    column_sortable_list = [ActivityLog.timestamp, ActivityLog.user, ActivityLog.role]
    column_filters = [ActivityLog.role, ActivityLog.success]
    column_default_sort = [(ActivityLog.timestamp, True)]
    # Audit rows are immutable; retention goes through /api/activity-logs.
    can_create = False
    can_edit = False
    can_delete = False
    can_export = True
    page_size = 50
    page_size_options = [25, 50, 100]


class UserAdmin(ModelView, model=User):
    name = "User"
    name_plural = "Users"
    icon = "fa-solid fa-users"
    column_list = [
        User.id,
        User.username,
        User.email,
        User.role,
        User.is_active,
        User.created_at,
    ]
    column_searchable_list = [User.username, User.email]
    column_filters = [User.role, User.is_active]
    can_create = True
    can_edit = True
    can_delete = True


class AdminAuth(AuthenticationBackend):
    async def login(self, request: Request) -> bool:
        form = await request.form()
        if (
            form.get("username") == settings.ADMIN_USERNAME
            and form.get("password") == settings.ADMIN_PASSWORD
        ):
            request.session.update(
                {"authenticated": True, "admin_username": settings.ADMIN_USERNAME}
            )
            return True
        return False

    async def authenticate(self, request: Request) -> bool:
        return request.session.get("authenticated", False)

    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True
