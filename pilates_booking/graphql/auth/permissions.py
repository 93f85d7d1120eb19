from strawberry.types import Info
from strawberry.permission import BasePermission


class IsAuthenticated(BasePermission):
    message = "Authentication required."

    def has_permission(self, source, info: Info, **kwargs):
        return bool(info.context.actor)


class IsStaff(BasePermission):
    message = "Staff access required."

    def has_permission(self, source, info: Info, **kwargs):
        actor = info.context.actor
        return bool(actor and actor.is_staff)
