# exams/permissions.py
from rest_framework.permissions import SAFE_METHODS, BasePermission
from rest_framework.throttling import UserRateThrottle

from accounts.permissions import current_college, user_can
from common.enums import Action, Resource


class ExecutionRateThrottle(UserRateThrottle):
    """Per-user sandbox budget, REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"]["execution"]."""
    scope = "execution"


class CanManageResource(BasePermission):
    """
    Staff CRUD on a college-scoped resource. The view names the resource:

        capability_resource = Resource.QUESTION

    Reads need `read`, POST `create`, PUT/PATCH `update`, DELETE `delete`.
    """
    _METHOD_ACTIONS = {
        "POST": Action.CREATE,
        "PUT": Action.UPDATE,
        "PATCH": Action.UPDATE,
        "DELETE": Action.DELETE,
    }

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        resource = getattr(view, "capability_resource", Resource.TEST)
        action = Action.READ if request.method in SAFE_METHODS else self._METHOD_ACTIONS.get(request.method)
        if action is None:
            return False
        return user_can(user, current_college(request), resource, action)
