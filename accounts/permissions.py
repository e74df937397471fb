# accounts/permissions.py
from rest_framework.permissions import BasePermission

from common.enums import Action, CollegeRole, Resource

_ALL = {
    Resource.TEST:     {Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.PUBLISH},
    Resource.QUESTION: {Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE},
    Resource.DRIVE:    {Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE, Action.MANAGE_REGISTRATIONS},
    Resource.RESULTS:  {Action.READ, Action.EXPORT},
    Resource.SETTINGS: {Action.READ, Action.UPDATE},
    Resource.MEMBERS:  {Action.INVITE, Action.REMOVE, Action.UPDATE_ROLE},
}

ROLE_GRANTS = {
    CollegeRole.OWNER: _ALL,
    CollegeRole.ADMIN: {
        Resource.TEST:     _ALL[Resource.TEST],
        Resource.QUESTION: _ALL[Resource.QUESTION],
        Resource.DRIVE:    _ALL[Resource.DRIVE],
        Resource.RESULTS:  {Action.READ, Action.EXPORT},
        Resource.SETTINGS: {Action.READ},
        Resource.MEMBERS:  {Action.INVITE},
    },
    CollegeRole.RECRUITER: {
        Resource.DRIVE:   {Action.READ},
        Resource.RESULTS: {Action.READ, Action.EXPORT},
    },
    CollegeRole.MEMBER: {
        Resource.TEST:    {Action.READ},
        Resource.DRIVE:   {Action.READ},
        Resource.RESULTS: {Action.READ},
    },
}


def has_permission(role, resource, action) -> bool:
    """Pure lookup: may `role` perform `action` on `resource`? Unknown roles get nothing."""
    grants = ROLE_GRANTS.get(role)
    if not grants:
        return False
    return action in grants.get(resource, ())


def current_session(request):
    user = getattr(request, "user", None)
    return getattr(user, "auth_session", None)


def current_college(request):
    session = current_session(request)
    return session.college if session else None


def _role(user, college):
    if not user or not user.is_authenticated or college is None:
        return None
    from .models import Membership
    return (
        Membership.objects
        .filter(user=user, college=college)
        .values_list("role", flat=True)
        .first()
    )


def is_college_member(user, college) -> bool:
    if getattr(user, "is_super_admin", False):
        return True
    return _role(user, college) is not None


def user_can(user, college, resource, action) -> bool:
    if getattr(user, "is_super_admin", False):
        return True
    return has_permission(_role(user, college), resource, action)


class IsCollegeMember(BasePermission):
    message = "You are not a member of this college."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and is_college_member(user, current_college(request)))


def HasCapability(resource, action):
    """
    Permission class factory:  permission_classes = [HasCapability(Resource.TEST, Action.PUBLISH)]
    """
    class _HasCapability(BasePermission):
        message = f"You don't have permission to {action} {resource}."

        def has_permission(self, request, view):
            user = request.user
            if not (user and user.is_authenticated):
                return False
            return user_can(user, current_college(request), resource, action)

    _HasCapability.__name__ = f"Has_{resource}_{action}"
    return _HasCapability


class TestSessionUnlocked(BasePermission):
    """
    Deny when another device holds the user's test lock.
    Raises TEST_LOCKED_ANOTHER_DEVICE rather than returning False so the
    envelope carries the specific code.
    """

    def has_permission(self, request, view):
        from .services.session_lock import check_lock

        user = request.user
        if not (user and user.is_authenticated):
            return False
        check_lock(user, current_session(request))
        return True
