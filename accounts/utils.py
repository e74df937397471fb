# accounts/utils.py
from .models import College, Membership


def client_ip(request):
    xff = request.META.get("HTTP_X_FORWARDED_FOR")
    if xff:
        return xff.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR")


def resolve_college(user, slug=None):
    """
    College the new session acts in: the one named by `slug`, or the user's
    oldest membership. Super admins may pick any active college.
    Returns (college, role) or (None, None).
    """
    memberships = Membership.objects.filter(user=user, college__is_active=True).select_related("college")
    if slug:
        m = memberships.filter(college__slug=slug).first()
        if m:
            return m.college, m.role
        if user.is_super_admin:
            return College.objects.filter(slug=slug, is_active=True).first(), None
        return None, None

    m = memberships.order_by("created_at").first()
    return (m.college, m.role) if m else (None, None)
