from datetime import timedelta

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils import timezone

from common.enums import CollegeRole
from common.models import TimeStampedModel


class User(AbstractUser):
    email = models.EmailField(unique=True, null=True, blank=True)
    is_super_admin = models.BooleanField(default=False, help_text="Platform owner, every capability.")

    def __str__(self):
        return f"{self.username} • {self.email or '-'}"


class College(TimeStampedModel):
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class Membership(TimeStampedModel):
    user    = models.ForeignKey(User, on_delete=models.CASCADE, related_name="memberships")
    college = models.ForeignKey(College, on_delete=models.CASCADE, related_name="memberships")
    role    = models.CharField(max_length=16, choices=CollegeRole.choices, default=CollegeRole.MEMBER)

    class Meta:
        unique_together = ("user", "college")
        indexes = [models.Index(fields=["college", "role"])]

    def __str__(self):
        return f"{self.user} @ {self.college} ({self.role})"


class AuthSessionQuerySet(models.QuerySet):
    def live(self, now=None):
        return self.filter(expires_at__gt=now or timezone.now())


def _session_expiry():
    return timezone.now() + timedelta(days=settings.SESSION_TTL_DAYS)


class AuthSession(TimeStampedModel):
    """
    One signed-in device. The JWT issued at login carries this row's id as
    the `sid` claim; once `expires_at` passes the token stops authenticating.

    `is_test_locked`/`active_test_attempt` bind the session to an attempt in
    progress. At most one live session per user is locked.
    """
    user    = models.ForeignKey(User, on_delete=models.CASCADE, related_name="auth_sessions")
    college = models.ForeignKey(College, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")

    expires_at = models.DateTimeField(default=_session_expiry)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    is_test_locked = models.BooleanField(default=False)
    active_test_attempt = models.ForeignKey(
        "exams.TestAttempt", on_delete=models.SET_NULL, null=True, blank=True, related_name="locked_sessions"
    )

    objects = AuthSessionQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["user", "expires_at"]),
            models.Index(fields=["user", "is_test_locked"]),
        ]

    @property
    def is_expired(self) -> bool:
        return timezone.now() >= self.expires_at

    def expire(self):
        self.expires_at = timezone.now()
        self.save(update_fields=["expires_at", "updated_at"])

    def __str__(self):
        return f"{self.user} session {self.pk}"
