# accounts/services/session_lock.py
"""
Single-device test sessions.

Starting an attempt expires every other session of the user and binds the
caller's session to the attempt. While that binding is live, requests from
any other session are refused with TEST_LOCKED_ANOTHER_DEVICE.
"""
import logging

from django.db import transaction
from django.utils import timezone

from common.exceptions import TestLockedElsewhere
from accounts.models import AuthSession

log = logging.getLogger(__name__)


def locked_session_for(user):
    return (
        AuthSession.objects.live()
        .filter(user=user, is_test_locked=True, active_test_attempt__isnull=False)
        .first()
    )


def check_lock(user, current_session):
    locked = locked_session_for(user)
    if locked and (current_session is None or locked.pk != current_session.pk):
        raise TestLockedElsewhere()


def has_active_test_session(user):
    """Returns (has_active, attempt_id)."""
    locked = locked_session_for(user)
    return bool(locked), (locked.active_test_attempt_id if locked else None)


@transaction.atomic
def acquire(user, session, attempt):
    now = timezone.now()
    expired = (
        AuthSession.objects
        .filter(user=user, expires_at__gt=now)
        .exclude(pk=session.pk)
        .update(expires_at=now, updated_at=now)
    )
    AuthSession.objects.filter(pk=session.pk).update(
        is_test_locked=True, active_test_attempt=attempt, updated_at=now
    )
    session.is_test_locked = True
    session.active_test_attempt = attempt
    log.info("Session %s locked to attempt %s (%d other sessions expired)", session.pk, attempt.pk, expired)


def release(session):
    if session is None:
        return
    AuthSession.objects.filter(pk=session.pk).update(
        is_test_locked=False, active_test_attempt=None, updated_at=timezone.now()
    )
    session.is_test_locked = False
    session.active_test_attempt = None
    log.info("Session %s unlocked", session.pk)


def release_for_attempt(attempt):
    n = AuthSession.objects.filter(active_test_attempt=attempt).update(
        is_test_locked=False, active_test_attempt=None, updated_at=timezone.now()
    )
    if n:
        log.info("Released %d session lock(s) held by attempt %s", n, attempt.pk)
    return n
