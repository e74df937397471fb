# exams/services/proctoring.py
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from common.enums import ProctoringCode
from exams.models import ProctoringEvent, TestAttempt
from exams.services import attempts

log = logging.getLogger(__name__)


def record_violation(attempt, code, details=None):
    """
    Log one proctoring event against an active attempt. When proctoring is
    on and tab switches exceed the test's limit the attempt is terminated.

    Returns {"terminated", "tab_switch_count", "warnings", "status"}.
    """
    attempts.ensure_active(attempt)
    details = details or {}
    test = attempt.test

    with transaction.atomic():
        ProctoringEvent.objects.create(attempt=attempt, code=code, details=details)
        locked = TestAttempt.objects.select_for_update().get(pk=attempt.pk)
        locked.warnings = [
            *(locked.warnings or []),
            {"code": code, "at": timezone.now().isoformat(), "details": details},
        ]
        update = ["warnings", "updated_at"]
        if code == ProctoringCode.TAB_SWITCH:
            locked.tab_switch_count = F("tab_switch_count") + 1
            update.append("tab_switch_count")
        locked.save(update_fields=update)
        locked.refresh_from_db(fields=["tab_switch_count", "warnings"])

    attempt.tab_switch_count = locked.tab_switch_count
    attempt.warnings = locked.warnings

    terminated = False
    if test.enable_proctoring and attempt.tab_switch_count > test.tab_switch_limit:
        reason = f"Tab switch limit exceeded ({attempt.tab_switch_count}/{test.tab_switch_limit})"
        attempts.terminate(attempt, reason)
        terminated = True
        log.info("Attempt %s terminated by proctoring policy", attempt.pk)

    return {
        "terminated": terminated,
        "tab_switch_count": attempt.tab_switch_count,
        "warnings": len(attempt.warnings or []),
        "status": attempt.status,
    }
