# exams/services/attempts.py
"""
Attempt lifecycle.

    IN_PROGRESS ──submit──────────▶ SUBMITTED ──grade──▶ GRADED
         │ ──expired on touch────▶ AUTO_SUBMITTED ──grade──▶ GRADED
         └ ──terminate───────────▶ TERMINATED

Every sealing transition goes through `finalize`, which scores the attempt
once under a row lock and releases the device lock. Expiry is evaluated
lazily: an IN_PROGRESS attempt past `end_time` is sealed as AUTO_SUBMITTED
the first time anything touches it (and by the periodic sweep).
"""
import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.services import session_lock
from common.enums import AttemptStatus, QuestionType, TestStatus
from common.exceptions import AlreadyExists, NotFound, ValidationFailed
from exams.models import Submission, Test, TestAttempt, TestQuestion
from exams.services import grader, scoring

log = logging.getLogger(__name__)


# ---------------------------------------------------------------- start

def start(test_id, user, session, college):
    """
    Returns (attempt, created). Resuming an IN_PROGRESS attempt never
    resets its timer.
    """
    now = timezone.now()
    test = Test.objects.filter(pk=test_id, college=college, status=TestStatus.PUBLISHED).first()
    if not test or not test.is_in_window(now):
        raise NotFound("Test not found or not available")

    existing = TestAttempt.objects.filter(test=test, user=user).first()
    if existing:
        if existing.status == AttemptStatus.IN_PROGRESS:
            if existing.is_expired:
                finalize(existing, AttemptStatus.AUTO_SUBMITTED)
                raise AlreadyExists("You have already attempted this test")
            log.info("Resuming attempt %s for user %s", existing.pk, user.pk)
            return existing, False
        raise AlreadyExists("You have already attempted this test")

    try:
        with transaction.atomic():
            attempt = TestAttempt.objects.create(
                test=test, user=user, started_at=now, end_time=TestAttempt.end_time_for(test, now),
            )
    except IntegrityError:
        raise AlreadyExists("You have already attempted this test")

    session_lock.acquire(user, session, attempt)
    log.info("Attempt %s started by user %s on test %s", attempt.pk, user.pk, test.pk)
    return attempt, True


# --------------------------------------------------------------- lookups

def ensure_active(attempt):
    """
    Raises NOT_FOUND unless the attempt is accepting answers. An expired
    IN_PROGRESS attempt is sealed on the way out.
    """
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise NotFound("No active test attempt found")
    if attempt.is_expired:
        finalize(attempt, AttemptStatus.AUTO_SUBMITTED)
        raise NotFound("Test time is over; the attempt was auto-submitted")
    return attempt


def active_attempt_for(user, question_id, question_type=None, attempt_id=None):
    """
    The user's IN_PROGRESS attempt whose test contains `question_id`, plus
    that TestQuestion row.
    """
    qs = TestAttempt.objects.select_related("test").filter(user=user, status=AttemptStatus.IN_PROGRESS)
    if attempt_id:
        qs = qs.filter(pk=attempt_id)
    attempt = qs.filter(test__test_questions__question_id=question_id).first()
    if attempt is None:
        raise NotFound("No active test attempt found")
    ensure_active(attempt)

    tq = (
        TestQuestion.objects.select_related("question")
        .filter(test=attempt.test, question_id=question_id)
        .first()
    )
    if tq is None or (question_type and tq.question.question_type != question_type):
        kind = "Coding question" if question_type == QuestionType.CODING else "Question"
        raise NotFound(f"{kind} not found in this test")
    return attempt, tq


# --------------------------------------------------------------- answers

def _write_answer(attempt, question, **fields):
    """
    Upsert a submission only while the attempt row, locked and re-read,
    is still IN_PROGRESS and inside its time. Sealing takes the same row
    lock, so no answer lands after a seal.
    """
    with transaction.atomic():
        locked = TestAttempt.objects.select_for_update().get(pk=attempt.pk)
        if locked.status == AttemptStatus.IN_PROGRESS and not locked.is_expired:
            return Submission.objects.put(locked, question, **fields)

    if locked.status == AttemptStatus.IN_PROGRESS:
        finalize(attempt, AttemptStatus.AUTO_SUBMITTED)
        raise NotFound("Test time is over; the attempt was auto-submitted")
    attempt.status = locked.status
    log.info("Answer for attempt %s refused: attempt is %s", attempt.pk, locked.status)
    raise NotFound("No active test attempt found")


def record_mcq_answer(attempt, test_question, option_id):
    ensure_active(attempt)
    is_correct, score = scoring.grade_mcq(
        test_question.question, option_id, scoring.effective_marks(test_question)
    )
    return _write_answer(
        attempt, test_question.question,
        selected_option=str(option_id),
        is_correct=is_correct,
        score=score,
        graded_at=timezone.now(),
        submitted_at=timezone.now(),
    )


def save_code(attempt, test_question, code, language):
    """Stores the draft only; a previous grade stays as it was."""
    ensure_active(attempt)
    return _write_answer(
        attempt, test_question.question, code=code, language=language, submitted_at=timezone.now(),
    )


def submit_code(attempt, test_question, code, language, sandbox, user=None):
    """Grades `code` against every test case and stores the result. Returns (submission, grade)."""
    ensure_active(attempt)
    question = test_question.question
    grade = grader.grade_coding(question, code, language, sandbox, user=user or attempt.user, attempt=attempt)
    is_correct, score = scoring.coding_score(grade, scoring.effective_marks(test_question))

    submission = _write_answer(
        attempt, question,
        code=code,
        language=language,
        execution_results=grade.as_dict(),
        is_correct=is_correct,
        score=score,
        graded_at=timezone.now(),
        submitted_at=timezone.now(),
    )
    log.info(
        "Attempt %s question %s graded: %s/%s points", attempt.pk, question.pk, grade.total_score, grade.max_score
    )
    return submission, grade


def flag(attempt, test_question, flagged=True):
    ensure_active(attempt)
    return _write_answer(attempt, test_question.question, is_flagged=bool(flagged))


# ---------------------------------------------------------------- sealing

@transaction.atomic
def finalize(attempt, status, reason=""):
    """
    Score and seal an IN_PROGRESS attempt. Returns (attempt, sealed);
    `sealed` is False when another request got there first.
    """
    locked = TestAttempt.objects.select_for_update().select_related("test").get(pk=attempt.pk)
    if locked.status != AttemptStatus.IN_PROGRESS:
        return locked, False

    result = scoring.score_attempt(list(locked.submissions.all()), locked.test)
    locked.total_score = result.total_score
    locked.percentage = result.percentage
    locked.passed = result.passed
    locked.status = status
    locked.submitted_at = timezone.now()
    if reason:
        locked.terminated_reason = reason
    locked.save(update_fields=[
        "total_score", "percentage", "passed", "status", "submitted_at", "terminated_reason", "updated_at",
    ])
    session_lock.release_for_attempt(locked)

    # keep the caller's instance in step
    for f in ("total_score", "percentage", "passed", "status", "submitted_at", "terminated_reason"):
        setattr(attempt, f, getattr(locked, f))

    log.info("Attempt %s sealed as %s (score=%s, %s%%)", locked.pk, status, locked.total_score, locked.percentage)
    return locked, True


def submit(attempt, session=None):
    if attempt.status != AttemptStatus.IN_PROGRESS:
        raise NotFound("No active test attempt found")
    status = AttemptStatus.AUTO_SUBMITTED if attempt.is_expired else AttemptStatus.SUBMITTED
    sealed, did_seal = finalize(attempt, status)
    if not did_seal:
        raise NotFound("No active test attempt found")
    session_lock.release(session)
    return sealed


def terminate(attempt, reason):
    sealed, did_seal = finalize(attempt, AttemptStatus.TERMINATED, reason=reason)
    if did_seal:
        log.info("Attempt %s terminated: %s", attempt.pk, reason)
    return sealed


def finalize_expired(now=None):
    """Seal every IN_PROGRESS attempt past its end time. Returns how many were sealed."""
    now = now or timezone.now()
    sealed = 0
    for attempt in TestAttempt.objects.filter(status=AttemptStatus.IN_PROGRESS, end_time__lte=now):
        _, did_seal = finalize(attempt, AttemptStatus.AUTO_SUBMITTED)
        sealed += int(did_seal)
    return sealed


# ------------------------------------------------------------ manual review

@transaction.atomic
def grade(attempt, overrides):
    """
    Staff review of a sealed attempt. `overrides` maps question id → score;
    totals are recomputed and the attempt becomes GRADED.
    """
    locked = TestAttempt.objects.select_for_update().select_related("test").get(pk=attempt.pk)
    if locked.status not in (AttemptStatus.SUBMITTED, AttemptStatus.AUTO_SUBMITTED, AttemptStatus.GRADED):
        raise ValidationFailed("Only submitted attempts can be graded.")

    test_questions = {
        str(tq.question_id): tq
        for tq in TestQuestion.objects.select_related("question").filter(test=locked.test)
    }
    now = timezone.now()
    for question_id, value in (overrides or {}).items():
        tq = test_questions.get(str(question_id))
        if tq is None:
            raise ValidationFailed(f"Question {question_id} is not part of this test.")
        marks = tq.effective_marks()
        score = Decimal(str(value))
        if score < 0 or score > marks:
            raise ValidationFailed(f"Score for question {question_id} must be between 0 and {marks}.")
        Submission.objects.put(locked, tq.question, score=score, is_correct=score == marks, graded_at=now)

    result = scoring.score_attempt(list(locked.submissions.all()), locked.test)
    locked.total_score = result.total_score
    locked.percentage = result.percentage
    locked.passed = result.passed
    locked.status = AttemptStatus.GRADED
    locked.save(update_fields=["total_score", "percentage", "passed", "status", "updated_at"])
    log.info("Attempt %s graded manually (score=%s)", locked.pk, locked.total_score)
    return locked
