from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from accounts.models import College
from common.enums import (
    AttemptStatus, Difficulty, ExecutionStatus, ProctoringCode, QuestionType, TestStatus,
)
from common.models import TimeStampedModel


class Test(TimeStampedModel):
    college = models.ForeignKey(College, on_delete=models.CASCADE, related_name="tests")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_tests"
    )
    title = models.CharField(max_length=200)
    description  = models.TextField(blank=True)
    instructions = models.TextField(blank=True)

    duration_minutes = models.PositiveIntegerField(
        default=60, validators=[MinValueValidator(5), MaxValueValidator(240)]
    )
    total_marks   = models.PositiveIntegerField(default=100, validators=[MinValueValidator(1)])
    passing_score = models.PositiveIntegerField(
        default=50, validators=[MaxValueValidator(100)], help_text="Percentage needed to pass."
    )

    shuffle_questions  = models.BooleanField(default=False)
    show_results       = models.BooleanField(default=True)
    enable_proctoring  = models.BooleanField(default=True)
    fullscreen_required = models.BooleanField(default=True)
    tab_switch_limit   = models.PositiveIntegerField(default=3, validators=[MaxValueValidator(10)])

    status = models.CharField(max_length=16, choices=TestStatus.choices, default=TestStatus.DRAFT)
    published_at = models.DateTimeField(null=True, blank=True)

    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at   = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ("-created_at",)
        indexes = [models.Index(fields=["college", "status"])]

    def clean(self):
        if self.starts_at and self.ends_at and self.starts_at >= self.ends_at:
            raise ValidationError("starts_at must be earlier than ends_at")

    def is_in_window(self, now=None) -> bool:
        now = now or timezone.now()
        if self.starts_at and now < self.starts_at:
            return False
        if self.ends_at and now > self.ends_at:
            return False
        return True

    def __str__(self):
        return self.title


class Question(TimeStampedModel):
    college = models.ForeignKey(College, on_delete=models.CASCADE, related_name="questions")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="created_questions"
    )
    question_type = models.CharField(max_length=12, choices=QuestionType.choices, default=QuestionType.MCQ)
    title   = models.CharField(max_length=200)
    content = models.TextField()
    marks   = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1), MaxValueValidator(100)])
    difficulty = models.CharField(max_length=16, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    tags = models.JSONField(default=list, blank=True)

    # MCQ: [{"id", "text", "isCorrect"}]
    options = models.JSONField(default=list, blank=True)

    # CODING
    test_cases = models.JSONField(default=list, blank=True)  # [{"id", "input", "expectedOutput", "isHidden", "points"}]
    allowed_languages  = models.JSONField(default=list, blank=True)
    time_limit_seconds = models.PositiveIntegerField(
        default=2, validators=[MinValueValidator(1), MaxValueValidator(30)]
    )
    memory_limit_mb = models.PositiveIntegerField(
        default=256, validators=[MinValueValidator(32), MaxValueValidator(512)]
    )
    starter_code = models.JSONField(default=dict, blank=True)
    solution     = models.TextField(blank=True)
    constraints  = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["college", "question_type"]),
            models.Index(fields=["difficulty"]),
        ]

    def option(self, option_id):
        for opt in self.options or []:
            if str(opt.get("id")) == str(option_id):
                return opt
        return None

    def __str__(self):
        return f"{self.question_type}: {self.title[:60]}"


class TestQuestion(TimeStampedModel):
    test     = models.ForeignKey(Test, on_delete=models.CASCADE, related_name="test_questions")
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name="in_tests")
    order = models.PositiveIntegerField(default=0)
    override_marks = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        unique_together = ("test", "question")
        ordering = ("test", "order", "created_at")
        indexes = [models.Index(fields=["test", "order"])]

    def effective_marks(self):
        return self.override_marks if self.override_marks is not None else self.question.marks


class TestAttempt(TimeStampedModel):
    test = models.ForeignKey(Test, on_delete=models.CASCADE, related_name="attempts")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="test_attempts")

    status = models.CharField(max_length=16, choices=AttemptStatus.choices, default=AttemptStatus.IN_PROGRESS)
    started_at   = models.DateTimeField(default=timezone.now)
    end_time     = models.DateTimeField()
    submitted_at = models.DateTimeField(null=True, blank=True)

    total_score = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    percentage  = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    passed      = models.BooleanField(null=True, blank=True)

    tab_switch_count  = models.PositiveIntegerField(default=0)
    warnings          = models.JSONField(default=list, blank=True)
    terminated_reason = models.TextField(blank=True)

    class Meta:
        unique_together = ("test", "user")   # single attempt per test+user
        indexes = [
            models.Index(fields=["test", "status"]),
            models.Index(fields=["status", "end_time"]),
        ]

    def clean(self):
        if self.submitted_at and self.submitted_at < self.started_at:
            raise ValidationError("submitted_at cannot be earlier than started_at")

    @property
    def is_expired(self) -> bool:
        return timezone.now() >= self.end_time

    @property
    def is_active(self) -> bool:
        return self.status == AttemptStatus.IN_PROGRESS and not self.is_expired

    @property
    def remaining_seconds(self) -> int:
        return max(0, int((self.end_time - timezone.now()).total_seconds()))

    @staticmethod
    def end_time_for(test, started_at):
        return started_at + timedelta(minutes=test.duration_minutes)

    def __str__(self):
        return f"{self.user} • {self.test} • {self.status}"


class SubmissionQuerySet(models.QuerySet):
    def put(self, attempt, question, **fields):
        """Upsert keyed on (attempt, question); last write wins."""
        try:
            with transaction.atomic():
                obj, _ = self.update_or_create(attempt=attempt, question=question, defaults=fields)
        except IntegrityError:
            # lost the insert race; the row exists now
            obj = self.get(attempt=attempt, question=question)
            for k, v in fields.items():
                setattr(obj, k, v)
            obj.save(update_fields=[*fields.keys(), "updated_at"])
        return obj


class Submission(TimeStampedModel):
    attempt  = models.ForeignKey(TestAttempt, on_delete=models.CASCADE, related_name="submissions")
    question = models.ForeignKey(Question, on_delete=models.CASCADE, related_name="submissions")

    selected_option = models.CharField(max_length=64, blank=True)
    code     = models.TextField(blank=True)
    language = models.CharField(max_length=16, blank=True)
    execution_results = models.JSONField(null=True, blank=True)

    is_correct = models.BooleanField(null=True, blank=True)
    score      = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    is_flagged = models.BooleanField(default=False)

    graded_at    = models.DateTimeField(null=True, blank=True)
    submitted_at = models.DateTimeField(default=timezone.now)

    objects = SubmissionQuerySet.as_manager()

    class Meta:
        unique_together = ("attempt", "question")
        indexes = [models.Index(fields=["attempt", "question"])]

    @property
    def score_value(self) -> Decimal:
        return self.score if self.score is not None else Decimal("0")


class ExecutionLog(TimeStampedModel):
    user     = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="execution_logs")
    attempt  = models.ForeignKey(TestAttempt, on_delete=models.SET_NULL, null=True, blank=True, related_name="execution_logs")
    question = models.ForeignKey(Question, on_delete=models.SET_NULL, null=True, blank=True, related_name="execution_logs")

    language = models.CharField(max_length=16)
    code  = models.TextField()
    stdin = models.TextField(blank=True)
    stdout = models.TextField(blank=True)
    stderr = models.TextField(blank=True)
    exit_code = models.IntegerField(null=True, blank=True)
    execution_time = models.FloatField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=ExecutionStatus.choices)
    error_message = models.TextField(blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["user", "created_at"]),
            models.Index(fields=["status"]),
        ]


class ProctoringEvent(TimeStampedModel):
    attempt = models.ForeignKey(TestAttempt, on_delete=models.CASCADE, related_name="proctoring_events")
    code    = models.CharField(max_length=32, choices=ProctoringCode.choices)
    details = models.JSONField(default=dict, blank=True)
    occurred_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["attempt", "code", "occurred_at"])]
