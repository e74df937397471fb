from django.contrib import admin

from .models import (
    ExecutionLog, ProctoringEvent, Question, Submission, Test, TestAttempt, TestQuestion,
)


# ----- Inlines -----
class TestQuestionInline(admin.TabularInline):
    model = TestQuestion
    extra = 0
    raw_id_fields = ("question",)
    fields = ("question", "order", "override_marks")
    ordering = ("order",)


class SubmissionInline(admin.TabularInline):
    model = Submission
    extra = 0
    raw_id_fields = ("question",)
    fields = ("question", "selected_option", "language", "is_correct", "score", "is_flagged", "graded_at")
    readonly_fields = ("is_correct", "score", "graded_at")


class ProctoringEventInline(admin.TabularInline):
    model = ProctoringEvent
    extra = 0
    can_delete = False
    fields = ("code", "details", "occurred_at")
    readonly_fields = fields


# ----- ModelAdmins -----
@admin.register(Test)
class TestAdmin(admin.ModelAdmin):
    list_display = ("title", "college", "status", "duration_minutes", "total_marks", "passing_score", "published_at")
    list_filter = ("status", "college", "enable_proctoring")
    search_fields = ("title",)
    raw_id_fields = ("college", "created_by")
    inlines = [TestQuestionInline]


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ("title", "question_type", "college", "marks", "difficulty", "created_at")
    list_filter = ("question_type", "difficulty", "college")
    search_fields = ("title", "content")
    raw_id_fields = ("college", "created_by")


@admin.register(TestAttempt)
class TestAttemptAdmin(admin.ModelAdmin):
    list_display = (
        "user", "test", "status", "started_at", "end_time", "submitted_at",
        "total_score", "percentage", "passed", "tab_switch_count",
    )
    list_filter = ("status", "passed")
    search_fields = ("user__username", "user__email", "test__title")
    raw_id_fields = ("user", "test")
    readonly_fields = ("created_at", "updated_at")
    inlines = [SubmissionInline, ProctoringEventInline]


@admin.register(ExecutionLog)
class ExecutionLogAdmin(admin.ModelAdmin):
    list_display = ("user", "language", "status", "exit_code", "execution_time", "created_at")
    list_filter = ("status", "language")
    search_fields = ("user__username", "user__email", "error_message")
    raw_id_fields = ("user", "attempt", "question")
    readonly_fields = [f.name for f in ExecutionLog._meta.fields]


@admin.register(ProctoringEvent)
class ProctoringEventAdmin(admin.ModelAdmin):
    list_display = ("attempt", "code", "occurred_at")
    list_filter = ("code",)
    raw_id_fields = ("attempt",)
