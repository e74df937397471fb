# exams/views.py
import logging
import random

from django.apps import apps
from django.conf import settings
from django.db import transaction
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.pagination import PageNumberPagination
from rest_framework.views import APIView

from accounts.permissions import (
    HasCapability, IsCollegeMember, TestSessionUnlocked, current_college, current_session, user_can,
)
from common.enums import Action, AttemptStatus, QuestionType, Resource, TestStatus
from common.exceptions import NotFound, ValidationFailed
from common.responses import ok

from .filters import QuestionFilter, TestFilter
from .models import Question, Submission, Test, TestAttempt, TestQuestion
from .permissions import CanManageResource
from .serializers import (
    AttemptSerializer, CodeInSerializer, FlagInSerializer, GradeInSerializer, McqAnswerInSerializer,
    ProctoringEventInSerializer, QuestionSerializer, StudentTestSerializer, SubmissionSerializer,
    TestQuestionSerializer, TestQuestionsInSerializer, TestSerializer,
)
from .services import attempts, proctoring
from .services.grader import mask_case_results

log = logging.getLogger(__name__)


def sandbox():
    return apps.get_app_config("exams").sandbox


def _ordered_test_questions(test, user=None):
    qs = list(TestQuestion.objects.select_related("question").filter(test=test).order_by("order", "created_at"))
    if test.shuffle_questions and user is not None:
        # stable per (user, test) so reloads keep the same order
        random.Random(f"{user.pk}:{test.pk}").shuffle(qs)
    return qs


def _public_execution_results(results):
    if not results:
        return results
    return {**results, "results": mask_case_results(results.get("results", []))}


class SmallPage(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


# ============================ question bank ============================

class QuestionViewSet(viewsets.ModelViewSet):
    serializer_class = QuestionSerializer
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, CanManageResource]
    pagination_class = SmallPage
    capability_resource = Resource.QUESTION
    filter_backends = [DjangoFilterBackend]
    filterset_class = QuestionFilter

    def get_queryset(self):
        return Question.objects.filter(college=current_college(self.request)).order_by("-created_at")

    def perform_create(self, serializer):
        serializer.save(college=current_college(self.request), created_by=self.request.user)

    def list(self, request, *args, **kwargs):
        page = self.paginate_queryset(self.filter_queryset(self.get_queryset()))
        data = self.get_serializer(page, many=True).data
        return ok(data, count=self.paginator.page.paginator.count)

    def retrieve(self, request, *args, **kwargs):
        return ok(self.get_serializer(self.get_object()).data)

    def create(self, request, *args, **kwargs):
        ser = self.get_serializer(data=request.data)
        ser.is_valid(raise_exception=True)
        self.perform_create(ser)
        return ok(ser.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        ser = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        ser.is_valid(raise_exception=True)
        ser.save()
        return ok(ser.data)

    def destroy(self, request, *args, **kwargs):
        self.get_object().delete()
        return ok({"deleted": True})


# ================================ tests ================================

class TestViewSet(viewsets.ModelViewSet):
    """
    Staff CRUD plus the candidate actions of a test:

      POST /api/tests/<id>/start/               begin or resume the attempt
      POST /api/tests/<id>/submit/              seal it
      POST /api/tests/<id>/proctoring-events/   report a violation
    """
    serializer_class = TestSerializer
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, CanManageResource]
    pagination_class = SmallPage
    capability_resource = Resource.TEST
    filter_backends = [DjangoFilterBackend]
    filterset_class = TestFilter

    def _is_staff(self):
        return user_can(self.request.user, current_college(self.request), Resource.TEST, Action.UPDATE)

    def get_queryset(self):
        qs = Test.objects.filter(college=current_college(self.request))
        if not self._is_staff():
            qs = qs.filter(status=TestStatus.PUBLISHED)
        return qs

    def perform_create(self, serializer):
        serializer.save(college=current_college(self.request), created_by=self.request.user)

    def list(self, request, *args, **kwargs):
        page = self.paginate_queryset(self.filter_queryset(self.get_queryset()))
        return ok(self.get_serializer(page, many=True).data, count=self.paginator.page.paginator.count)

    def retrieve(self, request, *args, **kwargs):
        test = self.get_object()
        if self._is_staff():
            data = TestSerializer(test).data
            data["questions"] = TestQuestionSerializer(_ordered_test_questions(test), many=True).data
            return ok(data)
        tqs = _ordered_test_questions(test, user=request.user)
        return ok(StudentTestSerializer(test, context={"test_questions": tqs}).data)

    def create(self, request, *args, **kwargs):
        ser = self.get_serializer(data=request.data)
        ser.is_valid(raise_exception=True)
        self.perform_create(ser)
        return ok(ser.data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        ser = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        ser.is_valid(raise_exception=True)
        ser.save()
        return ok(ser.data)

    def destroy(self, request, *args, **kwargs):
        test = self.get_object()
        if test.attempts.exists():
            raise ValidationFailed("Cannot delete a test that has attempts; archive it instead.")
        test.delete()
        return ok({"deleted": True})

    # ---- staff ----

    @action(detail=True, methods=["post"], url_path="publish",
            permission_classes=[permissions.IsAuthenticated, HasCapability(Resource.TEST, Action.PUBLISH)])
    def publish(self, request, pk=None):
        test = get_object_or_404(Test, pk=pk, college=current_college(request))
        if not test.test_questions.exists():
            raise ValidationFailed("Cannot publish a test without questions")
        test.status = TestStatus.PUBLISHED
        test.published_at = timezone.now()
        test.save(update_fields=["status", "published_at", "updated_at"])
        log.info("Test %s published by user %s", test.pk, request.user.pk)
        return ok(TestSerializer(test).data)

    @action(detail=True, methods=["post"], url_path="questions",
            permission_classes=[permissions.IsAuthenticated, HasCapability(Resource.TEST, Action.UPDATE)])
    def set_questions(self, request, pk=None):
        """Replace the question list: {"questions": [{"questionId", "order"?, "overrideMarks"?}]}"""
        college = current_college(request)
        test = get_object_or_404(Test, pk=pk, college=college)
        if test.attempts.exists():
            raise ValidationFailed("Questions cannot change once candidates have started.")
        ser = TestQuestionsInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        items = ser.validated_data["questions"]

        ids = [i["questionId"] for i in items]
        found = set(Question.objects.filter(college=college, pk__in=ids).values_list("pk", flat=True))
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise ValidationFailed("Unknown questions for this college.", details={"questionIds": missing})

        with transaction.atomic():
            TestQuestion.objects.filter(test=test).delete()
            TestQuestion.objects.bulk_create([
                TestQuestion(
                    test=test, question_id=i["questionId"],
                    order=i.get("order", n), override_marks=i.get("overrideMarks"),
                )
                for n, i in enumerate(items)
            ])
        return ok(TestQuestionSerializer(_ordered_test_questions(test), many=True).data)

    @action(detail=True, methods=["get"], url_path="attempts",
            permission_classes=[permissions.IsAuthenticated, HasCapability(Resource.RESULTS, Action.READ)])
    def list_attempts(self, request, pk=None):
        test = get_object_or_404(Test, pk=pk, college=current_college(request))
        qs = test.attempts.select_related("user").order_by("-percentage", "submitted_at")
        return ok(AttemptSerializer(qs, many=True).data)

    # ---- candidate ----

    @action(detail=True, methods=["post"], url_path="start",
            permission_classes=[permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked])
    def start(self, request, pk=None):
        attempt, created = attempts.start(pk, request.user, current_session(request), current_college(request))
        if created:
            return ok(AttemptSerializer(attempt).data, status=status.HTTP_201_CREATED)
        return ok(AttemptSerializer(attempt).data, message="Resuming existing attempt")

    @action(detail=True, methods=["post"], url_path="submit",
            permission_classes=[permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked])
    def submit(self, request, pk=None):
        attempt = TestAttempt.objects.select_related("test").filter(test_id=pk, user=request.user).first()
        if attempt is None:
            raise NotFound("No active test attempt found")
        sealed = attempts.submit(attempt, current_session(request))
        data = AttemptSerializer(sealed).data
        data["show_results"] = sealed.test.show_results
        return ok(data)

    @action(detail=True, methods=["post"], url_path="proctoring-events",
            permission_classes=[permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked])
    def proctoring_events(self, request, pk=None):
        ser = ProctoringEventInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        attempt = TestAttempt.objects.select_related("test").filter(test_id=pk, user=request.user).first()
        if attempt is None:
            raise NotFound("No active test attempt found")
        outcome = proctoring.record_violation(attempt, ser.validated_data["code"], ser.validated_data["details"])
        return ok(outcome)


class AttemptGradeView(APIView):
    """POST /api/attempts/<id>/grade/  {"scores": {"<questionId>": 4.5, ...}}"""
    permission_classes = [permissions.IsAuthenticated, HasCapability(Resource.RESULTS, Action.EXPORT)]

    def post(self, request, attempt_id):
        attempt = get_object_or_404(TestAttempt, pk=attempt_id, test__college=current_college(request))
        ser = GradeInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        graded = attempts.grade(attempt, ser.validated_data["scores"])
        return ok(AttemptSerializer(graded).data)


# ============================= submissions =============================

class McqAnswerView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked]

    def post(self, request):
        ser = McqAnswerInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        attempt, tq = attempts.active_attempt_for(
            request.user, ser.validated_data["questionId"], QuestionType.MCQ, ser.validated_data.get("attemptId"),
        )
        sub = attempts.record_mcq_answer(attempt, tq, ser.validated_data["selectedOption"])
        return ok(SubmissionSerializer(sub).data)


class CodeSaveView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked]

    def post(self, request):
        ser = CodeInSerializer(data=request.data, context={"max_code_size": settings.MAX_CODE_SIZE})
        ser.is_valid(raise_exception=True)
        attempt, tq = attempts.active_attempt_for(
            request.user, ser.validated_data["questionId"], QuestionType.CODING, ser.validated_data.get("attemptId"),
        )
        sub = attempts.save_code(attempt, tq, ser.validated_data["code"], ser.validated_data["language"])
        data = SubmissionSerializer(sub).data
        data["execution_results"] = _public_execution_results(sub.execution_results)
        return ok(data)


class CodeSubmitView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked]

    def post(self, request):
        ser = CodeInSerializer(data=request.data, context={"max_code_size": settings.MAX_CODE_SIZE})
        ser.is_valid(raise_exception=True)
        attempt, tq = attempts.active_attempt_for(
            request.user, ser.validated_data["questionId"], QuestionType.CODING, ser.validated_data.get("attemptId"),
        )
        sub, grade = attempts.submit_code(
            attempt, tq, ser.validated_data["code"], ser.validated_data["language"], sandbox(), user=request.user,
        )
        return ok({
            "submission_id": str(sub.id),
            "question_id": str(tq.question_id),
            "is_correct": sub.is_correct,
            "score": sub.score,
            **grade.public(),
        })


class FlagView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember, TestSessionUnlocked]

    def post(self, request):
        ser = FlagInSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        attempt, tq = attempts.active_attempt_for(
            request.user, ser.validated_data["questionId"], attempt_id=ser.validated_data.get("attemptId"),
        )
        sub = attempts.flag(attempt, tq, ser.validated_data["flagged"])
        return ok({"question_id": str(tq.question_id), "is_flagged": sub.is_flagged})


class AttemptSubmissionsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, attempt_id):
        attempt = TestAttempt.objects.filter(pk=attempt_id, user=request.user).first()
        if attempt is None:
            raise NotFound("Attempt not found")
        rows = []
        for sub in attempt.submissions.order_by("created_at"):
            data = SubmissionSerializer(sub).data
            data["execution_results"] = _public_execution_results(sub.execution_results)
            rows.append(data)
        return ok(rows)


class AttemptResultsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, attempt_id):
        attempt = (
            TestAttempt.objects.select_related("test")
            .filter(pk=attempt_id, user=request.user, status__in=AttemptStatus.with_results())
            .first()
        )
        if attempt is None:
            raise NotFound("Results not found")

        test = attempt.test
        base = {
            "attempt_id": str(attempt.id),
            "test_id": str(test.id),
            "test_title": test.title,
            "status": attempt.status,
        }
        if not test.show_results:
            return ok({**base, "message": "Results are not available for this test"})

        marks = {
            tq.question_id: tq.effective_marks()
            for tq in TestQuestion.objects.select_related("question").filter(test=test)
        }
        question_results = [
            {
                "question_id": str(sub.question_id),
                "question_title": sub.question.title,
                "type": sub.question.question_type,
                "score": sub.score,
                "max_score": marks.get(sub.question_id, sub.question.marks),
                "is_correct": sub.is_correct,
            }
            for sub in Submission.objects.select_related("question").filter(attempt=attempt)
        ]
        return ok({
            **base,
            "total_score": attempt.total_score,
            "max_score": test.total_marks,
            "percentage": attempt.percentage,
            "passed": attempt.passed,
            "started_at": attempt.started_at,
            "submitted_at": attempt.submitted_at,
            "question_results": question_results,
        })
