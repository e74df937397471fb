# exams/views_execute.py
"""
Sandbox endpoints outside of an attempt: free runs, run-against-samples,
language list, health.
"""
import logging

from django.conf import settings
from django.shortcuts import get_object_or_404
from rest_framework import permissions
from rest_framework.views import APIView

from accounts.permissions import IsCollegeMember, current_college
from common.enums import QuestionType
from common.exceptions import ExecutionError, ServiceUnavailable, UnsupportedLanguage, ValidationFailed
from common.responses import ok

from . import languages
from .models import Question
from .permissions import ExecutionRateThrottle
from .serializers import ExecuteInSerializer, ValidateInSerializer
from .services import grader
from .services.sandbox import log_execution
from .views import sandbox

log = logging.getLogger(__name__)


class ExecuteView(APIView):
    """
    POST /api/execute/
    Body: {"language": "python", "code": "...", "stdin": ""}
    """
    permission_classes = [permissions.IsAuthenticated]
    throttle_classes = [ExecutionRateThrottle]

    def post(self, request):
        ser = ExecuteInSerializer(data=request.data, context={"max_code_size": settings.MAX_CODE_SIZE})
        ser.is_valid(raise_exception=True)
        language = ser.validated_data["language"]
        code = ser.validated_data["code"]
        stdin = ser.validated_data["stdin"]

        if not languages.is_supported(language):
            raise UnsupportedLanguage(
                f"Language '{language}' is not supported", details={"supported": languages.supported_ids()}
            )

        try:
            result = sandbox().run(language, code, stdin=stdin)
        except ExecutionError as e:
            log_execution(request.user, language, code, stdin, error=e)
            log.error("Execution failed for user %s (%s): %s", request.user.pk, language, e)
            raise ExecutionError("Failed to execute code")

        log_execution(request.user, language, code, stdin, result=result)
        return ok(result.as_dict())


class ValidateView(APIView):
    """
    POST /api/execute/validate/
    Body: {"language": "...", "code": "...", "questionId": "<uuid>"}

    Runs the code against the question's cases; hidden cases come back masked.
    """
    permission_classes = [permissions.IsAuthenticated, IsCollegeMember]
    throttle_classes = [ExecutionRateThrottle]

    def post(self, request):
        ser = ValidateInSerializer(data=request.data, context={"max_code_size": settings.MAX_CODE_SIZE})
        ser.is_valid(raise_exception=True)

        question = get_object_or_404(
            Question, pk=ser.validated_data["questionId"], college=current_college(request),
        )
        if question.question_type != QuestionType.CODING:
            raise ValidationFailed("Only coding questions can be validated")

        grade = grader.grade_coding(
            question, ser.validated_data["code"], ser.validated_data["language"], sandbox(), user=request.user,
        )
        return ok(grade.public())


class LanguagesView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return ok(languages.as_dicts())


class HealthView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        try:
            runtimes = sandbox().runtimes()
        except ExecutionError as e:
            log.error("Sandbox health check failed: %s", e)
            raise ServiceUnavailable("Code execution service is unavailable")
        return ok({"status": "healthy", "runtimes": len(runtimes)})
