from datetime import timedelta

from django.apps import apps
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.authentication import tokens_for_session
from accounts.models import AuthSession, College, Membership, User
from common.enums import CollegeRole, QuestionType, TestStatus
from common.exceptions import ExecutionError
from exams.models import Question, Test, TestQuestion
from exams.services.sandbox import ExecutionResult, StageOutput


class FakeSandbox:
    """
    Stand-in for PistonClient. `outputs` maps stdin → stdout; `fail_on`
    lists stdins whose run raises ExecutionError. Every call is recorded.
    """

    def __init__(self, outputs=None, fail_on=(), stderr="", healthy=True, exit_code=None, compile_stderr=None):
        self.outputs = outputs or {}
        self.fail_on = set(fail_on)
        self.stderr = stderr
        self.exit_code = exit_code if exit_code is not None else (1 if stderr else 0)
        self.compile_stderr = compile_stderr
        self.healthy = healthy
        self.calls = []

    def run(self, language, code, stdin="", run_timeout_ms=None, version=None, args=None):
        self.calls.append({"language": language, "code": code, "stdin": stdin, "run_timeout_ms": run_timeout_ms})
        if stdin in self.fail_on:
            raise ExecutionError("Piston execution failed: connection refused")
        compile_stage = None
        if self.compile_stderr is not None:
            compile_stage = StageOutput(stdout="", stderr=self.compile_stderr, exit_code=1)
        return ExecutionResult(
            language=language, version="3.10.0",
            success=self.exit_code == 0 and not self.stderr,
            stdout=self.outputs.get(stdin, ""), stderr=self.stderr,
            exit_code=self.exit_code, execution_time=0.01, compile=compile_stage,
        )

    def runtimes(self):
        if not self.healthy:
            raise ExecutionError("Failed to fetch runtimes: connection refused")
        return [{"language": "python", "version": "3.10.0"}]


def use_sandbox(testcase, fake):
    config = apps.get_app_config("exams")
    previous = config.sandbox
    config.sandbox = fake
    testcase.addCleanup(setattr, config, "sandbox", previous)
    return fake


def make_college(slug="acme"):
    return College.objects.create(name=slug.title(), slug=slug)


def make_user(username, college=None, role=CollegeRole.MEMBER, password="pass-1234"):
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password=password)
    if college is not None:
        Membership.objects.create(user=user, college=college, role=role)
    return user


def open_session(user, college=None):
    return AuthSession.objects.create(user=user, college=college)


def client_for(session):
    client = APIClient()
    tokens = tokens_for_session(session.user, session)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
    return client


def mcq(college, marks=4, correct="B", title="Capital of France"):
    return Question.objects.create(
        college=college, question_type=QuestionType.MCQ, title=title,
        content="Which city is the capital of France?", marks=marks,
        options=[
            {"id": "A", "text": "Berlin", "isCorrect": correct == "A"},
            {"id": "B", "text": "Paris", "isCorrect": correct == "B"},
            {"id": "C", "text": "Madrid", "isCorrect": correct == "C"},
        ],
    )


def coding(college, marks=6, cases=None, title="Add two numbers"):
    return Question.objects.create(
        college=college, question_type=QuestionType.CODING, title=title,
        content="Read two integers and print their sum.", marks=marks,
        allowed_languages=["python", "cpp"], time_limit_seconds=2,
        test_cases=cases or [
            {"id": "t1", "input": "2 3", "expectedOutput": "5", "isHidden": False, "points": 3},
            {"id": "t2", "input": "10 20", "expectedOutput": "30", "isHidden": True, "points": 3},
        ],
    )


def published_test(college, questions, **fields):
    defaults = dict(
        title="Placement Round 1", duration_minutes=30, total_marks=10, passing_score=50,
        status=TestStatus.PUBLISHED, published_at=timezone.now(),
    )
    defaults.update(fields)
    test = Test.objects.create(college=college, **defaults)
    for n, q in enumerate(questions):
        TestQuestion.objects.create(test=test, question=q, order=n)
    return test


def expire(attempt, minutes=1):
    attempt.end_time = timezone.now() - timedelta(minutes=minutes)
    attempt.save(update_fields=["end_time"])
    return attempt
