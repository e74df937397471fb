# exams/serializers.py
import uuid

from rest_framework import serializers

from common.enums import ProctoringCode, QuestionType
from exams import languages

from .models import Question, Submission, Test, TestAttempt, TestQuestion


# ----- question bank (staff) -----

class OptionInSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True, max_length=64)
    text = serializers.CharField()
    isCorrect = serializers.BooleanField(default=False)


class TestCaseInSerializer(serializers.Serializer):
    id = serializers.CharField(required=False, allow_blank=True, max_length=64)
    input = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")
    expectedOutput = serializers.CharField(allow_blank=True, trim_whitespace=False)
    isHidden = serializers.BooleanField(default=False)
    points = serializers.IntegerField(min_value=1, default=1)


class QuestionSerializer(serializers.ModelSerializer):
    """Full question, answers included. Staff only."""
    options = OptionInSerializer(many=True, required=False)
    test_cases = TestCaseInSerializer(many=True, required=False)
    allowed_languages = serializers.ListField(
        child=serializers.ChoiceField(choices=languages.supported_ids()), required=False
    )
    title = serializers.CharField(min_length=3, max_length=200)
    content = serializers.CharField(min_length=10)
    marks = serializers.IntegerField(min_value=1, max_value=100, required=False)
    time_limit_seconds = serializers.IntegerField(min_value=1, max_value=30, required=False)
    memory_limit_mb = serializers.IntegerField(min_value=32, max_value=512, required=False)

    class Meta:
        model = Question
        fields = [
            "id", "question_type", "title", "content", "marks", "difficulty", "tags",
            "options", "test_cases", "allowed_languages", "time_limit_seconds", "memory_limit_mb",
            "starter_code", "solution", "constraints", "created_at", "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate(self, attrs):
        qtype = attrs.get("question_type") or getattr(self.instance, "question_type", QuestionType.MCQ)

        if qtype == QuestionType.MCQ:
            options = attrs.get("options", None)
            if options is None and self.instance is None:
                raise serializers.ValidationError({"options": "MCQ questions need options."})
            if options is not None:
                if not 2 <= len(options) <= 6:
                    raise serializers.ValidationError({"options": "MCQ questions need between 2 and 6 options."})
                if not any(o.get("isCorrect") for o in options):
                    raise serializers.ValidationError({"options": "At least one option must be correct."})
                if any(not (o.get("text") or "").strip() for o in options):
                    raise serializers.ValidationError({"options": "Option text cannot be blank."})
                attrs["options"] = [
                    {"id": o.get("id") or str(uuid.uuid4()), "text": o["text"], "isCorrect": bool(o.get("isCorrect"))}
                    for o in options
                ]
            if self.instance is None:
                attrs.setdefault("marks", 1)

        elif qtype == QuestionType.CODING:
            cases = attrs.get("test_cases", None)
            if cases is None and self.instance is None:
                raise serializers.ValidationError({"test_cases": "Coding questions need test cases."})
            if cases is not None:
                if not 1 <= len(cases) <= 20:
                    raise serializers.ValidationError({"test_cases": "Coding questions need between 1 and 20 test cases."})
                attrs["test_cases"] = [{**c, "id": c.get("id") or str(uuid.uuid4())} for c in cases]
            if self.instance is None:
                attrs.setdefault("marks", 10)
                attrs.setdefault("allowed_languages", languages.supported_ids())
            if "allowed_languages" in attrs and not attrs["allowed_languages"]:
                raise serializers.ValidationError({"allowed_languages": "Pick at least one language."})

        return attrs

    # options/test_cases are JSON columns, not related rows
    def create(self, validated_data):
        return Question.objects.create(**validated_data)

    def update(self, instance, validated_data):
        for k, v in validated_data.items():
            setattr(instance, k, v)
        instance.save()
        return instance


class TestQuestionSerializer(serializers.ModelSerializer):
    question = QuestionSerializer(read_only=True)
    effective_marks = serializers.SerializerMethodField()

    class Meta:
        model = TestQuestion
        fields = ["id", "order", "override_marks", "effective_marks", "question"]

    def get_effective_marks(self, obj):
        return obj.effective_marks()


class TestSerializer(serializers.ModelSerializer):
    question_count = serializers.SerializerMethodField()

    class Meta:
        model = Test
        fields = [
            "id", "title", "description", "instructions",
            "duration_minutes", "total_marks", "passing_score",
            "shuffle_questions", "show_results", "enable_proctoring", "fullscreen_required", "tab_switch_limit",
            "status", "published_at", "starts_at", "ends_at", "question_count", "created_at", "updated_at",
        ]
        read_only_fields = ["id", "status", "published_at", "created_at", "updated_at"]

    def get_question_count(self, obj):
        return obj.test_questions.count()

    def validate(self, attrs):
        starts = attrs.get("starts_at", getattr(self.instance, "starts_at", None))
        ends = attrs.get("ends_at", getattr(self.instance, "ends_at", None))
        if starts and ends and starts >= ends:
            raise serializers.ValidationError({"ends_at": "Must be later than starts_at."})
        return attrs


class TestQuestionItemSerializer(serializers.Serializer):
    questionId = serializers.UUIDField()
    order = serializers.IntegerField(min_value=0, required=False)
    overrideMarks = serializers.IntegerField(min_value=1, required=False, allow_null=True)


class TestQuestionsInSerializer(serializers.Serializer):
    questions = TestQuestionItemSerializer(many=True)


# ----- student-facing -----

class StudentQuestionSerializer(serializers.ModelSerializer):
    """What a candidate may see: no correct flags, no hidden cases, no solution."""
    options = serializers.SerializerMethodField()
    sample_test_cases = serializers.SerializerMethodField()
    starter_code = serializers.SerializerMethodField()

    class Meta:
        model = Question
        fields = [
            "id", "question_type", "title", "content", "difficulty", "options",
            "sample_test_cases", "allowed_languages", "time_limit_seconds", "memory_limit_mb",
            "starter_code", "constraints",
        ]

    def get_options(self, obj):
        return [{"id": o.get("id"), "text": o.get("text")} for o in (obj.options or [])]

    def get_sample_test_cases(self, obj):
        return [
            {"input": c.get("input", ""), "expectedOutput": c.get("expectedOutput", "")}
            for c in (obj.test_cases or []) if not c.get("isHidden")
        ]

    def get_starter_code(self, obj):
        if obj.question_type != QuestionType.CODING:
            return {}
        allowed = obj.allowed_languages or languages.supported_ids()
        return {lang: (obj.starter_code or {}).get(lang) or languages.starter_code(lang) for lang in allowed}


class StudentTestSerializer(serializers.ModelSerializer):
    questions = serializers.SerializerMethodField()

    class Meta:
        model = Test
        fields = [
            "id", "title", "description", "instructions", "duration_minutes", "total_marks", "passing_score",
            "enable_proctoring", "fullscreen_required", "tab_switch_limit", "questions",
        ]

    def get_questions(self, obj):
        rows = []
        for tq in self.context.get("test_questions", []):
            data = StudentQuestionSerializer(tq.question).data
            data["marks"] = tq.effective_marks()
            data["order"] = tq.order
            rows.append(data)
        return rows


class AttemptSerializer(serializers.ModelSerializer):
    remaining_seconds = serializers.SerializerMethodField()

    class Meta:
        model = TestAttempt
        fields = [
            "id", "test", "user", "status", "started_at", "end_time", "submitted_at",
            "total_score", "percentage", "passed", "tab_switch_count", "warnings", "terminated_reason",
            "remaining_seconds",
        ]

    def get_remaining_seconds(self, obj):
        return obj.remaining_seconds if obj.status == "IN_PROGRESS" else 0


class SubmissionSerializer(serializers.ModelSerializer):
    """Student view: coding results pass through the hidden-case mask in the view."""

    class Meta:
        model = Submission
        fields = [
            "id", "attempt", "question", "selected_option", "code", "language",
            "execution_results", "is_correct", "score", "is_flagged", "graded_at", "submitted_at",
        ]


# ----- request bodies -----

class McqAnswerInSerializer(serializers.Serializer):
    questionId = serializers.UUIDField()
    selectedOption = serializers.CharField(max_length=64)
    attemptId = serializers.UUIDField(required=False)


class CodeInSerializer(serializers.Serializer):
    questionId = serializers.UUIDField()
    code = serializers.CharField(allow_blank=True, trim_whitespace=False)
    language = serializers.CharField(max_length=16)
    attemptId = serializers.UUIDField(required=False)

    def validate_code(self, value):
        limit = self.context.get("max_code_size")
        if limit and len(value) > limit:
            raise serializers.ValidationError(f"Code exceeds {limit} characters.")
        return value


class FlagInSerializer(serializers.Serializer):
    questionId = serializers.UUIDField()
    flagged = serializers.BooleanField(default=True)
    attemptId = serializers.UUIDField(required=False)


class ProctoringEventInSerializer(serializers.Serializer):
    code = serializers.ChoiceField(choices=ProctoringCode.choices)
    details = serializers.DictField(required=False, default=dict)


class ExecuteInSerializer(serializers.Serializer):
    language = serializers.CharField(max_length=16)
    code = serializers.CharField(trim_whitespace=False)
    stdin = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False, default="")

    def validate_code(self, value):
        limit = self.context.get("max_code_size")
        if limit and len(value) > limit:
            raise serializers.ValidationError(f"Code exceeds {limit} characters.")
        return value


class ValidateInSerializer(serializers.Serializer):
    language = serializers.CharField(max_length=16)
    code = serializers.CharField(trim_whitespace=False)
    questionId = serializers.UUIDField()

    def validate_code(self, value):
        limit = self.context.get("max_code_size")
        if limit and len(value) > limit:
            raise serializers.ValidationError(f"Code exceeds {limit} characters.")
        return value


class GradeInSerializer(serializers.Serializer):
    scores = serializers.DictField(child=serializers.DecimalField(max_digits=8, decimal_places=2), default=dict)
