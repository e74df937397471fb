import django_filters

from common.enums import Difficulty, QuestionType, TestStatus

from .models import Question, Test


class QuestionFilter(django_filters.FilterSet):
    type = django_filters.ChoiceFilter(field_name="question_type", choices=QuestionType.choices)
    difficulty = django_filters.ChoiceFilter(choices=Difficulty.choices)
    search = django_filters.CharFilter(field_name="title", lookup_expr="icontains")

    class Meta:
        model = Question
        fields = ["type", "difficulty", "search"]


class TestFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=TestStatus.choices)
    search = django_filters.CharFilter(field_name="title", lookup_expr="icontains")

    class Meta:
        model = Test
        fields = ["status", "search"]
