# exams/services/scoring.py
from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal

AttemptScore = namedtuple("AttemptScore", "total_score percentage passed")

TWO_PLACES = Decimal("0.01")


def _q(value) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def effective_marks(test_question):
    return test_question.effective_marks()


def grade_mcq(question, option_id, marks):
    """(is_correct, score) for a selected option. Unknown option ids score 0."""
    opt = question.option(option_id)
    is_correct = bool(opt and opt.get("isCorrect"))
    return is_correct, _q(marks if is_correct else 0)


def coding_score(grade_result, marks):
    """Partial credit: the passed share of test-case points, scaled to the question's marks."""
    if not grade_result.max_score:
        return False, _q(0)
    score = Decimal(str(grade_result.total_score)) / grade_result.max_score * marks
    return grade_result.all_passed, _q(score)


def score_attempt(submissions, test) -> AttemptScore:
    """
    Sum of every stored submission score (partial coding credit included;
    ungraded rows count 0) against the test's total marks.
    """
    total = sum((s.score_value for s in submissions), Decimal("0"))
    percentage = total / test.total_marks * 100 if test.total_marks else Decimal("0")
    percentage = _q(percentage)
    return AttemptScore(_q(total), percentage, percentage >= test.passing_score)
