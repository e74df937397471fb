from django.test import SimpleTestCase

from common.enums import QuestionType
from common.exceptions import UnsupportedLanguage
from exams.models import Question
from exams.services.grader import grade_coding, mask_case_results, outputs_match

from .helpers import FakeSandbox


def _question(cases, languages=("python",), time_limit=2):
    return Question(
        question_type=QuestionType.CODING, title="Sum", content="Print the sum of two integers.",
        allowed_languages=list(languages), time_limit_seconds=time_limit, test_cases=cases,
    )


class OutputMatchTests(SimpleTestCase):
    def test_trailing_newline_is_ignored(self):
        self.assertTrue(outputs_match("5", "5\n"))

    def test_trailing_space_is_ignored(self):
        self.assertTrue(outputs_match("5 ", "5"))

    def test_inner_content_must_match(self):
        self.assertFalse(outputs_match(" 5\n6", "5"))

    def test_inner_whitespace_is_significant(self):
        self.assertFalse(outputs_match("1  2", "1 2"))


class GradeCodingTests(SimpleTestCase):
    def test_partial_credit_over_weighted_cases(self):
        q = _question([
            {"id": "a", "input": "1", "expectedOutput": "one", "points": 1},
            {"id": "b", "input": "2", "expectedOutput": "two", "points": 2},
            {"id": "c", "input": "3", "expectedOutput": "three", "points": 3},
        ])
        sandbox = FakeSandbox(outputs={"1": "wrong", "2": "two\n", "3": ""})

        grade = grade_coding(q, "print()", "python", sandbox)

        self.assertEqual(grade.total_score, 2)
        self.assertEqual(grade.max_score, 6)
        self.assertEqual(grade.percentage, 33.33)
        self.assertFalse(grade.all_passed)
        self.assertEqual([r["passed"] for r in grade.results], [False, True, False])

    def test_cases_run_in_order_with_question_timeout(self):
        q = _question(
            [{"input": str(i), "expectedOutput": str(i), "points": 1} for i in range(4)],
            time_limit=3,
        )
        sandbox = FakeSandbox(outputs={str(i): str(i) for i in range(4)})

        grade = grade_coding(q, "code", "python", sandbox)

        self.assertTrue(grade.all_passed)
        self.assertEqual([c["stdin"] for c in sandbox.calls], ["0", "1", "2", "3"])
        self.assertTrue(all(c["run_timeout_ms"] == 3000 for c in sandbox.calls))

    def test_gateway_failure_fails_case_and_continues(self):
        q = _question([
            {"input": "boom", "expectedOutput": "x", "points": 2},
            {"input": "ok", "expectedOutput": "fine", "points": 1},
        ])
        sandbox = FakeSandbox(outputs={"ok": "fine"}, fail_on=["boom"])

        grade = grade_coding(q, "code", "python", sandbox)

        self.assertEqual(len(sandbox.calls), 2)
        self.assertFalse(grade.results[0]["passed"])
        self.assertIn("connection refused", grade.results[0]["error"])
        self.assertTrue(grade.results[1]["passed"])
        self.assertEqual(grade.total_score, 1)

    def test_stderr_is_attached_as_error(self):
        q = _question([{"input": "", "expectedOutput": "1", "points": 1}])
        grade = grade_coding(q, "code", "python", FakeSandbox(stderr="Traceback: boom"))
        self.assertFalse(grade.results[0]["passed"])
        self.assertEqual(grade.results[0]["error"], "Traceback: boom")

    def test_crash_after_correct_output_fails_case(self):
        q = _question([{"input": "2 3", "expectedOutput": "5", "points": 3}])
        sandbox = FakeSandbox(outputs={"2 3": "5\n"}, stderr="Traceback: boom", exit_code=1)

        grade = grade_coding(q, "code", "python", sandbox)

        self.assertFalse(grade.results[0]["passed"])
        self.assertEqual(grade.results[0]["points"], 0)
        self.assertEqual(grade.total_score, 0)
        self.assertFalse(grade.all_passed)

    def test_nonzero_exit_without_stderr_reports_exit_code(self):
        q = _question([{"input": "2 3", "expectedOutput": "5", "points": 1}])
        grade = grade_coding(q, "code", "python", FakeSandbox(outputs={"2 3": "5"}, exit_code=137))
        self.assertFalse(grade.results[0]["passed"])
        self.assertEqual(grade.results[0]["error"], "Process exited with code 137")

    def test_failed_compile_fails_case(self):
        q = _question([{"input": "", "expectedOutput": "", "points": 2}], languages=("cpp",))
        grade = grade_coding(q, "int main(", "cpp", FakeSandbox(compile_stderr="main.cpp:1: error"))
        self.assertFalse(grade.results[0]["passed"])
        self.assertEqual(grade.results[0]["error"], "main.cpp:1: error")
        self.assertEqual(grade.total_score, 0)

    def test_language_outside_allowed_set_is_rejected(self):
        q = _question([{"input": "", "expectedOutput": "", "points": 1}], languages=("python",))
        sandbox = FakeSandbox()
        with self.assertRaises(UnsupportedLanguage):
            grade_coding(q, "code", "java", sandbox)
        self.assertEqual(sandbox.calls, [])

    def test_unknown_language_is_rejected_even_if_listed(self):
        q = _question([{"input": "", "expectedOutput": "", "points": 1}], languages=("brainfuck",))
        with self.assertRaises(UnsupportedLanguage):
            grade_coding(q, "code", "brainfuck", FakeSandbox())

    def test_no_cases_scores_zero_percent(self):
        grade = grade_coding(_question([]), "code", "python", FakeSandbox())
        self.assertEqual(grade.max_score, 0)
        self.assertEqual(grade.percentage, 0.0)


class HiddenMaskTests(SimpleTestCase):
    def test_hidden_case_exposes_only_pass_and_points(self):
        q = _question([
            {"input": "1", "expectedOutput": "1", "isHidden": False, "points": 1},
            {"input": "secret", "expectedOutput": "42", "isHidden": True, "points": 2},
        ])
        grade = grade_coding(q, "code", "python", FakeSandbox(outputs={"1": "1", "secret": "41"}))

        visible, hidden = grade.public()["results"]
        self.assertEqual(hidden, {"passed": False, "points": 0, "isHidden": True})
        self.assertEqual(visible["input"], "1")
        self.assertEqual(visible["actualOutput"], "1")

    def test_full_record_keeps_hidden_details(self):
        results = [{"passed": True, "points": 1, "isHidden": True, "input": "x", "expectedOutput": "y"}]
        self.assertEqual(mask_case_results(results), [{"passed": True, "points": 1, "isHidden": True}])
        self.assertIn("input", results[0])
