# exams/services/grader.py
import logging
from dataclasses import dataclass, field

from common.enums import ExecutionStatus
from common.exceptions import ExecutionError, UnsupportedLanguage
from exams import languages
from exams.services.sandbox import log_execution

log = logging.getLogger(__name__)

DEFAULT_CASE_TIMEOUT_MS = 3000
_HIDDEN_FIELDS = ("input", "expectedOutput", "actualOutput", "error")


def outputs_match(actual, expected) -> bool:
    return (actual or "").strip() == (expected or "").strip()


def _stage_error(res):
    if res.status == ExecutionStatus.COMPILE_ERROR:
        return res.compile.stderr or "Compilation failed"
    if res.exit_code != 0:
        return f"Process exited with code {res.exit_code}"
    return None


def mask_case_results(results):
    """Hidden cases keep only pass/fail and points."""
    masked = []
    for r in results:
        if r.get("isHidden"):
            masked.append({"passed": r["passed"], "points": r["points"], "isHidden": True})
        else:
            masked.append(dict(r))
    return masked


@dataclass
class GradeResult:
    results: list = field(default_factory=list)
    total_score: int = 0
    max_score: int = 0

    @property
    def percentage(self) -> float:
        if not self.max_score:
            return 0.0
        return round(self.total_score / self.max_score * 100, 2)

    @property
    def all_passed(self) -> bool:
        return self.total_score == self.max_score

    def as_dict(self):
        """Full record, stored on the submission."""
        return {
            "results": self.results,
            "totalScore": self.total_score,
            "maxScore": self.max_score,
            "percentage": self.percentage,
            "allPassed": self.all_passed,
        }

    def public(self):
        out = self.as_dict()
        out["results"] = mask_case_results(self.results)
        return out


def grade_coding(question, code, language, sandbox, user=None, attempt=None) -> GradeResult:
    """
    Run `code` against every test case of a CODING question, one after the
    other, in stored order. A case whose execution raises is recorded as
    failed and grading continues.
    """
    allowed = question.allowed_languages or languages.supported_ids()
    if language not in allowed or not languages.is_supported(language):
        raise UnsupportedLanguage(
            f"Language '{language}' is not allowed for this question",
            details={"allowed": list(allowed)},
        )

    run_timeout_ms = (question.time_limit_seconds or 0) * 1000 or DEFAULT_CASE_TIMEOUT_MS
    grade = GradeResult()

    for case in question.test_cases or []:
        points = int(case.get("points", 1) or 0)
        stdin = case.get("input", "")
        expected = case.get("expectedOutput", "")
        grade.max_score += points

        row = {
            "id": case.get("id"),
            "isHidden": bool(case.get("isHidden", False)),
            "input": stdin,
            "expectedOutput": expected,
        }
        try:
            res = sandbox.run(language, code, stdin=stdin, run_timeout_ms=run_timeout_ms)
        except ExecutionError as e:
            if user is not None:
                log_execution(user, language, code, stdin, error=e, attempt=attempt, question=question)
            log.warning("Case %s of question %s failed to execute: %s", case.get("id"), question.pk, e)
            row.update(passed=False, actualOutput="", points=0, error=str(e))
            grade.results.append(row)
            continue

        if user is not None:
            log_execution(user, language, code, stdin, result=res, attempt=attempt, question=question)

        # a crash or failed compile fails the case whatever it printed
        ran_clean = res.exit_code == 0 and res.status != ExecutionStatus.COMPILE_ERROR
        passed = ran_clean and outputs_match(res.stdout, expected)
        if passed:
            grade.total_score += points
        row.update(
            passed=passed,
            actualOutput=res.stdout.strip(),
            points=points if passed else 0,
            error=res.stderr or _stage_error(res),
            executionTime=res.execution_time,
        )
        grade.results.append(row)

    return grade
