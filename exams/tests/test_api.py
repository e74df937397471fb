from django.test import TestCase

from common.enums import AttemptStatus, CollegeRole, ExecutionStatus, ProctoringCode, QuestionType
from exams.models import ExecutionLog, ProctoringEvent, Question, Test, TestAttempt

from .helpers import (
    FakeSandbox, client_for, coding, make_college, make_user, mcq, open_session, published_test, use_sandbox,
)


class CandidateFlowTests(TestCase):
    def setUp(self):
        self.college = make_college()
        self.user = make_user("asha", self.college)
        self.session = open_session(self.user, self.college)
        self.client = client_for(self.session)
        self.mcq = mcq(self.college, marks=4)
        self.coding = coding(self.college, marks=6)
        self.test = published_test(self.college, [self.mcq, self.coding])
        self.sandbox = use_sandbox(self, FakeSandbox(outputs={"2 3": "5\n"}))

    def start(self, client=None):
        return (client or self.client).post(f"/api/tests/{self.test.pk}/start/")

    def test_start_then_resume(self):
        first = self.start()
        self.assertEqual(first.status_code, 201)
        body = first.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["status"], AttemptStatus.IN_PROGRESS)

        again = self.start()
        self.assertEqual(again.status_code, 200)
        self.assertEqual(again.json()["message"], "Resuming existing attempt")
        self.assertEqual(again.json()["data"]["id"], body["data"]["id"])

    def test_candidate_view_hides_answers(self):
        response = self.client.get(f"/api/tests/{self.test.pk}/")
        self.assertEqual(response.status_code, 200)
        questions = {q["question_type"]: q for q in response.json()["data"]["questions"]}
        self.assertNotIn("isCorrect", questions[QuestionType.MCQ]["options"][0])
        self.assertEqual(questions[QuestionType.CODING]["sample_test_cases"], [{"input": "2 3", "expectedOutput": "5"}])
        self.assertEqual(set(questions[QuestionType.CODING]["starter_code"]), {"python", "cpp"})

    def test_second_device_is_locked_out(self):
        self.start()
        other = client_for(open_session(self.user, self.college))

        response = other.post("/api/submissions/mcq/", {"questionId": str(self.mcq.pk), "selectedOption": "B"},
                              format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "TEST_LOCKED_ANOTHER_DEVICE")

    def test_sessions_opened_before_start_stop_authenticating(self):
        earlier = client_for(open_session(self.user, self.college))
        self.start()
        response = earlier.get("/api/auth/session/")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")

    def test_mcq_answer_and_flag(self):
        self.start()
        response = self.client.post(
            "/api/submissions/mcq/", {"questionId": str(self.mcq.pk), "selectedOption": "B"}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["data"]["is_correct"])

        response = self.client.post("/api/submissions/flag/", {"questionId": str(self.mcq.pk)}, format="json")
        self.assertTrue(response.json()["data"]["is_flagged"])

    def test_answer_without_attempt_is_not_found(self):
        response = self.client.post(
            "/api/submissions/mcq/", {"questionId": str(self.mcq.pk), "selectedOption": "B"}, format="json"
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "NOT_FOUND")

    def test_code_submit_masks_hidden_cases(self):
        self.start()
        response = self.client.post(
            "/api/submissions/code/submit/",
            {"questionId": str(self.coding.pk), "code": "print(sum(map(int, input().split())))", "language": "python"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        visible, hidden = data["results"]
        self.assertTrue(visible["passed"])
        self.assertEqual(visible["expectedOutput"], "5")
        self.assertEqual(hidden, {"passed": False, "points": 0, "isHidden": True})
        self.assertEqual(data["totalScore"], 3)
        self.assertFalse(data["allPassed"])
        self.assertEqual(ExecutionLog.objects.filter(user=self.user).count(), 2)

        attempt_id = TestAttempt.objects.get(user=self.user).pk
        rows = self.client.get(f"/api/submissions/attempt/{attempt_id}/").json()["data"]
        self.assertNotIn("input", rows[0]["execution_results"]["results"][1])

    def test_code_submit_with_disallowed_language(self):
        self.start()
        response = self.client.post(
            "/api/submissions/code/submit/",
            {"questionId": str(self.coding.pk), "code": "int main(){}", "language": "java"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "UNSUPPORTED_LANGUAGE")
        self.assertEqual(response.json()["error"]["details"]["allowed"], ["python", "cpp"])

    def test_submit_and_results(self):
        self.start()
        self.client.post(
            "/api/submissions/mcq/", {"questionId": str(self.mcq.pk), "selectedOption": "B"}, format="json"
        )
        self.client.post(
            "/api/submissions/code/submit/",
            {"questionId": str(self.coding.pk), "code": "x", "language": "python"},
            format="json",
        )

        response = self.client.post(f"/api/tests/{self.test.pk}/submit/")
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["status"], AttemptStatus.SUBMITTED)
        self.assertEqual(data["total_score"], "7.00")
        self.assertEqual(data["percentage"], "70.00")
        self.assertTrue(data["passed"])

        results = self.client.get(f"/api/submissions/results/{data['id']}/").json()["data"]
        self.assertEqual(results["max_score"], 10)
        self.assertEqual(len(results["question_results"]), 2)

        again = self.client.post(f"/api/tests/{self.test.pk}/submit/")
        self.assertEqual(again.status_code, 404)

    def test_results_hidden_when_disabled(self):
        self.test.show_results = False
        self.test.save()
        attempt_id = self.start().json()["data"]["id"]
        self.client.post(f"/api/tests/{self.test.pk}/submit/")

        data = self.client.get(f"/api/submissions/results/{attempt_id}/").json()["data"]

        self.assertEqual(data["message"], "Results are not available for this test")
        self.assertNotIn("total_score", data)

    def test_results_of_running_attempt_are_not_found(self):
        attempt_id = self.start().json()["data"]["id"]
        response = self.client.get(f"/api/submissions/results/{attempt_id}/")
        self.assertEqual(response.status_code, 404)

    def test_tab_switches_past_limit_terminate(self):
        self.test.tab_switch_limit = 1
        self.test.save()
        self.start()
        url = f"/api/tests/{self.test.pk}/proctoring-events/"

        first = self.client.post(url, {"code": ProctoringCode.TAB_SWITCH}, format="json").json()["data"]
        self.assertFalse(first["terminated"])
        self.client.post(url, {"code": ProctoringCode.COPY_PASTE, "details": {"chars": 120}}, format="json")
        second = self.client.post(url, {"code": ProctoringCode.TAB_SWITCH}, format="json").json()["data"]

        self.assertTrue(second["terminated"])
        self.assertEqual(second["tab_switch_count"], 2)
        self.assertEqual(second["warnings"], 3)
        attempt = TestAttempt.objects.get(user=self.user)
        self.assertEqual(attempt.status, AttemptStatus.TERMINATED)
        self.assertEqual(attempt.terminated_reason, "Tab switch limit exceeded (2/1)")
        self.assertEqual(ProctoringEvent.objects.filter(attempt=attempt).count(), 3)

        after = self.client.post(url, {"code": ProctoringCode.TAB_SWITCH}, format="json")
        self.assertEqual(after.status_code, 404)

    def test_tab_switches_ignored_when_proctoring_off(self):
        self.test.tab_switch_limit = 0
        self.test.enable_proctoring = False
        self.test.save()
        self.start()
        data = self.client.post(
            f"/api/tests/{self.test.pk}/proctoring-events/", {"code": ProctoringCode.TAB_SWITCH}, format="json"
        ).json()["data"]
        self.assertFalse(data["terminated"])
        self.assertEqual(data["status"], AttemptStatus.IN_PROGRESS)

    def test_logout_releases_lock(self):
        self.start()
        self.assertEqual(self.client.post("/api/auth/logout/").status_code, 200)
        self.session.refresh_from_db()
        self.assertFalse(self.session.is_test_locked)
        self.assertEqual(self.client.get("/api/auth/session/").status_code, 401)


class ExecuteEndpointTests(TestCase):
    def setUp(self):
        self.college = make_college()
        self.user = make_user("dev", self.college)
        self.client = client_for(open_session(self.user, self.college))

    def test_run_is_logged(self):
        use_sandbox(self, FakeSandbox(outputs={"": "hello\n"}))
        response = self.client.post("/api/execute/", {"language": "python", "code": "print('hello')"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["stdout"], "hello\n")
        log = ExecutionLog.objects.get(user=self.user)
        self.assertEqual(log.status, ExecutionStatus.SUCCESS)

    def test_gateway_failure_is_execution_error_and_logged(self):
        use_sandbox(self, FakeSandbox(fail_on=[""]))
        response = self.client.post("/api/execute/", {"language": "python", "code": "print(1)"}, format="json")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"]["code"], "EXECUTION_ERROR")
        self.assertEqual(ExecutionLog.objects.get(user=self.user).status, ExecutionStatus.SYSTEM_ERROR)

    def test_unknown_language(self):
        use_sandbox(self, FakeSandbox())
        response = self.client.post("/api/execute/", {"language": "cobol", "code": "x"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"]["code"], "UNSUPPORTED_LANGUAGE")

    def test_validate_runs_against_question_cases(self):
        use_sandbox(self, FakeSandbox(outputs={"2 3": "5", "10 20": "30"}))
        q = coding(self.college)
        response = self.client.post(
            "/api/execute/validate/", {"language": "python", "code": "x", "questionId": str(q.pk)}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertTrue(data["allPassed"])
        visible, hidden = data["results"]
        self.assertEqual(visible["input"], "2 3")
        self.assertEqual(visible["expectedOutput"], "5")
        self.assertEqual(hidden, {"passed": True, "points": 3, "isHidden": True})
        for key in ("input", "expectedOutput", "actualOutput", "error"):
            self.assertNotIn(key, hidden)

    def test_languages_are_public(self):
        response = self.client_class().get("/api/execute/languages/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual({l["id"] for l in response.json()["data"]}, {"python", "java", "cpp", "c"})

    def test_health(self):
        use_sandbox(self, FakeSandbox())
        self.assertEqual(self.client.get("/api/execute/health/").json()["data"]["status"], "healthy")

    def test_health_when_sandbox_down(self):
        use_sandbox(self, FakeSandbox(healthy=False))
        response = self.client.get("/api/execute/health/")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"]["code"], "SERVICE_UNAVAILABLE")


class StaffEndpointTests(TestCase):
    def setUp(self):
        self.college = make_college()
        self.admin = make_user("priya", self.college, role=CollegeRole.ADMIN)
        self.admin_client = client_for(open_session(self.admin, self.college))
        self.member = make_user("asha", self.college)
        self.member_session = open_session(self.member, self.college)
        self.member_client = client_for(self.member_session)

    def _mcq_payload(self, **overrides):
        payload = {
            "question_type": QuestionType.MCQ,
            "title": "Binary search",
            "content": "What is the worst-case complexity of binary search?",
            "options": [
                {"text": "O(n)", "isCorrect": False},
                {"text": "O(log n)", "isCorrect": True},
            ],
        }
        payload.update(overrides)
        return payload

    def test_admin_creates_question(self):
        response = self.admin_client.post("/api/questions/", self._mcq_payload(), format="json")
        self.assertEqual(response.status_code, 201)
        q = Question.objects.get(pk=response.json()["data"]["id"])
        self.assertEqual(q.marks, 1)
        self.assertTrue(all(o["id"] for o in q.options))

    def test_member_cannot_create_question(self):
        response = self.member_client.post("/api/questions/", self._mcq_payload(), format="json")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "FORBIDDEN")

    def test_invalid_question_reports_field_details(self):
        payload = self._mcq_payload(options=[{"text": "only one", "isCorrect": True}])
        response = self.admin_client.post("/api/questions/", payload, format="json")
        self.assertEqual(response.status_code, 400)
        error = response.json()["error"]
        self.assertEqual(error["code"], "VALIDATION_ERROR")
        self.assertIn("options", error["details"])

    def test_question_filter_by_type(self):
        mcq(self.college)
        coding(self.college)
        response = self.admin_client.get("/api/questions/", {"type": QuestionType.CODING})
        self.assertEqual(response.json()["count"], 1)

    def test_publish_requires_questions(self):
        test = Test.objects.create(college=self.college, title="Draft")
        response = self.admin_client.post(f"/api/tests/{test.pk}/publish/")
        self.assertEqual(response.status_code, 400)

        q = mcq(self.college)
        self.admin_client.post(
            f"/api/tests/{test.pk}/questions/", {"questions": [{"questionId": str(q.pk), "overrideMarks": 5}]},
            format="json",
        )
        response = self.admin_client.post(f"/api/tests/{test.pk}/publish/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], "PUBLISHED")

    def test_members_see_only_published_tests(self):
        Test.objects.create(college=self.college, title="Draft")
        published_test(self.college, [mcq(self.college)])
        self.assertEqual(self.member_client.get("/api/tests/").json()["count"], 1)
        self.assertEqual(self.admin_client.get("/api/tests/").json()["count"], 2)

    def test_manual_grade_through_api(self):
        q = mcq(self.college, marks=4)
        test = published_test(self.college, [q])
        attempt_id = self.member_client.post(f"/api/tests/{test.pk}/start/").json()["data"]["id"]
        self.member_client.post(f"/api/tests/{test.pk}/submit/")

        response = self.admin_client.post(
            f"/api/attempts/{attempt_id}/grade/", {"scores": {str(q.pk): "3.5"}}, format="json"
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["status"], AttemptStatus.GRADED)
        self.assertEqual(response.json()["data"]["total_score"], "3.50")

    def test_member_cannot_grade(self):
        q = mcq(self.college)
        test = published_test(self.college, [q])
        attempt_id = self.member_client.post(f"/api/tests/{test.pk}/start/").json()["data"]["id"]
        response = self.member_client.post(f"/api/attempts/{attempt_id}/grade/", {"scores": {}}, format="json")
        self.assertEqual(response.status_code, 403)
