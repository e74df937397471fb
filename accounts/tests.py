from django.test import SimpleTestCase, TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from accounts.models import AuthSession
from accounts.permissions import ROLE_GRANTS, has_permission
from accounts.services import session_lock
from common.enums import Action, CollegeRole, Resource
from common.exceptions import TestLockedElsewhere
from exams.services import attempts
from exams.tests.helpers import make_college, make_user, mcq, open_session, published_test


class RoleGrantTests(SimpleTestCase):
    def test_owner_holds_every_grant(self):
        for role, grants in ROLE_GRANTS.items():
            for resource, actions in grants.items():
                for action in actions:
                    self.assertTrue(has_permission(CollegeRole.OWNER, resource, action), (role, resource, action))
        self.assertTrue(has_permission(CollegeRole.OWNER, Resource.MEMBERS, Action.REMOVE))

    def test_admin_manages_content_but_not_members(self):
        self.assertTrue(has_permission(CollegeRole.ADMIN, Resource.TEST, Action.PUBLISH))
        self.assertTrue(has_permission(CollegeRole.ADMIN, Resource.QUESTION, Action.DELETE))
        self.assertTrue(has_permission(CollegeRole.ADMIN, Resource.MEMBERS, Action.INVITE))
        self.assertFalse(has_permission(CollegeRole.ADMIN, Resource.MEMBERS, Action.REMOVE))
        self.assertFalse(has_permission(CollegeRole.ADMIN, Resource.SETTINGS, Action.UPDATE))

    def test_recruiter_reads_results_only(self):
        self.assertTrue(has_permission(CollegeRole.RECRUITER, Resource.RESULTS, Action.EXPORT))
        self.assertFalse(has_permission(CollegeRole.RECRUITER, Resource.TEST, Action.READ))
        self.assertFalse(has_permission(CollegeRole.RECRUITER, Resource.QUESTION, Action.CREATE))

    def test_member_reads(self):
        self.assertTrue(has_permission(CollegeRole.MEMBER, Resource.TEST, Action.READ))
        self.assertFalse(has_permission(CollegeRole.MEMBER, Resource.TEST, Action.CREATE))
        self.assertFalse(has_permission(CollegeRole.MEMBER, Resource.RESULTS, Action.EXPORT))

    def test_unknown_role_gets_nothing(self):
        self.assertFalse(has_permission(None, Resource.TEST, Action.READ))
        self.assertFalse(has_permission("janitor", Resource.TEST, Action.READ))


class SessionLockTests(TestCase):
    def setUp(self):
        self.college = make_college()
        self.user = make_user("asha", self.college)
        self.session = open_session(self.user, self.college)
        self.test = published_test(self.college, [mcq(self.college)])

    def _start(self):
        attempt, _ = attempts.start(self.test.pk, self.user, self.session, self.college)
        return attempt

    def test_no_lock_before_start(self):
        self.assertEqual(session_lock.has_active_test_session(self.user), (False, None))
        session_lock.check_lock(self.user, self.session)

    def test_lock_binds_session_to_attempt(self):
        attempt = self._start()
        self.assertEqual(session_lock.has_active_test_session(self.user), (True, attempt.pk))
        session_lock.check_lock(self.user, self.session)

    def test_other_session_is_refused(self):
        self._start()
        other = open_session(self.user, self.college)
        with self.assertRaises(TestLockedElsewhere):
            session_lock.check_lock(self.user, other)

    def test_expired_lock_holder_does_not_block(self):
        self._start()
        self.session.expire()
        session_lock.check_lock(self.user, open_session(self.user, self.college))

    def test_release_is_idempotent(self):
        self._start()
        session_lock.release(self.session)
        session_lock.release(self.session)
        session_lock.release(None)
        self.assertEqual(session_lock.has_active_test_session(self.user), (False, None))

    def test_release_for_attempt_clears_every_holder(self):
        attempt = self._start()
        self.assertEqual(session_lock.release_for_attempt(attempt), 1)
        self.assertEqual(session_lock.release_for_attempt(attempt), 0)


class LoginTests(TestCase):
    def setUp(self):
        self.college = make_college()
        self.user = make_user("asha", self.college, password="correct-horse")
        self.client = APIClient()

    def login(self, **extra):
        body = {"email": "asha@example.com", "password": "correct-horse", **extra}
        return self.client.post("/api/auth/login/", body, format="json")

    def test_login_opens_session_bound_token(self):
        response = self.login()
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["role"], CollegeRole.MEMBER)
        self.assertEqual(data["college"]["slug"], "acme")

        sid = AccessToken(data["access"])["sid"]
        session = AuthSession.objects.get(pk=sid)
        self.assertEqual(session.user, self.user)
        self.assertEqual(session.college, self.college)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {data['access']}")
        me = self.client.get("/api/auth/session/").json()["data"]
        self.assertEqual(me["session"]["id"], sid)

    def test_wrong_password(self):
        response = self.login(password="nope")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "UNAUTHORIZED")

    def test_unknown_college(self):
        response = self.login(college="globex")
        self.assertEqual(response.status_code, 403)

    def test_login_refused_while_test_locked(self):
        session = open_session(self.user, self.college)
        test = published_test(self.college, [mcq(self.college)])
        attempts.start(test.pk, self.user, session, self.college)

        response = self.login()

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"]["code"], "TEST_LOCKED_ANOTHER_DEVICE")
        self.assertEqual(AuthSession.objects.filter(user=self.user).count(), 1)

    def test_missing_fields_are_validation_errors(self):
        response = self.client.post("/api/auth/login/", {"email": "asha@example.com"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("password", response.json()["error"]["details"])
