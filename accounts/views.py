# accounts/views.py
import logging

from django.contrib.auth import authenticate
from rest_framework import permissions, status
from rest_framework.views import APIView

from common.exceptions import Forbidden, TestLockedElsewhere, Unauthorized
from common.responses import ok

from .authentication import tokens_for_session
from .models import AuthSession, Membership, User
from .permissions import current_session
from .serializers import (
    AuthSessionSerializer,
    CollegeSerializer,
    LoginEmailPasswordSerializer,
    UserSerializer,
)
from .services import session_lock
from .utils import client_ip, resolve_college

log = logging.getLogger(__name__)


class LoginEmailPasswordView(APIView):
    """
    POST /api/auth/login/
    Body: { "email": "user@example.com", "password": "secret", "college": "<slug, optional>" }

    Opens a new AuthSession and returns JWT access/refresh bound to it.
    Refused while another device holds a test lock for this user.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = LoginEmailPasswordSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        email = ser.validated_data["email"].strip().lower()
        password = ser.validated_data["password"]

        user = User.objects.filter(email__iexact=email).first()
        if not user:
            raise Unauthorized("Invalid email or password.")
        if not user.is_active:
            raise Forbidden("This account is inactive.")

        auth_user = authenticate(request, username=user.username, password=password)
        if not auth_user:
            raise Unauthorized("Invalid email or password.")

        locked, _ = session_lock.has_active_test_session(auth_user)
        if locked:
            raise TestLockedElsewhere()

        college, role = resolve_college(auth_user, ser.validated_data.get("college") or None)
        if ser.validated_data.get("college") and college is None:
            raise Forbidden("You are not a member of this college.")

        session = AuthSession.objects.create(
            user=auth_user,
            college=college,
            ip_address=client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", "")[:512],
        )
        log.info("User %s signed in (session %s)", auth_user.pk, session.pk)

        return ok(
            {
                "user": UserSerializer(auth_user).data,
                "college": CollegeSerializer(college).data if college else None,
                "role": role,
                **tokens_for_session(auth_user, session),
            },
            status=status.HTTP_200_OK,
        )


class LogoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        session = current_session(request)
        session_lock.release(session)
        session.expire()
        log.info("User %s signed out (session %s)", request.user.pk, session.pk)
        return ok({"signed_out": True})


class SessionView(APIView):
    """GET /api/auth/session/ → who am I, where, and is this device locked to a test."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        session = current_session(request)
        college = session.college
        role = None
        if college is not None:
            role = (
                Membership.objects.filter(user=request.user, college=college)
                .values_list("role", flat=True).first()
            )
        return ok({
            "user": UserSerializer(request.user).data,
            "college": CollegeSerializer(college).data if college else None,
            "role": role,
            "session": AuthSessionSerializer(session).data,
        })
