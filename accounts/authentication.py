from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed
from rest_framework_simplejwt.tokens import RefreshToken

from .models import AuthSession

SESSION_CLAIM = "sid"


def tokens_for_session(user, session):
    refresh = RefreshToken.for_user(user)
    refresh[SESSION_CLAIM] = str(session.pk)
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


class SessionJWTAuthentication(JWTAuthentication):
    """
    simplejwt with a server-side session behind every token: the `sid`
    claim must name a live AuthSession of the same user. The session row is
    attached to the user as `auth_session`.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        sid = validated_token.get(SESSION_CLAIM)
        if not sid:
            raise AuthenticationFailed("Token has no session.", code="no_session")

        session = (
            AuthSession.objects.live()
            .select_related("college")
            .filter(pk=sid, user=user)
            .first()
        )
        if session is None:
            raise AuthenticationFailed("Session has expired.", code="session_expired")

        user.auth_session = session
        return user
