# core/urls.py
from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from accounts.views import LoginEmailPasswordView, LogoutView, SessionView
from exams.views import (
    AttemptGradeView, AttemptResultsView, AttemptSubmissionsView, CodeSaveView, CodeSubmitView,
    FlagView, McqAnswerView, QuestionViewSet, TestViewSet,
)
from exams.views_execute import ExecuteView, HealthView, LanguagesView, ValidateView

router = DefaultRouter()
router.register(r"questions", QuestionViewSet, basename="question")
router.register(r"tests", TestViewSet, basename="test")


urlpatterns = [
    path("admin/", admin.site.urls),

    path("api/auth/login/",   LoginEmailPasswordView.as_view(), name="auth-login"),
    path("api/auth/logout/",  LogoutView.as_view(),             name="auth-logout"),
    path("api/auth/session/", SessionView.as_view(),            name="auth-session"),
    path("api/auth/refresh/", TokenRefreshView.as_view(),       name="auth-refresh"),

    path("api/submissions/mcq/",          McqAnswerView.as_view(),  name="submission-mcq"),
    path("api/submissions/code/",         CodeSaveView.as_view(),   name="submission-code"),
    path("api/submissions/code/submit/",  CodeSubmitView.as_view(), name="submission-code-submit"),
    path("api/submissions/flag/",         FlagView.as_view(),       name="submission-flag"),
    path("api/submissions/attempt/<uuid:attempt_id>/", AttemptSubmissionsView.as_view(), name="submission-attempt"),
    path("api/submissions/results/<uuid:attempt_id>/", AttemptResultsView.as_view(),     name="submission-results"),

    path("api/attempts/<uuid:attempt_id>/grade/", AttemptGradeView.as_view(), name="attempt-grade"),

    path("api/execute/",           ExecuteView.as_view(),   name="execute"),
    path("api/execute/validate/",  ValidateView.as_view(),  name="execute-validate"),
    path("api/execute/languages/", LanguagesView.as_view(), name="execute-languages"),
    path("api/execute/health/",    HealthView.as_view(),    name="execute-health"),

    path("api/", include(router.urls)),
]
