# exams/apps.py
from django.apps import AppConfig
from django.conf import settings


class ExamsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "exams"

    # the one sandbox client for this process; tests swap it for a fake
    sandbox = None

    def ready(self):
        # Ensures Celery sees exams.tasks (for @shared_task)
        import exams.tasks  # noqa: F401
        from exams.services.sandbox import PistonClient

        self.sandbox = PistonClient(
            base_url=settings.PISTON_URL,
            run_timeout_ms=settings.PISTON_RUN_TIMEOUT_MS,
            compile_timeout_ms=settings.PISTON_COMPILE_TIMEOUT_MS,
            memory_limit=settings.PISTON_MEMORY_LIMIT,
        )
