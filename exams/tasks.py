# exams/tasks.py
import logging

from celery import shared_task
from django.utils import timezone

from .services import attempts

log = logging.getLogger(__name__)


@shared_task
def finalize_expired_attempts():
    """
    Seal attempts whose owners never came back. Finalize-on-touch already
    covers everyone who does; this only closes the rest.
    """
    sealed = attempts.finalize_expired(timezone.now())
    if sealed:
        log.info("Auto-submitted %d expired attempt(s)", sealed)
    return sealed
