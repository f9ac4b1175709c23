import logging

import requests
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def sweep_expired_sessions():
    """Celery beat: pending sessions past expires_at → expired."""
    from dispensing.services import get_dispensing_service

    count = get_dispensing_service().sessions.sweep_expired()
    logger.info("[Celery][sweep_expired_sessions] expired=%d", count)
    return count


@shared_task(ignore_result=True)
def expire_overdue_prescriptions():
    """Celery beat (hourly): active prescriptions past end_date → expired."""
    from dispensing.services import get_dispensing_service

    count = get_dispensing_service().ledger.expire_overdue()
    logger.info("[Celery][expire_overdue_prescriptions] expired=%d", count)
    return count


@shared_task(
    bind=True,
    default_retry_delay=1,
    ignore_result=True,
    acks_late=True,           # ack after the push finished, a lost worker re-delivers it
    reject_on_worker_lost=True,
)
def notify_dispenser(self, session_id: str):
    """
    Push a freshly created session to its dispenser.

    Skips silently if the session is no longer pending or the dispenser went
    offline. A failed push is retried by Celery, DISPENSER_NOTIFY_RETRIES
    attempts in total, 1 s apart; after the last one the failure is only
    logged.
    """
    from django.conf import settings

    from dispensing.domain import SessionStatus
    from dispensing.notifications import DispenserNotifier, describe_error, session_payload
    from dispensing.registry import DispenserRegistry
    from dispensing.storage import get_store

    max_retries = max(0, settings.DISPENSER_NOTIFY_RETRIES - 1)

    session = get_store().get_session(session_id)
    if session is None or session.status != SessionStatus.PENDING:
        logger.info("[Celery][notify_dispenser] session %s no longer pending, skipped", session_id)
        return False

    dispenser = DispenserRegistry().online_target(session.dispenser_id)
    if dispenser is None:
        logger.info(
            "[Celery][notify_dispenser] dispenser %s offline or unregistered, skipped",
            session.dispenser_id,
        )
        return False

    try:
        DispenserNotifier().notify(dispenser.ip_address, dispenser.port, session_payload(session))
    except requests.RequestException as exc:
        logger.warning(
            "[Celery][notify_dispenser] push of %s to %s failed (attempt %d/%d): %s",
            session_id, dispenser.dispenser_id, self.request.retries + 1, max_retries + 1, describe_error(exc),
        )
        if self.request.retries < max_retries:
            raise self.retry(exc=exc, max_retries=max_retries)
        logger.error(
            "[Celery][notify_dispenser] giving up on %s after %d attempts",
            session_id, max_retries + 1,
        )
        return False

    return True
