"""
DispenserNotifier: best-effort HTTP push of a new session to a dispenser.

The poll/confirm protocol is the source of truth. A push only saves the
dispenser one polling interval. Each call is a single attempt; retries belong
to the notify_dispenser Celery task, and failures never touch session state.
"""

import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT_SECONDS = 3


def session_payload(session):
    return {
        'sessionId': session.session_id,
        'patient': session.patient_name,
        'medicine': session.medicine_name,
        'dosage': session.dosage_display,
        'expiresAt': session.expires_at.isoformat(),
    }


def describe_error(exc):
    if isinstance(exc, requests.Timeout):
        return 'Request timeout - dispenser not responding'
    if isinstance(exc, requests.ConnectionError):
        return 'Connection failed - dispenser not reachable'
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return f"HTTP {exc.response.status_code}: {exc.response.reason}"
    return str(exc) or type(exc).__name__


class DispenserNotifier:

    def __init__(self, timeout=None):
        self.timeout = timeout if timeout is not None else settings.DISPENSER_NOTIFY_TIMEOUT_SECONDS

    def notify(self, ip_address, port, payload):
        """
        POST payload to http://ip:port/dispense.

        Raises:
            requests.RequestException: unreachable, timed out, or non-2xx answer
        """
        url = f"http://{ip_address}:{port}/dispense"
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        logger.info("[DispenserNotifier] session %s pushed to %s", payload.get('sessionId'), url)
        return response

    def test_connection(self, ip_address, port):
        """True if GET http://ip:port/health answers 200 within the health timeout."""
        url = f"http://{ip_address}:{port}/health"
        try:
            response = requests.get(url, timeout=HEALTH_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            logger.warning("[DispenserNotifier] health check %s failed: %s", url, describe_error(exc))
            return False
        return response.status_code == 200
