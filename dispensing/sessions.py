"""
SessionCoordinator: the short-lived handoff between a grant and the dispenser.

State machine:  pending → dispensed | expired | cancelled   (all terminal)

Rules the coordinator enforces on every call:
- create() cancels the patient's previous pending session and inserts the new
  one in a single atomic unit, so a patient never has two pending sessions.
- confirm() / cancel() are conditional updates on status='pending'. Under a
  race exactly one caller wins; the rest get StateConflictError.
- Expiry is checked against the clock on every read. The sweep only tidies
  rows nobody has looked at.
- Nothing is cached; every call reads the store.
"""

import logging
import secrets
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .domain import DispenseSession, RequestMetadata, SessionStatus
from .exceptions import NotFoundError, StateConflictError

logger = logging.getLogger(__name__)


def generate_session_id(now):
    """sess_<epoch-ms>_<12 hex chars>"""
    return f"sess_{int(now.timestamp() * 1000)}_{secrets.token_hex(6)}"


class SessionCoordinator:

    def __init__(self, store, clock=timezone.now, session_duration_seconds=None):
        if session_duration_seconds is None:
            session_duration_seconds = settings.SESSION_DURATION_SECONDS
        self._store = store
        self._clock = clock
        self.session_duration = timedelta(seconds=session_duration_seconds)

    # ── create ────────────────────────────────────────────────────────────

    def create(self, patient, prescription, auth_method, dispenser_id, metadata=None):
        now = self._clock()
        session = DispenseSession(
            session_id=generate_session_id(now),
            patient_id=patient.id,
            prescription_id=prescription.id,
            auth_method=auth_method,
            patient_name=patient.full_name,
            patient_cedula=patient.cedula,
            patient_qr_code=patient.qr_code,
            medicine_name=prescription.medicine_name,
            dosage_amount=prescription.dosage_amount,
            dosage_unit=prescription.dosage_unit,
            dispenser_id=dispenser_id,
            status=SessionStatus.PENDING,
            created_at=now,
            expires_at=now + self.session_duration,
            metadata=metadata or RequestMetadata(),
        )
        created, cancelled = self._store.replace_pending_session(session)
        if cancelled:
            logger.info(
                "[SessionCoordinator] cancelled %d pending session(s) of patient %s",
                cancelled, patient.id,
            )
        logger.info(
            "[SessionCoordinator] session %s created for patient %s on %s, expires %s",
            created.session_id, patient.id, dispenser_id, created.expires_at.isoformat(),
        )
        return created

    # ── reads ─────────────────────────────────────────────────────────────

    def get_pending_for(self, dispenser_id):
        """Newest pending, unexpired session addressed to the dispenser, or None."""
        return self._store.newest_pending_session(dispenser_id, self._clock())

    def get(self, session_id):
        """
        Fresh read. A pending session past expires_at is flipped to expired
        before it is returned.
        """
        session = self._require(session_id)
        now = self._clock()
        if session.status == SessionStatus.PENDING and session.is_overdue(now):
            self._expire(session_id, now)
            session = self._require(session_id)
        return session

    def time_remaining(self, session):
        return session.time_remaining(self._clock())

    # ── transitions ───────────────────────────────────────────────────────

    def confirm(self, session_id, on_dispensed=None):
        """
        pending → dispensed.

        on_dispensed(session) runs inside the same atomic unit as the flip. If
        it raises, the flip is rolled back and the session stays pending.
        """
        updated = self._transition(session_id, SessionStatus.DISPENSED, 'confirm', on_dispensed)
        logger.info("[SessionCoordinator] session %s dispensed", session_id)
        return updated

    def cancel(self, session_id):
        updated = self._transition(session_id, SessionStatus.CANCELLED, 'cancel')
        logger.info("[SessionCoordinator] session %s cancelled", session_id)
        return updated

    def sweep_expired(self):
        count = self._store.expire_overdue_sessions(self._clock())
        if count:
            logger.info("[SessionCoordinator] sweep expired %d session(s)", count)
        return count

    def stats(self, dispenser_id=None, since=None, until=None):
        counts = self._store.session_counts(dispenser_id=dispenser_id, since=since, until=until)
        result = {status: counts.get(status, 0) for status in SessionStatus.ALL}
        result['total'] = sum(counts.values())
        return result

    # ── internals ─────────────────────────────────────────────────────────

    def _require(self, session_id):
        session = self._store.get_session(session_id)
        if session is None:
            raise NotFoundError(
                message='Session not found',
                code='SESSION_NOT_FOUND',
                detail={'session_id': session_id},
            )
        return session

    def _expire(self, session_id, now):
        if self._store.expire_session(session_id, now):
            logger.info("[SessionCoordinator] session %s expired on access", session_id)

    def _transition(self, session_id, to_status, action, on_dispensed=None):
        session = self._require(session_id)
        now = self._clock()

        if session.status != SessionStatus.PENDING:
            raise self._not_pending(session, action)

        if session.is_overdue(now):
            self._expire(session_id, now)
            raise self._expired(session_id)

        dispensed_at = now if to_status == SessionStatus.DISPENSED else None
        with self._store.atomic():
            updated = self._store.transition_session(session_id, to_status, now, dispensed_at=dispensed_at)
            if updated is not None and on_dispensed is not None:
                on_dispensed(updated)

        if updated is None:
            # lost the race, or the session ran out between the read and the update
            current = self._require(session_id)
            if current.status == SessionStatus.PENDING and current.is_overdue(self._clock()):
                self._expire(session_id, self._clock())
                raise self._expired(session_id)
            raise self._not_pending(current, action)

        return updated

    @staticmethod
    def _not_pending(session, action):
        return StateConflictError(
            message=f"Session is {session.status}, cannot {action}",
            status=session.status,
            code='SESSION_NOT_PENDING',
            session_id=session.session_id,
        )

    @staticmethod
    def _expired(session_id):
        return StateConflictError(
            message='Session expired',
            status=SessionStatus.EXPIRED,
            code='SESSION_EXPIRED',
            session_id=session_id,
        )
