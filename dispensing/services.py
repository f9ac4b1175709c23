"""
DispensingService: the control flow between the HTTP layer and the core.

    identifier → PatientDirectory → PrescriptionLedger → DoseGuard
        grant → SessionCoordinator.create      (request-dispense)
        grant → DispenseRecorder.record_success (direct dispense)
        deny  → DispenseRecorder.record_failure, no session

authorize → create/record runs in one unit of work holding the patient lock,
so two concurrent requests for the same patient cannot both pass the daily
cap or the cooldown.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from django.conf import settings
from django.utils import timezone
from kombu.exceptions import OperationalError

from .directory import PatientDirectory
from .domain import DispenseRecord, Patient, Prescription
from .dose_guard import AuthorizationDecision, DoseGuard
from .ledger import PrescriptionLedger
from .recorder import DispenseRecorder
from .sessions import SessionCoordinator
from .storage import get_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationOutcome:
    authorized: bool
    reason: str
    code: str
    patient: Optional[Patient] = None
    prescription: Optional[Prescription] = None
    decision: Optional[AuthorizationDecision] = None
    record: Optional[DispenseRecord] = None

    def detail(self):
        return self.decision.detail() if self.decision else {}

    @property
    def doses_remaining(self):
        return self.decision.doses_remaining if self.decision else None


class DispensingService:

    def __init__(self, store, clock=timezone.now, cooldown_minutes=None,
                 session_duration_seconds=None, push_enabled=None):
        self.store = store
        self.directory = PatientDirectory(store)
        self.ledger = PrescriptionLedger(store, clock)
        self.guard = DoseGuard(store, clock)
        self.recorder = DispenseRecorder(store, clock)
        self.sessions = SessionCoordinator(store, clock, session_duration_seconds)
        self.cooldown_minutes = (
            cooldown_minutes if cooldown_minutes is not None else settings.DISPENSE_COOLDOWN_MINUTES
        )
        self.push_enabled = push_enabled if push_enabled is not None else settings.DISPENSER_PUSH_ENABLED

    # ── authorization ─────────────────────────────────────────────────────

    def _authorize(self, identifier, kind, auth_method, dispenser_id=None, metadata=None):
        """Must run inside store.atomic(). Denials are recorded before returning."""

        def deny(reason, code, patient=None, prescription=None, decision=None):
            record = self.recorder.record_failure(
                patient_id=patient.id if patient else None,
                prescription=prescription,
                auth_method=auth_method,
                code=code,
                reason=reason,
                identifier=identifier,
                dispenser_id=dispenser_id,
                metadata=metadata,
            )
            logger.info("[DispensingService] denied %s=%s: %s (%s)", kind, identifier, reason, code)
            return AuthorizationOutcome(
                authorized=False, reason=reason, code=code, patient=patient,
                prescription=prescription, decision=decision, record=record,
            )

        patient = self.directory.resolve(identifier, kind)
        if patient is None:
            return deny('Patient not found', 'PATIENT_NOT_FOUND')

        self.store.lock_patient(patient.id)

        prescription = self.ledger.find_currently_valid(patient.id)
        if prescription is None:
            return deny('No active prescription', 'NO_ACTIVE_PRESCRIPTION', patient)

        validity = self.ledger.check_validity(prescription)
        if not validity.valid:
            return deny(validity.reason, validity.code, patient, prescription)

        decision = self.guard.authorize(
            patient.id, prescription.id, prescription.max_daily_doses, self.cooldown_minutes,
        )
        if not decision.granted:
            return deny(decision.reason, decision.code, patient, prescription, decision)

        logger.info(
            "[DispensingService] granted patient=%s prescription=%s (%d/%d today)",
            patient.id, prescription.id, decision.daily_count, decision.max_daily_doses,
        )
        return AuthorizationOutcome(
            authorized=True, reason=decision.reason, code=decision.code,
            patient=patient, prescription=prescription, decision=decision,
        )

    # ── session flow ──────────────────────────────────────────────────────

    def request_dispense(self, request, metadata=None):
        """Returns (outcome, session). session is None on deny."""
        session = None
        with self.store.atomic():
            outcome = self._authorize(
                request.identifier, request.method, request.method, request.dispenser_id, metadata,
            )
            if outcome.authorized:
                session = self.sessions.create(
                    outcome.patient, outcome.prescription, request.method, request.dispenser_id, metadata,
                )

        if session is not None:
            self._push(session)
        return outcome, session

    def check_pending(self, dispenser_id=None):
        return self.sessions.get_pending_for(dispenser_id or settings.DEFAULT_DISPENSER_ID)

    def confirm_dispense(self, session_id, dispenser_id=None, metadata=None):
        """Returns (session, record). The record is appended atomically with the flip."""
        recorded = {}

        def record(session):
            recorded['dispense'] = self.recorder.record_session_success(session, dispenser_id, metadata)

        session = self.sessions.confirm(session_id, on_dispensed=record)
        return session, recorded['dispense']

    def cancel_session(self, session_id):
        return self.sessions.cancel(session_id)

    def get_session(self, session_id):
        return self.sessions.get(session_id)

    def session_stats(self, dispenser_id=None, since=None, until=None):
        return self.sessions.stats(dispenser_id=dispenser_id, since=since, until=until)

    def _push(self, session):
        if not self.push_enabled:
            return
        from .tasks import notify_dispenser

        try:
            notify_dispenser.delay(session.session_id)
        except OperationalError as exc:
            # the dispenser still finds the session by polling
            logger.warning("[DispensingService] push for %s not queued: %s", session.session_id, exc)

    # ── direct flow (no session) ──────────────────────────────────────────

    def direct_dispense(self, request, metadata=None):
        """Authorize and record in one step. outcome.record is the appended record."""
        with self.store.atomic():
            outcome = self._authorize(
                request.identifier, request.identifier_type, request.auth_method,
                request.dispenser_id or None, metadata,
            )
            if outcome.authorized:
                record = self.recorder.record_success(
                    outcome.patient, outcome.prescription, request.auth_method,
                    identifier=request.identifier,
                    dispenser_id=request.dispenser_id or None,
                    metadata=metadata,
                )
                outcome = replace(outcome, record=record)
        return outcome

    # ── history ───────────────────────────────────────────────────────────

    def patient_history(self, identifier, kind, days=30, limit=50):
        patient = self.directory.require(identifier, kind)
        return patient, self.recorder.history(patient.id, days=days, limit=limit)

    def patient_stats(self, identifier, kind, days=30):
        patient = self.directory.require(identifier, kind)
        return patient, self.recorder.patient_stats(patient.id, days=days)

    def recent_dispenses(self, limit=20):
        return self.recorder.recent(limit=limit)

    def today_dispenses(self):
        return self.recorder.today()


def get_dispensing_service():
    return DispensingService(get_store())
