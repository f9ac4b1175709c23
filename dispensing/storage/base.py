"""
DispenseStore: the repository interface the dispensing core depends on.

Every storage backend only has to:
1. subclass DispenseStore
2. implement the abstract methods below
3. register itself in factory.py's registry

The core components (PatientDirectory, PrescriptionLedger, DoseGuard,
DispenseRecorder, SessionCoordinator) never see query syntax; they call these
methods and get domain dataclasses back.

Atomicity contract:
- atomic() opens a unit of work. Everything inside commits or fails together.
  Units may nest.
- lock_patient() serializes units of work touching the same patient until the
  enclosing atomic() ends.
- Every transition_* / expire_* method is a single conditional update: it only
  touches rows that are still pending, and reports whether it did.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional

from ..domain import DispenseRecord, DispenseSession, Patient, Prescription


class DispenseStore(ABC):

    name: str = ""

    # ── unit of work ──────────────────────────────────────────────────────

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Context manager delimiting one atomic unit of work."""

    @abstractmethod
    def lock_patient(self, patient_id: str) -> None:
        """Hold the patient's lock until the enclosing atomic() exits."""

    # ── patients ──────────────────────────────────────────────────────────

    @abstractmethod
    def find_active_patient(self, kind: str, identifier: str) -> Optional[Patient]:
        """Active patient whose cedula (kind='cedula') or qr_code (kind='qr') matches."""

    # ── prescriptions ─────────────────────────────────────────────────────

    @abstractmethod
    def latest_valid_prescription(self, patient_id: str, now: datetime) -> Optional[Prescription]:
        """
        Most recently created prescription with status=active and
        start_date <= now <= end_date, or None.
        """

    @abstractmethod
    def expire_prescription(self, prescription_id: str) -> bool:
        """Conditional active → expired. True if this call flipped it."""

    @abstractmethod
    def expire_overdue_prescriptions(self, now: datetime) -> int:
        """Bulk active → expired where end_date < now. Returns rows changed."""

    # ── dispense records (append-only) ────────────────────────────────────

    @abstractmethod
    def append_dispense(self, record: DispenseRecord) -> DispenseRecord:
        """Insert the record; returns it with its id set."""

    @abstractmethod
    def count_successful_dispenses(
        self, patient_id: str, prescription_id: str, start: datetime, end: datetime,
    ) -> int:
        """Successful records for patient+prescription with start <= dispensed_at < end."""

    @abstractmethod
    def last_successful_dispense(self, patient_id: str, prescription_id: str) -> Optional[DispenseRecord]:
        """Newest successful record for patient+prescription across all history."""

    @abstractmethod
    def list_dispenses(
        self,
        patient_id: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[DispenseRecord]:
        """Records newest first, filtered by every argument that is not None."""

    # ── sessions ──────────────────────────────────────────────────────────

    @abstractmethod
    def replace_pending_session(self, session: DispenseSession) -> tuple[DispenseSession, int]:
        """
        In one atomic unit: cancel every pending session of session.patient_id,
        then insert session. Returns (inserted session, number cancelled).
        """

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[DispenseSession]:
        """Fresh read of one session, never cached."""

    @abstractmethod
    def newest_pending_session(self, dispenser_id: str, now: datetime) -> Optional[DispenseSession]:
        """Most recently created pending session for the dispenser with expires_at > now."""

    @abstractmethod
    def transition_session(
        self,
        session_id: str,
        to_status: str,
        now: datetime,
        dispensed_at: Optional[datetime] = None,
    ) -> Optional[DispenseSession]:
        """
        Conditional pending → to_status, only while expires_at > now.
        Returns the updated session, or None if another caller got there first
        or the session is overdue.
        """

    @abstractmethod
    def expire_session(self, session_id: str, now: datetime) -> bool:
        """Conditional pending → expired where expires_at <= now."""

    @abstractmethod
    def expire_overdue_sessions(self, now: datetime) -> int:
        """Bulk pending → expired where expires_at <= now. Returns rows changed."""

    @abstractmethod
    def session_counts(
        self,
        dispenser_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> dict[str, int]:
        """{status: count} over sessions created in [since, until]."""
