"""
InMemoryDispenseStore: process-local DispenseStore.

Used for single-process deployments without a database and to exercise the
core under real thread races in tests. One re-entrant lock guards all state;
atomic() holds it for the whole unit of work and restores a snapshot if the
outermost unit raises.
"""

import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace

from ..domain import DispenseStatus, PrescriptionStatus, SessionStatus
from .base import DispenseStore


class InMemoryDispenseStore(DispenseStore):

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._patients = {}
        self._prescriptions = {}
        self._dispenses = []
        self._sessions = {}

    # ── seeding (no CRUD surface in the core) ─────────────────────────────

    def add_patient(self, patient):
        with self._lock:
            self._patients[patient.id] = patient
        return patient

    def add_prescription(self, prescription):
        with self._lock:
            self._prescriptions[prescription.id] = prescription
        return prescription

    def get_prescription(self, prescription_id):
        with self._lock:
            return self._prescriptions.get(prescription_id)

    # ── unit of work ──────────────────────────────────────────────────────

    @contextmanager
    def atomic(self):
        with self._lock:
            snapshot = self._snapshot() if self._depth == 0 else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if snapshot is not None:
                    self._restore(snapshot)
                raise
            finally:
                self._depth -= 1

    def lock_patient(self, patient_id):
        # the single store lock is already held by the enclosing atomic()
        return None

    def _snapshot(self):
        return (
            dict(self._patients),
            dict(self._prescriptions),
            list(self._dispenses),
            dict(self._sessions),
        )

    def _restore(self, snapshot):
        self._patients, self._prescriptions, self._dispenses, self._sessions = snapshot

    # ── patients ──────────────────────────────────────────────────────────

    def find_active_patient(self, kind, identifier):
        attr = 'qr_code' if kind == 'qr' else 'cedula'
        with self._lock:
            for patient in self._patients.values():
                if patient.active and getattr(patient, attr) == identifier:
                    return patient
        return None

    # ── prescriptions ─────────────────────────────────────────────────────

    def latest_valid_prescription(self, patient_id, now):
        with self._lock:
            candidates = [
                p for p in self._prescriptions.values()
                if p.patient_id == patient_id and p.is_currently_valid(now)
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda p: p.created_at)

    def expire_prescription(self, prescription_id):
        with self._lock:
            current = self._prescriptions.get(prescription_id)
            if current is None or current.status != PrescriptionStatus.ACTIVE:
                return False
            self._prescriptions[prescription_id] = replace(current, status=PrescriptionStatus.EXPIRED)
            return True

    def expire_overdue_prescriptions(self, now):
        changed = 0
        with self._lock:
            for pid, p in list(self._prescriptions.items()):
                if p.status == PrescriptionStatus.ACTIVE and p.end_date < now:
                    self._prescriptions[pid] = replace(p, status=PrescriptionStatus.EXPIRED)
                    changed += 1
        return changed

    # ── dispense records ──────────────────────────────────────────────────

    def append_dispense(self, record):
        stored = record.with_id(str(uuid.uuid4()))
        with self._lock:
            self._dispenses.append(stored)
        return stored

    def _successful(self, patient_id, prescription_id):
        return [
            r for r in self._dispenses
            if r.patient_id == patient_id
            and r.prescription_id == prescription_id
            and r.status == DispenseStatus.SUCCESSFUL
        ]

    def count_successful_dispenses(self, patient_id, prescription_id, start, end):
        with self._lock:
            return sum(
                1 for r in self._successful(patient_id, prescription_id)
                if start <= r.dispensed_at < end
            )

    def last_successful_dispense(self, patient_id, prescription_id):
        with self._lock:
            records = self._successful(patient_id, prescription_id)
        if not records:
            return None
        return max(records, key=lambda r: r.dispensed_at)

    def list_dispenses(self, patient_id=None, status=None, since=None, until=None, limit=None):
        with self._lock:
            records = list(self._dispenses)
        if patient_id is not None:
            records = [r for r in records if r.patient_id == patient_id]
        if status is not None:
            records = [r for r in records if r.status == status]
        if since is not None:
            records = [r for r in records if r.dispensed_at >= since]
        if until is not None:
            records = [r for r in records if r.dispensed_at < until]
        records.sort(key=lambda r: r.dispensed_at, reverse=True)
        return records[:limit] if limit is not None else records

    # ── sessions ──────────────────────────────────────────────────────────

    def replace_pending_session(self, session):
        with self.atomic():
            cancelled = 0
            for sid, existing in list(self._sessions.items()):
                if existing.patient_id == session.patient_id and existing.status == SessionStatus.PENDING:
                    self._sessions[sid] = replace(existing, status=SessionStatus.CANCELLED)
                    cancelled += 1
            if session.session_id in self._sessions:
                raise ValueError(f"duplicate session id {session.session_id!r}")
            self._sessions[session.session_id] = session
        return session, cancelled

    def get_session(self, session_id):
        with self._lock:
            return self._sessions.get(session_id)

    def newest_pending_session(self, dispenser_id, now):
        with self._lock:
            candidates = [
                s for s in self._sessions.values()
                if s.dispenser_id == dispenser_id
                and s.status == SessionStatus.PENDING
                and s.expires_at > now
            ]
        if not candidates:
            return None
        return max(candidates, key=lambda s: s.created_at)

    def transition_session(self, session_id, to_status, now, dispensed_at=None):
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None or current.status != SessionStatus.PENDING or current.expires_at <= now:
                return None
            changes = {'status': to_status}
            if dispensed_at is not None:
                changes['dispensed_at'] = dispensed_at
            updated = replace(current, **changes)
            self._sessions[session_id] = updated
            return updated

    def expire_session(self, session_id, now):
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None or current.status != SessionStatus.PENDING or current.expires_at > now:
                return False
            self._sessions[session_id] = replace(current, status=SessionStatus.EXPIRED)
            return True

    def expire_overdue_sessions(self, now):
        changed = 0
        with self._lock:
            for sid, s in list(self._sessions.items()):
                if s.status == SessionStatus.PENDING and s.expires_at <= now:
                    self._sessions[sid] = replace(s, status=SessionStatus.EXPIRED)
                    changed += 1
        return changed

    def session_counts(self, dispenser_id=None, since=None, until=None):
        counts = {}
        with self._lock:
            sessions = list(self._sessions.values())
        for s in sessions:
            if dispenser_id is not None and s.dispenser_id != dispenser_id:
                continue
            if since is not None and s.created_at < since:
                continue
            if until is not None and s.created_at > until:
                continue
            counts[s.status] = counts.get(s.status, 0) + 1
        return counts
