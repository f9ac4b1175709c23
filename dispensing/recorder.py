"""
DispenseRecorder: append-only audit log of every dispense attempt.

Write side: one record per completed authorization attempt, granted or
denied. The business outcome never raises here; only a storage failure does.

Read side: history and counters for the patient and dashboard endpoints.
"""

import logging
from datetime import timedelta

from django.utils import timezone

from .domain import DispenseRecord, DispenseStatus, RequestMetadata
from .dose_guard import local_day_bounds

logger = logging.getLogger(__name__)


class DispenseRecorder:

    def __init__(self, store, clock=timezone.now):
        self._store = store
        self._clock = clock

    # ── write side ────────────────────────────────────────────────────────

    def record_success(self, patient, prescription, auth_method, identifier='',
                       dispenser_id=None, metadata=None):
        record = DispenseRecord(
            patient_id=patient.id,
            prescription_id=prescription.id,
            identifier=identifier,
            auth_method=auth_method,
            medicine_name=prescription.medicine_name,
            dosage_amount=prescription.dosage_amount,
            dosage_unit=prescription.dosage_unit,
            dispenser_id=dispenser_id,
            status=DispenseStatus.SUCCESSFUL,
            dispensed_at=self._clock(),
            metadata=metadata or RequestMetadata(),
        )
        stored = self._store.append_dispense(record)
        logger.info(
            "[DispenseRecorder] successful dispense %s patient=%s prescription=%s",
            stored.id, patient.id, prescription.id,
        )
        return stored

    def record_failure(self, patient_id, prescription, auth_method, code, reason,
                       identifier='', dispenser_id=None, metadata=None):
        """
        Failed attempt. patient_id is None when the identifier never resolved;
        the presented identifier is kept either way.
        """
        record = DispenseRecord(
            patient_id=patient_id,
            prescription_id=prescription.id if prescription else None,
            identifier=identifier,
            auth_method=auth_method,
            medicine_name=prescription.medicine_name if prescription else 'N/A',
            dosage_amount=prescription.dosage_amount if prescription else None,
            dosage_unit=prescription.dosage_unit if prescription else None,
            dispenser_id=dispenser_id,
            status=DispenseStatus.FAILED,
            dispensed_at=self._clock(),
            error_code=code,
            error_message=reason,
            metadata=metadata or RequestMetadata(),
        )
        stored = self._store.append_dispense(record)
        logger.info(
            "[DispenseRecorder] failed attempt %s identifier=%s code=%s",
            stored.id, identifier, code,
        )
        return stored

    def record_session_success(self, session, dispenser_id=None, metadata=None):
        """Successful record for a confirmed session, copied from its structured fields."""
        record = DispenseRecord(
            patient_id=session.patient_id,
            prescription_id=session.prescription_id,
            identifier=session.patient_cedula,
            auth_method=session.auth_method,
            medicine_name=session.medicine_name,
            dosage_amount=session.dosage_amount,
            dosage_unit=session.dosage_unit,
            dispenser_id=dispenser_id or session.dispenser_id,
            session_id=session.session_id,
            status=DispenseStatus.SUCCESSFUL,
            dispensed_at=session.dispensed_at or self._clock(),
            metadata=metadata or RequestMetadata(),
        )
        stored = self._store.append_dispense(record)
        logger.info(
            "[DispenseRecorder] session %s recorded as dispense %s",
            session.session_id, stored.id,
        )
        return stored

    # ── read side ─────────────────────────────────────────────────────────

    def history(self, patient_id, days=30, limit=50):
        """Successful dispenses of the patient over the last `days` days, newest first."""
        since = self._clock() - timedelta(days=days)
        return self._store.list_dispenses(
            patient_id=patient_id,
            status=DispenseStatus.SUCCESSFUL,
            since=since,
            limit=limit,
        )

    def patient_stats(self, patient_id, days=30):
        since = self._clock() - timedelta(days=days)
        records = self._store.list_dispenses(patient_id=patient_id, since=since)
        successful = [r for r in records if r.status == DispenseStatus.SUCCESSFUL]
        failed = [r for r in records if r.status == DispenseStatus.FAILED]
        total = len(records)
        return {
            'total': total,
            'successful': len(successful),
            'failed': len(failed),
            'success_rate': round(len(successful) / total * 100, 2) if total else 0,
            # records come newest first
            'last_dispense': successful[0].dispensed_at if successful else None,
        }

    def recent(self, limit=20):
        return self._store.list_dispenses(limit=limit)

    def today(self):
        start, end = local_day_bounds(self._clock())
        records = self._store.list_dispenses(since=start, until=end)
        summary = {
            'total': len(records),
            'successful': sum(1 for r in records if r.status == DispenseStatus.SUCCESSFUL),
            'failed': sum(1 for r in records if r.status == DispenseStatus.FAILED),
        }
        return records, summary
