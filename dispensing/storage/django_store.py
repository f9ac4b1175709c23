"""
DjangoDispenseStore: DispenseStore on the Django ORM.

Atomicity comes from the database:
- atomic()                  → transaction.atomic() (savepoints when nested)
- lock_patient()            → SELECT ... FOR UPDATE on the patient row
- transition / expire       → UPDATE ... WHERE status='pending' [AND expires_at ...],
                              the affected-row count decides the winner
- one pending per patient   → partial unique index one_pending_session_per_patient
"""

from django.db import transaction
from django.db.models import Count

from ..domain import (
    DispenseRecord,
    DispenseSession,
    DispenseStatus,
    Patient,
    Prescription,
    PrescriptionStatus,
    RequestMetadata,
    SessionStatus,
)
from .. import models
from .base import DispenseStore


def _patient(row):
    return Patient(
        id=str(row.id),
        cedula=row.cedula,
        first_name=row.first_name,
        last_name=row.last_name,
        qr_code=row.qr_code,
        active=row.active,
    )


def _prescription(row):
    return Prescription(
        id=str(row.id),
        patient_id=str(row.patient_id),
        medicine_name=row.medicine_name,
        medicine_code=row.medicine_code,
        dosage_amount=row.dosage_amount,
        dosage_unit=row.dosage_unit,
        max_daily_doses=row.max_daily_doses,
        start_date=row.start_date,
        end_date=row.end_date,
        status=row.status,
        created_at=row.created_at,
    )


def _record(row):
    return DispenseRecord(
        id=str(row.id),
        patient_id=str(row.patient_id) if row.patient_id else None,
        prescription_id=str(row.prescription_id) if row.prescription_id else None,
        identifier=row.identifier,
        auth_method=row.auth_method,
        medicine_name=row.medicine_name,
        dosage_amount=row.dosage_amount,
        dosage_unit=row.dosage_unit,
        dispenser_id=row.dispenser_id,
        session_id=row.session_id,
        status=row.status,
        dispensed_at=row.dispensed_at,
        error_code=row.error_code,
        error_message=row.error_message,
        metadata=RequestMetadata(
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            response_time_ms=row.response_time_ms,
            notes=row.notes,
        ),
    )


def _session(row):
    return DispenseSession(
        session_id=row.session_id,
        patient_id=str(row.patient_id),
        prescription_id=str(row.prescription_id),
        auth_method=row.auth_method,
        patient_name=row.patient_name,
        patient_cedula=row.patient_cedula,
        patient_qr_code=row.patient_qr_code,
        medicine_name=row.medicine_name,
        dosage_amount=row.dosage_amount,
        dosage_unit=row.dosage_unit,
        dispenser_id=row.dispenser_id,
        status=row.status,
        created_at=row.created_at,
        expires_at=row.expires_at,
        dispensed_at=row.dispensed_at,
        metadata=RequestMetadata(ip_address=row.ip_address, user_agent=row.user_agent),
    )


class DjangoDispenseStore(DispenseStore):

    name = "django"

    def atomic(self):
        return transaction.atomic()

    def lock_patient(self, patient_id):
        # evaluated inside the caller's transaction; a no-op on SQLite, which
        # serializes writers on its own
        list(models.Patient.objects.select_for_update().filter(id=patient_id).values_list('id', flat=True))

    # ── patients ──────────────────────────────────────────────────────────

    def find_active_patient(self, kind, identifier):
        lookup = {'qr_code': identifier} if kind == 'qr' else {'cedula': identifier}
        row = models.Patient.objects.filter(active=True, **lookup).first()
        return _patient(row) if row else None

    # ── prescriptions ─────────────────────────────────────────────────────

    def latest_valid_prescription(self, patient_id, now):
        row = (
            models.Prescription.objects
            .filter(
                patient_id=patient_id,
                status=PrescriptionStatus.ACTIVE,
                start_date__lte=now,
                end_date__gte=now,
            )
            .order_by('-created_at')
            .first()
        )
        return _prescription(row) if row else None

    def expire_prescription(self, prescription_id):
        updated = models.Prescription.objects.filter(
            id=prescription_id, status=PrescriptionStatus.ACTIVE,
        ).update(status=PrescriptionStatus.EXPIRED)
        return updated > 0

    def expire_overdue_prescriptions(self, now):
        return models.Prescription.objects.filter(
            status=PrescriptionStatus.ACTIVE, end_date__lt=now,
        ).update(status=PrescriptionStatus.EXPIRED)

    # ── dispense records ──────────────────────────────────────────────────

    def append_dispense(self, record):
        row = models.Dispense.objects.create(
            patient_id=record.patient_id,
            prescription_id=record.prescription_id,
            identifier=record.identifier or '',
            auth_method=record.auth_method,
            medicine_name=record.medicine_name,
            dosage_amount=record.dosage_amount,
            dosage_unit=record.dosage_unit,
            dispenser_id=record.dispenser_id,
            session_id=record.session_id,
            status=record.status,
            dispensed_at=record.dispensed_at,
            error_code=record.error_code,
            error_message=record.error_message,
            ip_address=record.metadata.ip_address,
            user_agent=record.metadata.user_agent,
            response_time_ms=record.metadata.response_time_ms,
            notes=record.metadata.notes,
        )
        return record.with_id(str(row.id))

    def count_successful_dispenses(self, patient_id, prescription_id, start, end):
        return models.Dispense.objects.filter(
            patient_id=patient_id,
            prescription_id=prescription_id,
            status=DispenseStatus.SUCCESSFUL,
            dispensed_at__gte=start,
            dispensed_at__lt=end,
        ).count()

    def last_successful_dispense(self, patient_id, prescription_id):
        row = (
            models.Dispense.objects
            .filter(
                patient_id=patient_id,
                prescription_id=prescription_id,
                status=DispenseStatus.SUCCESSFUL,
            )
            .order_by('-dispensed_at')
            .first()
        )
        return _record(row) if row else None

    def list_dispenses(self, patient_id=None, status=None, since=None, until=None, limit=None):
        qs = models.Dispense.objects.all()
        if patient_id is not None:
            qs = qs.filter(patient_id=patient_id)
        if status is not None:
            qs = qs.filter(status=status)
        if since is not None:
            qs = qs.filter(dispensed_at__gte=since)
        if until is not None:
            qs = qs.filter(dispensed_at__lt=until)
        qs = qs.order_by('-dispensed_at')
        if limit is not None:
            qs = qs[:limit]
        return [_record(row) for row in qs]

    # ── sessions ──────────────────────────────────────────────────────────

    def replace_pending_session(self, session):
        with transaction.atomic():
            self.lock_patient(session.patient_id)
            cancelled = models.DispenseSession.objects.filter(
                patient_id=session.patient_id, status=SessionStatus.PENDING,
            ).update(status=SessionStatus.CANCELLED)
            row = models.DispenseSession.objects.create(
                session_id=session.session_id,
                patient_id=session.patient_id,
                prescription_id=session.prescription_id,
                status=session.status,
                auth_method=session.auth_method,
                patient_name=session.patient_name,
                patient_cedula=session.patient_cedula,
                patient_qr_code=session.patient_qr_code,
                medicine_name=session.medicine_name,
                dosage_amount=session.dosage_amount,
                dosage_unit=session.dosage_unit,
                dispenser_id=session.dispenser_id,
                created_at=session.created_at,
                expires_at=session.expires_at,
                ip_address=session.metadata.ip_address,
                user_agent=session.metadata.user_agent,
            )
        return _session(row), cancelled

    def get_session(self, session_id):
        row = models.DispenseSession.objects.filter(session_id=session_id).first()
        return _session(row) if row else None

    def newest_pending_session(self, dispenser_id, now):
        row = (
            models.DispenseSession.objects
            .filter(dispenser_id=dispenser_id, status=SessionStatus.PENDING, expires_at__gt=now)
            .order_by('-created_at')
            .first()
        )
        return _session(row) if row else None

    def transition_session(self, session_id, to_status, now, dispensed_at=None):
        changes = {'status': to_status}
        if dispensed_at is not None:
            changes['dispensed_at'] = dispensed_at
        updated = models.DispenseSession.objects.filter(
            session_id=session_id, status=SessionStatus.PENDING, expires_at__gt=now,
        ).update(**changes)
        if not updated:
            return None
        return self.get_session(session_id)

    def expire_session(self, session_id, now):
        updated = models.DispenseSession.objects.filter(
            session_id=session_id, status=SessionStatus.PENDING, expires_at__lte=now,
        ).update(status=SessionStatus.EXPIRED)
        return updated > 0

    def expire_overdue_sessions(self, now):
        return models.DispenseSession.objects.filter(
            status=SessionStatus.PENDING, expires_at__lte=now,
        ).update(status=SessionStatus.EXPIRED)

    def session_counts(self, dispenser_id=None, since=None, until=None):
        qs = models.DispenseSession.objects.all()
        if dispenser_id is not None:
            qs = qs.filter(dispenser_id=dispenser_id)
        if since is not None:
            qs = qs.filter(created_at__gte=since)
        if until is not None:
            qs = qs.filter(created_at__lte=until)
        rows = qs.values('status').annotate(count=Count('id'))
        return {row['status']: row['count'] for row in rows}
