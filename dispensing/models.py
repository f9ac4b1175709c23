import uuid
from django.db import models
from django.db.models import F, Q

from .domain import (
    AuthMethod,
    DispenseStatus,
    DOSAGE_UNITS,
    PrescriptionStatus,
    SessionStatus,
)

AUTH_METHOD_CHOICES = [
    (AuthMethod.QR, 'QR code'),
    (AuthMethod.CEDULA, 'Cédula'),
]


class Patient(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    cedula = models.CharField(max_length=10, unique=True)
    qr_code = models.CharField(max_length=64, unique=True, blank=True, null=True)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(blank=True, null=True)
    phone = models.CharField(max_length=30, blank=True, null=True)
    active = models.BooleanField(default=True)
    registered_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'patients'
        indexes = [
            models.Index(fields=['active'], name='patients_active_idx'),
        ]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class Prescription(models.Model):
    STATUS_CHOICES = [
        (PrescriptionStatus.ACTIVE, 'Active'),
        (PrescriptionStatus.COMPLETED, 'Completed'),
        (PrescriptionStatus.CANCELLED, 'Cancelled'),
        (PrescriptionStatus.EXPIRED, 'Expired'),
    ]
    UNIT_CHOICES = [(unit, unit) for unit in DOSAGE_UNITS]
    PERIOD_CHOICES = [
        ('daily', 'Daily'),
        ('every_8_hours', 'Every 8 hours'),
        ('every_12_hours', 'Every 12 hours'),
        ('every_24_hours', 'Every 24 hours'),
        ('weekly', 'Weekly'),
        ('monthly', 'Monthly'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='prescriptions')
    medicine_name = models.CharField(max_length=100)
    medicine_code = models.CharField(max_length=50, blank=True, null=True, db_index=True)
    dosage_amount = models.DecimalField(max_digits=8, decimal_places=2)
    dosage_unit = models.CharField(max_length=20, choices=UNIT_CHOICES, default='tabletas')
    frequency_times = models.PositiveSmallIntegerField(default=1)
    frequency_period = models.CharField(max_length=20, choices=PERIOD_CHOICES, default='daily')
    max_daily_doses = models.PositiveSmallIntegerField()
    doctor_name = models.CharField(max_length=100)
    doctor_license = models.CharField(max_length=50)
    doctor_specialty = models.CharField(max_length=100, blank=True, null=True)
    start_date = models.DateTimeField()
    end_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PrescriptionStatus.ACTIVE)
    notes = models.TextField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'prescriptions'
        indexes = [
            models.Index(fields=['patient', 'status'], name='prescriptions_patient_status'),
            models.Index(fields=['start_date', 'end_date'], name='prescriptions_window_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=F('start_date')),
                name='prescription_end_after_start',
            ),
            models.CheckConstraint(
                condition=Q(max_daily_doses__gte=1) & Q(max_daily_doses__lte=10),
                name='prescription_max_daily_doses_range',
            ),
        ]


class Dispense(models.Model):
    """Permanent, append-only record of every dispense attempt."""

    STATUS_CHOICES = [
        (DispenseStatus.SUCCESSFUL, 'Successful'),
        (DispenseStatus.FAILED, 'Failed'),
        (DispenseStatus.PARTIAL, 'Partial'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    # null only when the presented identifier never resolved to a patient
    patient = models.ForeignKey(
        Patient, on_delete=models.PROTECT, related_name='dispenses', blank=True, null=True,
    )
    prescription = models.ForeignKey(
        Prescription, on_delete=models.PROTECT, related_name='dispenses', blank=True, null=True,
    )
    identifier = models.CharField(max_length=64, blank=True, default='')
    auth_method = models.CharField(max_length=10, choices=AUTH_METHOD_CHOICES)
    medicine_name = models.CharField(max_length=100)
    dosage_amount = models.DecimalField(max_digits=8, decimal_places=2, blank=True, null=True)
    dosage_unit = models.CharField(max_length=20, blank=True, null=True)
    dispenser_id = models.CharField(max_length=50, blank=True, null=True)
    session_id = models.CharField(max_length=64, blank=True, null=True, db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES)
    dispensed_at = models.DateTimeField()
    error_code = models.CharField(max_length=50, blank=True, null=True)
    error_message = models.TextField(blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=500, blank=True, null=True)
    response_time_ms = models.PositiveIntegerField(blank=True, null=True)
    notes = models.TextField(blank=True, null=True)

    class Meta:
        db_table = 'dispenses'
        indexes = [
            models.Index(
                fields=['patient', 'prescription', 'status', 'dispensed_at'],
                name='dispenses_guard_idx',
            ),
            models.Index(fields=['dispensed_at'], name='dispenses_dispensed_at_idx'),
        ]


class DispenseSession(models.Model):
    STATUS_CHOICES = [
        (SessionStatus.PENDING, 'Pending'),
        (SessionStatus.DISPENSED, 'Dispensed'),
        (SessionStatus.EXPIRED, 'Expired'),
        (SessionStatus.CANCELLED, 'Cancelled'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session_id = models.CharField(max_length=64, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='sessions')
    prescription = models.ForeignKey(Prescription, on_delete=models.PROTECT, related_name='sessions')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=SessionStatus.PENDING)
    auth_method = models.CharField(max_length=10, choices=AUTH_METHOD_CHOICES)
    # denormalized so the dispenser never resolves foreign keys
    patient_name = models.CharField(max_length=101)
    patient_cedula = models.CharField(max_length=10)
    patient_qr_code = models.CharField(max_length=64, blank=True, null=True)
    medicine_name = models.CharField(max_length=100)
    dosage_amount = models.DecimalField(max_digits=8, decimal_places=2)
    dosage_unit = models.CharField(max_length=20)
    dispenser_id = models.CharField(max_length=50)
    created_at = models.DateTimeField()
    expires_at = models.DateTimeField()
    dispensed_at = models.DateTimeField(blank=True, null=True)
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.CharField(max_length=500, blank=True, null=True)

    class Meta:
        db_table = 'dispense_sessions'
        indexes = [
            models.Index(fields=['status', 'expires_at'], name='sessions_status_expiry_idx'),
            models.Index(fields=['dispenser_id', 'status', 'created_at'], name='sessions_dispenser_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['patient'],
                condition=Q(status=SessionStatus.PENDING),
                name='one_pending_session_per_patient',
            ),
        ]


class Dispenser(models.Model):
    dispenser_id = models.CharField(max_length=50, unique=True)
    ip_address = models.GenericIPAddressField()
    port = models.PositiveIntegerField(default=8080)
    registered_at = models.DateTimeField()
    last_heartbeat = models.DateTimeField()
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'dispensers'
