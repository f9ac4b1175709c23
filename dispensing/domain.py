"""
Domain records shared by the core components and every storage backend.

The core (directory, ledger, dose guard, recorder, session coordinator) only
sees these dataclasses. Storage backends convert their rows into them, so no
ORM object or query syntax leaks into the authorization rules.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Optional


class AuthMethod:
    QR = 'qr'
    CEDULA = 'cedula'

    ALL = (QR, CEDULA)


class PrescriptionStatus:
    ACTIVE = 'active'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'

    ALL = (ACTIVE, COMPLETED, CANCELLED, EXPIRED)


class DispenseStatus:
    SUCCESSFUL = 'successful'
    FAILED = 'failed'
    PARTIAL = 'partial'

    ALL = (SUCCESSFUL, FAILED, PARTIAL)


class SessionStatus:
    PENDING = 'pending'
    DISPENSED = 'dispensed'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'

    ALL = (PENDING, DISPENSED, EXPIRED, CANCELLED)


DOSAGE_UNITS = ('mg', 'g', 'ml', 'L', 'tabletas', 'cápsulas', 'gotas', 'UI')


def format_dosage(amount, unit):
    """
    Display form of a dose: "1 tabletas", "0.5 ml", "10 mg".

    Output only. Records and sessions keep amount and unit as separate fields.
    """
    if amount is None:
        return ''
    amount = Decimal(str(amount))
    text = format(amount.normalize(), 'f')
    return f"{text} {unit}" if unit else text


@dataclass(frozen=True)
class Patient:
    id: str
    cedula: str
    first_name: str
    last_name: str
    qr_code: Optional[str] = None
    active: bool = True

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class Prescription:
    id: str
    patient_id: str
    medicine_name: str
    dosage_amount: Decimal
    dosage_unit: str
    max_daily_doses: int
    start_date: datetime
    end_date: datetime
    status: str
    created_at: datetime
    medicine_code: Optional[str] = None

    @property
    def dosage_display(self):
        return format_dosage(self.dosage_amount, self.dosage_unit)

    def is_currently_valid(self, now):
        return (
            self.status == PrescriptionStatus.ACTIVE
            and self.start_date <= now <= self.end_date
        )


@dataclass(frozen=True)
class RequestMetadata:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    response_time_ms: Optional[int] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class DispenseRecord:
    """Immutable audit fact. id is None until the store has appended it."""

    patient_id: Optional[str]
    prescription_id: Optional[str]
    auth_method: str
    medicine_name: str
    status: str
    dispensed_at: datetime
    identifier: str = ''
    dosage_amount: Optional[Decimal] = None
    dosage_unit: Optional[str] = None
    dispenser_id: Optional[str] = None
    session_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: RequestMetadata = field(default_factory=RequestMetadata)
    id: Optional[str] = None

    @property
    def dosage_display(self):
        return format_dosage(self.dosage_amount, self.dosage_unit)

    def with_id(self, record_id):
        return replace(self, id=record_id)


@dataclass(frozen=True)
class DispenseSession:
    session_id: str
    patient_id: str
    prescription_id: str
    auth_method: str
    patient_name: str
    patient_cedula: str
    medicine_name: str
    dosage_amount: Decimal
    dosage_unit: str
    dispenser_id: str
    status: str
    created_at: datetime
    expires_at: datetime
    patient_qr_code: Optional[str] = None
    dispensed_at: Optional[datetime] = None
    metadata: RequestMetadata = field(default_factory=RequestMetadata)

    @property
    def dosage_display(self):
        return format_dosage(self.dosage_amount, self.dosage_unit)

    def is_overdue(self, now):
        return self.expires_at <= now

    def time_remaining(self, now):
        """Whole seconds left before expiry, rounded up, never negative."""
        return max(0, math.ceil((self.expires_at - now).total_seconds()))
