"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
Domain helpers (make_patient / make_prescription) seed the in-memory store.
"""
import itertools
from datetime import timedelta
from decimal import Decimal

import factory
import pytest
from django.test import Client
from django.utils import timezone

from dispensing.domain import Patient as PatientRecord
from dispensing.domain import Prescription as PrescriptionRecord
from dispensing.domain import PrescriptionStatus, SessionStatus
from dispensing.models import Dispense, DispenseSession, Dispenser, Patient, Prescription
from dispensing.storage.memory_store import InMemoryDispenseStore


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class PatientFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Patient

    cedula = factory.Sequence(lambda n: f'{10000000 + n}')
    qr_code = factory.Sequence(lambda n: f'QR-PAT-{n:04d}')
    first_name = 'Maria'
    last_name = 'Gomez'
    active = True


class PrescriptionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Prescription

    patient = factory.SubFactory(PatientFactory)
    medicine_name = 'Losartan'
    dosage_amount = Decimal('1')
    dosage_unit = 'tabletas'
    max_daily_doses = 3
    doctor_name = 'Dr. Ramirez'
    doctor_license = 'MP-12345'
    start_date = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    end_date = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))
    status = PrescriptionStatus.ACTIVE


class DispenseFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Dispense

    prescription = factory.SubFactory(PrescriptionFactory)
    patient = factory.SelfAttribute('prescription.patient')
    identifier = factory.SelfAttribute('patient.cedula')
    auth_method = 'cedula'
    medicine_name = factory.SelfAttribute('prescription.medicine_name')
    dosage_amount = factory.SelfAttribute('prescription.dosage_amount')
    dosage_unit = factory.SelfAttribute('prescription.dosage_unit')
    status = 'successful'
    dispensed_at = factory.LazyFunction(timezone.now)


class DispenseSessionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = DispenseSession

    session_id = factory.Sequence(lambda n: f'sess_1700000000000_{n:012x}')
    prescription = factory.SubFactory(PrescriptionFactory)
    patient = factory.SelfAttribute('prescription.patient')
    status = SessionStatus.PENDING
    auth_method = 'cedula'
    patient_name = factory.LazyAttribute(lambda o: f'{o.patient.first_name} {o.patient.last_name}')
    patient_cedula = factory.SelfAttribute('patient.cedula')
    medicine_name = factory.SelfAttribute('prescription.medicine_name')
    dosage_amount = factory.SelfAttribute('prescription.dosage_amount')
    dosage_unit = factory.SelfAttribute('prescription.dosage_unit')
    dispenser_id = 'dispenser-01'
    created_at = factory.LazyFunction(timezone.now)
    expires_at = factory.LazyAttribute(lambda o: o.created_at + timedelta(seconds=30))


class DispenserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Dispenser

    dispenser_id = factory.Sequence(lambda n: f'dispenser-{n + 10:02d}')
    ip_address = '192.168.1.50'
    port = 8080
    registered_at = factory.LazyFunction(timezone.now)
    last_heartbeat = factory.LazyFunction(timezone.now)


# ---------------------------------------------------------------------------
# Clock and in-memory store helpers
# ---------------------------------------------------------------------------

class FrozenClock:
    """Injectable clock. Call it to read the time; advance() to move it."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, now):
        self.now = now
        return now


def local_dt(*args):
    """Aware datetime in the project's TIME_ZONE."""
    from datetime import datetime
    return timezone.make_aware(datetime(*args))


_ids = itertools.count(1)


def make_patient(store, cedula=None, qr_code=None, active=True, first_name='Maria', last_name='Gomez'):
    n = next(_ids)
    return store.add_patient(PatientRecord(
        id=f'pat-{n}',
        cedula=cedula or f'{20000000 + n}',
        first_name=first_name,
        last_name=last_name,
        qr_code=qr_code if qr_code is not None else f'QR-MEM-{n:04d}',
        active=active,
    ))


def make_prescription(store, patient, now, max_daily_doses=3, status=PrescriptionStatus.ACTIVE,
                      start=None, end=None, created_at=None, medicine_name='Losartan',
                      dosage_amount=Decimal('1'), dosage_unit='tabletas'):
    n = next(_ids)
    return store.add_prescription(PrescriptionRecord(
        id=f'rx-{n}',
        patient_id=patient.id,
        medicine_name=medicine_name,
        dosage_amount=dosage_amount,
        dosage_unit=dosage_unit,
        max_daily_doses=max_daily_doses,
        start_date=start or now - timedelta(days=1),
        end_date=end or now + timedelta(days=30),
        status=status,
        created_at=created_at or now - timedelta(days=1),
    ))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def memory_store():
    return InMemoryDispenseStore()


@pytest.fixture
def clock():
    """Frozen at 10:00 local time on a weekday."""
    return FrozenClock(local_dt(2026, 3, 10, 10, 0))
