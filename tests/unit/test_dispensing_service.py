"""
DispensingService: the authorize pipeline, failure recording, the atomic
confirm+record, and the best-effort push, on the in-memory store.
"""
import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from kombu.exceptions import OperationalError

from dispensing.domain import DispenseStatus, PrescriptionStatus, SessionStatus
from dispensing.exceptions import StateConflictError
from dispensing.intake.types import DirectDispenseRequest, DispenseRequest
from dispensing.services import DispensingService
from tests.conftest import make_patient, make_prescription


@pytest.fixture
def service(memory_store, clock):
    return DispensingService(memory_store, clock, cooldown_minutes=30, session_duration_seconds=30,
                             push_enabled=False)


@pytest.fixture
def patient_rx(memory_store, clock):
    patient = make_patient(memory_store, cedula='12345678', qr_code='QR-0001')
    rx = make_prescription(memory_store, patient, clock(), max_daily_doses=3)
    return patient, rx


def ask(identifier='12345678', method='cedula', dispenser_id='dispenser-01'):
    return DispenseRequest(identifier=identifier, method=method, dispenser_id=dispenser_id)


def direct(identifier='12345678', identifier_type='cedula', auth_method='cedula'):
    return DirectDispenseRequest(identifier=identifier, identifier_type=identifier_type, auth_method=auth_method)


def failures(store):
    return store.list_dispenses(status=DispenseStatus.FAILED)


class TestRequestDispense:

    def test_grant_opens_session(self, service, memory_store, patient_rx):
        patient, rx = patient_rx

        outcome, session = service.request_dispense(ask())

        assert outcome.authorized is True
        assert outcome.doses_remaining == 3
        assert session.patient_id == patient.id
        assert session.prescription_id == rx.id
        assert service.check_pending('dispenser-01') == session
        # nothing is recorded until the dispenser confirms
        assert memory_store.list_dispenses() == []

    def test_lookup_by_qr(self, service, patient_rx):
        outcome, session = service.request_dispense(ask('QR-0001', 'qr'))
        assert outcome.authorized is True
        assert session.auth_method == 'qr'

    def test_unknown_patient_recorded(self, service, memory_store):
        outcome, session = service.request_dispense(ask('99999999'))

        assert session is None
        assert outcome.authorized is False
        assert outcome.code == 'PATIENT_NOT_FOUND'
        [record] = failures(memory_store)
        assert record.patient_id is None
        assert record.identifier == '99999999'

    def test_no_prescription_recorded(self, service, memory_store):
        patient = make_patient(memory_store, cedula='55555555')

        outcome, _ = service.request_dispense(ask('55555555'))

        assert outcome.code == 'NO_ACTIVE_PRESCRIPTION'
        assert outcome.reason == 'No active prescription'
        [record] = failures(memory_store)
        assert record.patient_id == patient.id

    def test_cooldown_denial_carries_detail(self, service, memory_store, clock, patient_rx):
        service.direct_dispense(direct())
        clock.advance(minutes=29)

        outcome, session = service.request_dispense(ask())

        assert session is None
        assert outcome.code == 'COOLDOWN_ACTIVE'
        assert outcome.detail()['minutes_remaining'] == 1
        [record] = failures(memory_store)
        assert record.error_code == 'COOLDOWN_ACTIVE'
        assert record.error_message == 'Must wait 1 minutes before next dose'

    def test_new_request_replaces_pending_session(self, service, memory_store, patient_rx):
        _, first = service.request_dispense(ask())
        _, second = service.request_dispense(ask(dispenser_id='dispenser-02'))

        assert memory_store.get_session(first.session_id).status == SessionStatus.CANCELLED
        assert service.check_pending('dispenser-01') is None
        assert service.check_pending('dispenser-02') == second


class TestConfirmDispense:

    def test_records_exactly_once(self, service, memory_store, patient_rx):
        patient, rx = patient_rx
        _, session = service.request_dispense(ask())

        confirmed, record = service.confirm_dispense(session.session_id)

        assert confirmed.status == SessionStatus.DISPENSED
        assert record.session_id == session.session_id
        assert record.status == DispenseStatus.SUCCESSFUL
        with pytest.raises(StateConflictError):
            service.confirm_dispense(session.session_id)
        assert len(memory_store.list_dispenses(patient_id=patient.id, status='successful')) == 1

    def test_confirmed_dose_starts_cooldown(self, service, clock, patient_rx):
        _, session = service.request_dispense(ask())
        service.confirm_dispense(session.session_id)
        clock.advance(minutes=10)

        outcome, _ = service.request_dispense(ask())

        assert outcome.code == 'COOLDOWN_ACTIVE'
        assert outcome.detail()['minutes_remaining'] == 20

    def test_storage_failure_keeps_session_pending(self, service, memory_store, patient_rx):
        _, session = service.request_dispense(ask())

        with patch.object(service.recorder, 'record_session_success', side_effect=RuntimeError('db gone')):
            with pytest.raises(RuntimeError):
                service.confirm_dispense(session.session_id)

        assert memory_store.get_session(session.session_id).status == SessionStatus.PENDING
        assert memory_store.list_dispenses() == []


class TestDirectDispense:

    def test_grant_records_success(self, service, memory_store, patient_rx):
        outcome = service.direct_dispense(direct())

        assert outcome.authorized is True
        assert outcome.record.status == DispenseStatus.SUCCESSFUL
        assert outcome.record.identifier == '12345678'
        assert memory_store.list_dispenses() == [outcome.record]

    def test_daily_cap(self, service, clock, patient_rx):
        for _ in range(3):
            assert service.direct_dispense(direct()).authorized is True
            clock.advance(minutes=31)

        outcome = service.direct_dispense(direct())

        assert outcome.code == 'DAILY_LIMIT_REACHED'
        assert outcome.reason == 'Daily limit reached (3/3 doses today)'

    def test_expired_prescription_denied_and_flipped(self, service, memory_store, clock, patient_rx):
        _, rx = patient_rx
        clock.advance(days=31)

        outcome = service.direct_dispense(direct())

        # past end_date the order is no longer "currently valid"
        assert outcome.code == 'NO_ACTIVE_PRESCRIPTION'
        assert service.ledger.expire_overdue() == 1
        assert memory_store.get_prescription(rx.id).status == PrescriptionStatus.EXPIRED

    def test_concurrent_requests_respect_cap(self, memory_store, clock):
        patient = make_patient(memory_store, cedula='77777777')
        make_prescription(memory_store, patient, clock(), max_daily_doses=1)
        service = DispensingService(memory_store, clock, cooldown_minutes=0, push_enabled=False)
        barrier = threading.Barrier(6)
        outcomes = []

        def worker():
            barrier.wait()
            outcomes.append(service.direct_dispense(direct('77777777')))

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for o in outcomes if o.authorized) == 1
        assert len(memory_store.list_dispenses(status='successful')) == 1


class TestPush:

    def test_enqueued_when_enabled(self, memory_store, clock, patient_rx):
        service = DispensingService(memory_store, clock, push_enabled=True)

        with patch('dispensing.tasks.notify_dispenser') as mock_task:
            _, session = service.request_dispense(ask())

        mock_task.delay.assert_called_once_with(session.session_id)

    def test_not_enqueued_on_deny(self, memory_store, clock):
        service = DispensingService(memory_store, clock, push_enabled=True)

        with patch('dispensing.tasks.notify_dispenser') as mock_task:
            service.request_dispense(ask('99999999'))

        mock_task.delay.assert_not_called()

    def test_broker_down_does_not_fail_request(self, memory_store, clock, patient_rx):
        service = DispensingService(memory_store, clock, push_enabled=True)

        with patch('dispensing.tasks.notify_dispenser') as mock_task:
            mock_task.delay.side_effect = OperationalError('redis unreachable')
            outcome, session = service.request_dispense(ask())

        assert outcome.authorized is True
        assert service.check_pending('dispenser-01') == session

    def test_disabled(self, service, patient_rx):
        with patch('dispensing.tasks.notify_dispenser') as mock_task:
            service.request_dispense(ask())
        mock_task.delay.assert_not_called()


class TestSessionExpiry:

    def test_session_grant_expires_after_duration(self, service, clock, patient_rx):
        _, session = service.request_dispense(ask())
        clock.advance(seconds=31)

        assert service.check_pending('dispenser-01') is None
        with pytest.raises(StateConflictError) as exc_info:
            service.confirm_dispense(session.session_id)
        assert exc_info.value.code == 'SESSION_EXPIRED'
        assert service.get_session(session.session_id).status == SessionStatus.EXPIRED
        assert timedelta(seconds=30) == session.expires_at - session.created_at
