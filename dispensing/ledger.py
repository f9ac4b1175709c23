"""
PrescriptionLedger: which order, if any, authorizes a dose right now.

Tie-break policy: when several orders of a patient are currently valid, the
most recently created one wins.
"""

import logging
from dataclasses import dataclass

from django.utils import timezone

from .domain import PrescriptionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidityCheck:
    valid: bool
    reason: str
    code: str = 'PRESCRIPTION_VALID'


class PrescriptionLedger:

    def __init__(self, store, clock=timezone.now):
        self._store = store
        self._clock = clock

    def find_currently_valid(self, patient_id):
        """Newest order with status=active and now inside [start_date, end_date]."""
        return self._store.latest_valid_prescription(patient_id, self._clock())

    def check_validity(self, prescription):
        """
        Re-evaluate status and window at read time.

        An active order past its end_date is flipped to expired here. The flip
        is a conditional update, so repeating it is harmless.
        """
        now = self._clock()

        if prescription.status != PrescriptionStatus.ACTIVE:
            return ValidityCheck(
                valid=False,
                reason=f"Prescription {prescription.status}",
                code=f"PRESCRIPTION_{prescription.status.upper()}",
            )

        if prescription.start_date > now:
            return ValidityCheck(
                valid=False,
                reason='Prescription is not yet valid',
                code='PRESCRIPTION_NOT_STARTED',
            )

        if prescription.end_date < now:
            if self._store.expire_prescription(prescription.id):
                logger.info("[PrescriptionLedger] prescription %s expired on read", prescription.id)
            return ValidityCheck(valid=False, reason='Prescription expired', code='PRESCRIPTION_EXPIRED')

        return ValidityCheck(valid=True, reason='Prescription valid')

    def expire_overdue(self):
        count = self._store.expire_overdue_prescriptions(self._clock())
        if count:
            logger.info("[PrescriptionLedger] expired %d overdue prescriptions", count)
        return count
