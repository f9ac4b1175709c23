import logging

from .domain import AuthMethod
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)


class PatientDirectory:
    """Resolves a card number or scan code to an active patient."""

    def __init__(self, store):
        self._store = store

    def resolve(self, identifier, kind=AuthMethod.CEDULA):
        """Active Patient, or None. Not finding one is an expected outcome."""
        if kind not in AuthMethod.ALL or not identifier:
            return None
        patient = self._store.find_active_patient(kind, identifier)
        if patient is None:
            logger.info("[PatientDirectory] no active patient for %s=%s", kind, identifier)
        return patient

    def require(self, identifier, kind=AuthMethod.CEDULA):
        patient = self.resolve(identifier, kind)
        if patient is None:
            raise NotFoundError(
                message='Patient not found',
                code='PATIENT_NOT_FOUND',
                detail={'identifier': identifier, 'type': kind},
            )
        return patient
