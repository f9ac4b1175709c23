"""
Unified exception hierarchy.

Every application exception derives from BaseAppException and carries:
- type:        error family (validation_error / not_found / conflict / error)
- code:        machine-readable code (SESSION_EXPIRED / PATIENT_NOT_FOUND / ...)
- message:     human-readable description
- detail:      optional extra payload (dict / list / None)
- http_status: HTTP status code

Views only raise; the DRF exception handler formats the response.

Authorization denials (daily cap, cooldown, invalid prescription) are NOT
exceptions. They are AuthorizationDecision values returned by DoseGuard.
"""


class BaseAppException(Exception):
    """Base class for every application exception."""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """Malformed or missing input. Raised by the intake layer, 400."""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class NotFoundError(BaseAppException):
    """Patient, session or dispenser absent, 404. Never retried."""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class StateConflictError(BaseAppException):
    """
    Operation on a session that is no longer pending, 400.

    detail always carries the session's actual status so the dispenser can
    tell "already dispensed" from "expired".
    """

    type = 'conflict'
    code = 'STATE_CONFLICT'
    http_status = 400

    def __init__(self, message, status, code=None, session_id=None):
        detail = {'status': status}
        if session_id is not None:
            detail['session_id'] = session_id
        super().__init__(message, code=code, detail=detail)
        self.status = status


class StorageError(BaseAppException):
    """The repository failed; the atomic unit was rolled back as a whole. 500."""

    type = 'error'
    code = 'STORAGE_FAILURE'
    http_status = 500
