"""
Request body → typed request. Missing or malformed fields raise
ValidationError (400) before any business rule runs.
"""

from django.conf import settings

from ..exceptions import ValidationError
from .factory import get_resolver
from .types import DirectDispenseRequest, DispenseRequest


def _require(data, *fields):
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(
            message=f"Missing required fields: {', '.join(missing)}",
            code='MISSING_FIELDS',
            detail={'missing': missing},
        )


def _as_dict(data):
    if not isinstance(data, dict):
        raise ValidationError(message='Request body must be a JSON object', code='INVALID_BODY')
    return data


def parse_request_dispense(data) -> DispenseRequest:
    """{identifier, method, dispenserId?}"""
    data = _as_dict(data)
    _require(data, 'identifier', 'method')

    method = data['method']
    identifier = get_resolver(method).resolve(data['identifier'])

    return DispenseRequest(
        identifier=identifier,
        method=method,
        dispenser_id=data.get('dispenserId') or settings.DEFAULT_DISPENSER_ID,
        raw_payload=data,
    )


def parse_direct_dispense(data) -> DirectDispenseRequest:
    """{identifier, identifierType, authMethod?, dispenserId?}"""
    data = _as_dict(data)
    _require(data, 'identifier', 'identifierType')

    identifier_type = data['identifierType']
    identifier = get_resolver(identifier_type).resolve(data['identifier'])

    auth_method = data.get('authMethod') or identifier_type
    # validates the recorded method against the same registry
    get_resolver(auth_method)

    return DirectDispenseRequest(
        identifier=identifier,
        identifier_type=identifier_type,
        auth_method=auth_method,
        dispenser_id=data.get('dispenserId') or '',
        raw_payload=data,
    )
