"""
Unit tests for exception classes and unified_exception_handler.

No database needed:
1. BaseAppException defaults
2. each subclass's default type / code / http_status
3. overriding code / http_status at construction
4. StateConflictError carries the session's actual status
5. the DRF handler turns exceptions into the unified JSON body
"""
import json

import pytest
from django.db import DatabaseError
from django.test import RequestFactory
from rest_framework.exceptions import ParseError
from rest_framework.response import Response
from rest_framework.views import APIView

from dispensing.exceptions import (
    BaseAppException,
    NotFoundError,
    StateConflictError,
    StorageError,
    ValidationError,
)


# -------------------------------------------------------------------
# Exception classes
# -------------------------------------------------------------------

class TestBaseAppException:

    def test_defaults(self):
        exc = BaseAppException('something broke')
        assert exc.message == 'something broke'
        assert exc.type == 'error'
        assert exc.code == 'UNKNOWN_ERROR'
        assert exc.http_status == 500
        assert exc.detail is None

    def test_override_code_and_status(self):
        exc = BaseAppException('bad', code='CUSTOM_CODE', http_status=418)
        assert exc.code == 'CUSTOM_CODE'
        assert exc.http_status == 418

    def test_detail_preserved(self):
        exc = BaseAppException('bad', detail={'key': 'value'})
        assert exc.detail == {'key': 'value'}


class TestSubclasses:

    def test_validation_error(self):
        exc = ValidationError('bad input', code='INVALID_CEDULA')
        assert exc.type == 'validation_error'
        assert exc.code == 'INVALID_CEDULA'
        assert exc.http_status == 400

    def test_not_found(self):
        exc = NotFoundError('Session not found', code='SESSION_NOT_FOUND')
        assert exc.type == 'not_found'
        assert exc.http_status == 404

    def test_storage_error(self):
        exc = StorageError('db down')
        assert exc.code == 'STORAGE_FAILURE'
        assert exc.http_status == 500


class TestStateConflictError:

    def test_reports_actual_status(self):
        exc = StateConflictError('Session is dispensed', status='dispensed', code='SESSION_NOT_PENDING')
        assert exc.type == 'conflict'
        assert exc.http_status == 400
        assert exc.status == 'dispensed'
        assert exc.detail == {'status': 'dispensed'}

    def test_session_id_in_detail(self):
        exc = StateConflictError('Session expired', status='expired', session_id='sess_1_abc')
        assert exc.code == 'STATE_CONFLICT'
        assert exc.detail == {'status': 'expired', 'session_id': 'sess_1_abc'}


# -------------------------------------------------------------------
# unified_exception_handler
# -------------------------------------------------------------------

class _RaisingView(APIView):
    """Test view that raises whatever exc_to_raise holds."""

    exc_to_raise = None

    def get(self, request):
        if self.exc_to_raise:
            raise self.exc_to_raise
        return Response({'ok': True})


class TestUnifiedExceptionHandler:

    def _call(self, exc):
        _RaisingView.exc_to_raise = exc
        return _RaisingView.as_view()(RequestFactory().get('/'))

    def test_no_exception_passes_through(self):
        response = self._call(None)
        assert response.status_code == 200

    def test_not_found_returns_404(self):
        response = self._call(NotFoundError('Session not found', code='SESSION_NOT_FOUND',
                                            detail={'session_id': 'x'}))

        assert response.status_code == 404
        body = json.loads(response.content)
        assert body == {
            'success': False,
            'type': 'not_found',
            'code': 'SESSION_NOT_FOUND',
            'message': 'Session not found',
            'detail': {'session_id': 'x'},
        }

    def test_conflict_returns_400_with_status(self):
        response = self._call(StateConflictError('Session expired', status='expired', code='SESSION_EXPIRED'))

        assert response.status_code == 400
        body = json.loads(response.content)
        assert body['type'] == 'conflict'
        assert body['detail']['status'] == 'expired'

    def test_no_detail_field_when_none(self):
        response = self._call(StorageError('Storage failure'))

        body = json.loads(response.content)
        assert response.status_code == 500
        assert 'detail' not in body

    def test_parse_error_maps_to_validation_error(self):
        response = self._call(ParseError('JSON parse error'))

        assert response.status_code == 400
        body = json.loads(response.content)
        assert body['type'] == 'validation_error'
        assert body['code'] == 'VALIDATION_ERROR'

    def test_database_error_maps_to_storage_failure(self):
        response = self._call(DatabaseError('disk I/O error'))

        assert response.status_code == 500
        body = json.loads(response.content)
        assert body == {
            'success': False,
            'type': 'error',
            'code': 'STORAGE_FAILURE',
            'message': 'Storage failure',
        }

    def test_non_app_exception_not_caught(self):
        """Anything outside the hierarchy bubbles up unchanged."""
        with pytest.raises(RuntimeError):
            self._call(RuntimeError('unexpected'))
