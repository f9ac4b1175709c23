"""
HTTP views. Views parse input through dispensing/intake, call
DispensingService, and format output through serializers. Errors are raised
as application exceptions and formatted by unified_exception_handler.
"""

import time

from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .domain import AuthMethod, RequestMetadata
from .exceptions import ValidationError
from .intake import get_resolver, parse_direct_dispense, parse_request_dispense
from .notifications import DispenserNotifier
from .registry import DispenserRegistry
from .serializers import (
    serialize_confirmation,
    serialize_denial,
    serialize_dispense,
    serialize_dispense_list,
    serialize_dispenser,
    serialize_dispenser_summary,
    serialize_grant,
    serialize_history,
    serialize_patient_stats,
    serialize_pending,
    serialize_session,
)
from .services import get_dispensing_service


def request_metadata(request, started=None):
    elapsed = int((time.monotonic() - started) * 1000) if started is not None else None
    return RequestMetadata(
        ip_address=request.META.get('REMOTE_ADDR') or None,
        user_agent=request.META.get('HTTP_USER_AGENT', '')[:255] or None,
        response_time_ms=elapsed,
    )


def int_param(request, name, default, minimum=1, maximum=None):
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(message=f"{name} must be an integer", code='INVALID_PARAMETER', detail={'field': name})
    if value < minimum or (maximum is not None and value > maximum):
        raise ValidationError(
            message=f"{name} out of range",
            code='INVALID_PARAMETER',
            detail={'field': name, 'min': minimum, 'max': maximum},
        )
    return value


def datetime_param(request, name):
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        value = parse_datetime(raw)
    except ValueError:
        # well formed but not a calendar date, e.g. 2026-02-30
        value = None
    if value is None:
        raise ValidationError(message=f"{name} must be an ISO 8601 datetime", code='INVALID_PARAMETER',
                              detail={'field': name})
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def patient_lookup(request, identifier):
    kind = request.query_params.get('type') or AuthMethod.CEDULA
    return get_resolver(kind).resolve(identifier), kind


# ── session flow ──────────────────────────────────────────────────────────

class RequestDispenseView(APIView):
    """POST /api/request-dispense"""

    def post(self, request):
        started = time.monotonic()
        dispense_request = parse_request_dispense(request.data)
        service = get_dispensing_service()

        outcome, session = service.request_dispense(dispense_request, request_metadata(request, started))

        if not outcome.authorized:
            return Response(serialize_denial(outcome), status=status.HTTP_200_OK)
        return Response(serialize_grant(outcome, session, service.sessions.time_remaining(session)))


class CheckPendingView(APIView):
    """GET /api/check-pending/<dispenser_id>  (dispenser_id optional)"""

    def get(self, request, dispenser_id=None):
        service = get_dispensing_service()
        session = service.check_pending(dispenser_id)
        remaining = service.sessions.time_remaining(session) if session else None
        return Response(serialize_pending(session, remaining))


class ConfirmDispenseView(APIView):
    """POST /api/confirm-dispense/<session_id>"""

    def post(self, request, session_id):
        data = request.data if isinstance(request.data, dict) else {}
        service = get_dispensing_service()
        session, record = service.confirm_dispense(
            session_id,
            dispenser_id=data.get('dispenserId') or None,
            metadata=request_metadata(request),
        )
        return Response(serialize_confirmation(session, record))


class SessionDetailView(APIView):
    """GET / DELETE /api/session/<session_id>"""

    def get(self, request, session_id):
        service = get_dispensing_service()
        session = service.get_session(session_id)
        return Response(serialize_session(session, service.sessions.time_remaining(session)))

    def delete(self, request, session_id):
        get_dispensing_service().cancel_session(session_id)
        return Response({'success': True, 'message': 'Session cancelled'})


class SessionStatsView(APIView):
    """GET /api/sessions/stats?dispenserId=&since=&until="""

    def get(self, request):
        stats = get_dispensing_service().session_stats(
            dispenser_id=request.query_params.get('dispenserId') or None,
            since=datetime_param(request, 'since'),
            until=datetime_param(request, 'until'),
        )
        return Response({'success': True, 'stats': stats})


# ── direct flow ───────────────────────────────────────────────────────────

class DirectDispenseView(APIView):
    """POST /api/dispense: authorize and record without a session."""

    def post(self, request):
        started = time.monotonic()
        direct_request = parse_direct_dispense(request.data)

        outcome = get_dispensing_service().direct_dispense(direct_request, request_metadata(request, started))

        if not outcome.authorized:
            body = serialize_denial(outcome)
            body['message'] = body.pop('reason')
            body.pop('authorized')
            return Response(body, status=status.HTTP_403_FORBIDDEN)

        return Response(
            {
                'success': True,
                'message': 'Dispense authorized',
                'remaining': outcome.doses_remaining - 1,
                'dispense': serialize_dispense(outcome.record),
            },
            status=status.HTTP_201_CREATED,
        )


# ── history ───────────────────────────────────────────────────────────────

class PatientHistoryView(APIView):
    """GET /api/patients/<identifier>/history?type=&limit=&days="""

    def get(self, request, identifier):
        identifier, kind = patient_lookup(request, identifier)
        patient, records = get_dispensing_service().patient_history(
            identifier, kind,
            days=int_param(request, 'days', 30, maximum=365),
            limit=int_param(request, 'limit', 50, maximum=500),
        )
        return Response(serialize_history(patient, records))


class PatientStatsView(APIView):
    """GET /api/patients/<identifier>/stats?type=&days="""

    def get(self, request, identifier):
        identifier, kind = patient_lookup(request, identifier)
        patient, stats = get_dispensing_service().patient_stats(
            identifier, kind, days=int_param(request, 'days', 30, maximum=365),
        )
        return Response(serialize_patient_stats(patient, stats))


class RecentDispensesView(APIView):
    """GET /api/dispenses/recent?limit="""

    def get(self, request):
        records = get_dispensing_service().recent_dispenses(limit=int_param(request, 'limit', 20, maximum=500))
        return Response(serialize_dispense_list(records))


class TodayDispensesView(APIView):
    """GET /api/dispenses/today"""

    def get(self, request):
        records, summary = get_dispensing_service().today_dispenses()
        return Response(serialize_dispense_list(records, summary))


# ── dispensers ────────────────────────────────────────────────────────────

class DispenserRegisterView(APIView):
    """POST /api/dispensers/register"""

    def post(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        port = data.get('port')
        if port is not None and (not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536):
            raise ValidationError(message='port must be an integer between 1 and 65535', code='INVALID_PARAMETER',
                                  detail={'field': 'port'})

        registry = DispenserRegistry()
        dispenser = registry.register(
            dispenser_id=data.get('dispenserId'),
            ip_address=data.get('ipAddress'),
            port=port,
            metadata=data.get('metadata') if isinstance(data.get('metadata'), dict) else None,
        )
        return Response({
            'success': True,
            'message': 'Dispenser registered',
            'dispenser': serialize_dispenser(dispenser, registry),
        })


class DispenserHeartbeatView(APIView):
    """POST /api/dispensers/<dispenser_id>/heartbeat"""

    def post(self, request, dispenser_id):
        registry = DispenserRegistry()
        dispenser = registry.heartbeat(dispenser_id)
        return Response({'success': True, 'dispenser': serialize_dispenser(dispenser, registry)})


class DispenserUnregisterView(APIView):
    """POST /api/dispensers/<dispenser_id>/unregister"""

    def post(self, request, dispenser_id):
        DispenserRegistry().unregister(dispenser_id)
        return Response({'success': True, 'message': 'Dispenser unregistered'})


class DispenserDetailView(APIView):
    """GET /api/dispensers/<dispenser_id>"""

    def get(self, request, dispenser_id):
        registry = DispenserRegistry()
        dispenser = registry.get(dispenser_id)
        return Response({'success': True, 'dispenser': serialize_dispenser(dispenser, registry)})


class DispenserListView(APIView):
    """GET /api/dispensers"""

    def get(self, request):
        registry = DispenserRegistry()
        return Response(serialize_dispenser_summary(registry.summary(), registry))


class DispenserHealthView(APIView):
    """GET /api/dispensers/<dispenser_id>/health: checks the hardware directly."""

    def get(self, request, dispenser_id):
        registry = DispenserRegistry()
        dispenser = registry.get(dispenser_id)
        reachable = DispenserNotifier().test_connection(dispenser.ip_address, dispenser.port)
        return Response({
            'success': True,
            'dispenserId': dispenser.dispenser_id,
            'reachable': reachable,
            'isOnline': registry.is_online(dispenser),
        })
