"""
Response serializers: domain records → JSON-able dicts.

Output formatting only. Input parsing and validation live in
dispensing/intake/. Keys are camelCase, which is what the capture client and
the dispenser firmware read.
"""


def _iso(value):
    return value.isoformat() if value else None


def _amount(value):
    return float(value) if value is not None else None


def serialize_grant(outcome, session, time_remaining):
    decision = outcome.decision
    return {
        'success': True,
        'authorized': True,
        'sessionId': session.session_id,
        'expiresIn': time_remaining,
        'patient': session.patient_name,
        'medicine': session.medicine_name,
        'dosage': session.dosage_display,
        # doses left today once this one is taken
        'remaining': decision.doses_remaining - 1,
        'message': 'Authorized. Press the dispenser button before the session expires.',
    }


def serialize_denial(outcome):
    body = {
        'success': False,
        'authorized': False,
        'reason': outcome.reason,
        'code': outcome.code,
    }
    detail = outcome.detail()
    for key, camel in (
        ('daily_count', 'dailyCount'),
        ('max_daily_doses', 'maxDailyDoses'),
        ('minutes_remaining', 'minutesRemaining'),
    ):
        if key in detail:
            body[camel] = detail[key]
    if 'last_dispensed_at' in detail:
        body['lastDispensedAt'] = _iso(detail['last_dispensed_at'])
    return body


def serialize_pending(session, time_remaining):
    if session is None:
        return {'hasPending': False, 'message': 'No pending sessions'}
    return {
        'hasPending': True,
        'sessionId': session.session_id,
        'patient': session.patient_name,
        'medicine': session.medicine_name,
        'dosage': session.dosage_display,
        'timeRemaining': time_remaining,
        'authMethod': session.auth_method,
    }


def serialize_session(session, time_remaining):
    return {
        'success': True,
        'sessionId': session.session_id,
        'status': session.status,
        'timeRemaining': time_remaining,
        'patient': session.patient_name,
        'medicine': session.medicine_name,
        'dosage': session.dosage_display,
        'authMethod': session.auth_method,
        'dispenserId': session.dispenser_id,
        'createdAt': _iso(session.created_at),
        'expiresAt': _iso(session.expires_at),
        'dispensedAt': _iso(session.dispensed_at),
    }


def serialize_confirmation(session, record):
    return {
        'success': True,
        'message': 'Dispense confirmed and recorded',
        'dispenseId': record.id,
        'sessionId': session.session_id,
    }


def serialize_dispense(record):
    return {
        'id': record.id,
        'patientId': record.patient_id,
        'prescriptionId': record.prescription_id,
        'identifier': record.identifier,
        'authMethod': record.auth_method,
        'medicine': record.medicine_name,
        'dosage': {
            'amount': _amount(record.dosage_amount),
            'unit': record.dosage_unit,
            'display': record.dosage_display,
        },
        'dispenserId': record.dispenser_id,
        'sessionId': record.session_id,
        'status': record.status,
        'dispensedAt': _iso(record.dispensed_at),
        'errorCode': record.error_code,
        'errorMessage': record.error_message,
    }


def serialize_patient(patient):
    return {
        'id': patient.id,
        'name': patient.full_name,
        'cedula': patient.cedula,
        'qrCode': patient.qr_code,
    }


def serialize_history(patient, records):
    return {
        'success': True,
        'patient': serialize_patient(patient),
        'count': len(records),
        'dispenses': [serialize_dispense(r) for r in records],
    }


def serialize_patient_stats(patient, stats):
    return {
        'success': True,
        'patient': serialize_patient(patient),
        'stats': {
            'total': stats['total'],
            'successful': stats['successful'],
            'failed': stats['failed'],
            'successRate': stats['success_rate'],
            'lastDispense': _iso(stats['last_dispense']),
        },
    }


def serialize_dispense_list(records, summary=None):
    body = {
        'success': True,
        'count': len(records),
        'dispenses': [serialize_dispense(r) for r in records],
    }
    if summary is not None:
        body['summary'] = summary
    return body


def serialize_dispenser(dispenser, registry):
    return {
        'dispenserId': dispenser.dispenser_id,
        'ipAddress': dispenser.ip_address,
        'port': dispenser.port,
        'status': registry.status_of(dispenser),
        'isOnline': registry.is_online(dispenser),
        'registeredAt': _iso(dispenser.registered_at),
        'lastHeartbeat': _iso(dispenser.last_heartbeat),
        'metadata': dispenser.metadata,
    }


def serialize_dispenser_summary(summary, registry):
    return {
        'success': True,
        'total': summary['total'],
        'online': summary['online'],
        'offline': summary['offline'],
        'dispensers': [serialize_dispenser(d, registry) for d in summary['dispensers']],
    }
