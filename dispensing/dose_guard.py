"""
DoseGuard: may this patient take another dose of this order right now?

Two rules, checked in order:
1. Daily cap. Successful doses inside the current local calendar day
   [midnight, next midnight) must stay below max_daily_doses.
2. Cooldown. The newest successful dose across ALL history must be at least
   cooldown_minutes old.

The windows differ on purpose: a dose at 23:59 does not count against
tomorrow's cap but does hold tomorrow's cooldown until 00:29.
"""

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from django.utils import timezone

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN_MINUTES = 30


@dataclass(frozen=True)
class AuthorizationDecision:
    granted: bool
    reason: str
    code: str
    daily_count: Optional[int] = None
    max_daily_doses: Optional[int] = None
    doses_remaining: Optional[int] = None
    minutes_remaining: Optional[int] = None
    last_dispensed_at: Optional[datetime] = None

    @classmethod
    def grant(cls, daily_count, max_daily_doses):
        return cls(
            granted=True,
            reason='Authorized to dispense',
            code='AUTHORIZED',
            daily_count=daily_count,
            max_daily_doses=max_daily_doses,
            doses_remaining=max_daily_doses - daily_count,
        )

    @classmethod
    def deny(cls, reason, code, **detail):
        return cls(granted=False, reason=reason, code=code, **detail)

    def detail(self):
        """Numeric detail attached to a denial, without the empty fields."""
        data = asdict(self)
        for key in ('granted', 'reason', 'code'):
            data.pop(key)
        return {k: v for k, v in data.items() if v is not None}


def local_day_bounds(now):
    """[start, end) of the local calendar day containing now."""
    local_now = timezone.localtime(now)
    start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class DoseGuard:

    def __init__(self, store, clock=timezone.now):
        self._store = store
        self._clock = clock

    def authorize(self, patient_id, prescription_id, max_daily_doses, cooldown_minutes=None):
        if cooldown_minutes is None:
            cooldown_minutes = DEFAULT_COOLDOWN_MINUTES
        now = self._clock()

        start, end = local_day_bounds(now)
        daily_count = self._store.count_successful_dispenses(patient_id, prescription_id, start, end)

        if daily_count >= max_daily_doses:
            logger.info(
                "[DoseGuard] patient=%s prescription=%s denied: daily limit %d/%d",
                patient_id, prescription_id, daily_count, max_daily_doses,
            )
            return AuthorizationDecision.deny(
                reason=f"Daily limit reached ({daily_count}/{max_daily_doses} doses today)",
                code='DAILY_LIMIT_REACHED',
                daily_count=daily_count,
                max_daily_doses=max_daily_doses,
            )

        last = self._store.last_successful_dispense(patient_id, prescription_id)
        if last is not None:
            minutes_elapsed = (now - last.dispensed_at).total_seconds() / 60
            if minutes_elapsed < cooldown_minutes:
                minutes_remaining = math.ceil(cooldown_minutes - minutes_elapsed)
                logger.info(
                    "[DoseGuard] patient=%s prescription=%s denied: cooldown %d min left",
                    patient_id, prescription_id, minutes_remaining,
                )
                return AuthorizationDecision.deny(
                    reason=f"Must wait {minutes_remaining} minutes before next dose",
                    code='COOLDOWN_ACTIVE',
                    daily_count=daily_count,
                    max_daily_doses=max_daily_doses,
                    minutes_remaining=minutes_remaining,
                    last_dispensed_at=last.dispensed_at,
                )

        return AuthorizationDecision.grant(daily_count, max_daily_doses)
