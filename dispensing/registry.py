"""
DispenserRegistry: which dispensers exist and which are reachable.

Constructed per use with an explicit clock and heartbeat timeout; there is no
module-level singleton and no background timer. Online/offline is derived
from the age of the last heartbeat every time it is asked.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from .exceptions import NotFoundError, ValidationError
from .models import Dispenser

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080


class DispenserRegistry:

    def __init__(self, clock=timezone.now, heartbeat_timeout_seconds=None):
        if heartbeat_timeout_seconds is None:
            heartbeat_timeout_seconds = settings.DISPENSER_HEARTBEAT_TIMEOUT_SECONDS
        self._clock = clock
        self.heartbeat_timeout = timedelta(seconds=heartbeat_timeout_seconds)

    def register(self, dispenser_id, ip_address, port=None, metadata=None):
        """Create or replace the registration. Re-registering resets the heartbeat."""
        if not dispenser_id or not ip_address:
            raise ValidationError(
                message='dispenserId and ipAddress are required',
                code='MISSING_FIELDS',
                detail={'missing': [k for k, v in (('dispenserId', dispenser_id), ('ipAddress', ip_address)) if not v]},
            )

        now = self._clock()
        metadata = dict(metadata or {})
        metadata['last_registration'] = now.isoformat()

        dispenser, created = Dispenser.objects.update_or_create(
            dispenser_id=dispenser_id,
            defaults={
                'ip_address': ip_address,
                'port': port or DEFAULT_PORT,
                'last_heartbeat': now,
                'metadata': metadata,
            },
            create_defaults={
                'ip_address': ip_address,
                'port': port or DEFAULT_PORT,
                'registered_at': now,
                'last_heartbeat': now,
                'metadata': metadata,
            },
        )
        logger.info(
            "[DispenserRegistry] %s %s at %s:%s",
            'registered' if created else 're-registered', dispenser_id, ip_address, dispenser.port,
        )
        return dispenser

    def heartbeat(self, dispenser_id):
        updated = Dispenser.objects.filter(dispenser_id=dispenser_id).update(last_heartbeat=self._clock())
        if not updated:
            logger.warning("[DispenserRegistry] heartbeat from unknown dispenser %s", dispenser_id)
            raise self._not_found(dispenser_id)
        return self.get(dispenser_id)

    def unregister(self, dispenser_id):
        deleted, _ = Dispenser.objects.filter(dispenser_id=dispenser_id).delete()
        if not deleted:
            raise self._not_found(dispenser_id)
        logger.info("[DispenserRegistry] unregistered %s", dispenser_id)

    def find(self, dispenser_id):
        return Dispenser.objects.filter(dispenser_id=dispenser_id).first()

    def get(self, dispenser_id):
        dispenser = self.find(dispenser_id)
        if dispenser is None:
            raise self._not_found(dispenser_id)
        return dispenser

    def is_online(self, dispenser):
        return self._clock() - dispenser.last_heartbeat < self.heartbeat_timeout

    def status_of(self, dispenser):
        return 'online' if self.is_online(dispenser) else 'offline'

    def online_target(self, dispenser_id):
        """Registered and online dispenser, or None."""
        dispenser = self.find(dispenser_id)
        if dispenser is None or not self.is_online(dispenser):
            return None
        return dispenser

    def list_all(self):
        return list(Dispenser.objects.order_by('dispenser_id'))

    def summary(self):
        dispensers = self.list_all()
        online = sum(1 for d in dispensers if self.is_online(d))
        return {
            'total': len(dispensers),
            'online': online,
            'offline': len(dispensers) - online,
            'dispensers': dispensers,
        }

    @staticmethod
    def _not_found(dispenser_id):
        return NotFoundError(
            message='Dispenser not found',
            code='DISPENSER_NOT_FOUND',
            detail={'dispenser_id': dispenser_id},
        )
