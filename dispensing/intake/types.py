"""
Normalized request shapes. The service layer only consumes these, never the
raw JSON body.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class DispenseRequest:
    """POST /request-dispense after intake."""

    identifier: str
    method: str
    dispenser_id: str
    raw_payload: Any = field(default=None, repr=False)


@dataclass
class DirectDispenseRequest:
    """
    POST /dispense after intake.

    identifier_type  picks the lookup (cedula / qr).
    auth_method      is what gets recorded; defaults to identifier_type.
    """

    identifier: str
    identifier_type: str
    auth_method: str
    dispenser_id: str = ''
    raw_payload: Any = field(default=None, repr=False)
