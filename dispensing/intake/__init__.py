from .factory import get_resolver
from .parsers import parse_direct_dispense, parse_request_dispense
from .types import DirectDispenseRequest, DispenseRequest

__all__ = [
    'DirectDispenseRequest',
    'DispenseRequest',
    'get_resolver',
    'parse_direct_dispense',
    'parse_request_dispense',
]
