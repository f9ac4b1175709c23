from .base import DispenseStore
from .factory import get_store

__all__ = ['DispenseStore', 'get_store']
