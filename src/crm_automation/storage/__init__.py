"""Lead snapshot model and engine state persistence."""

from .models import Lead, parse_datetime
from .state import KeyedLocks, read_json, write_json

__all__ = ['Lead', 'parse_datetime', 'KeyedLocks', 'read_json', 'write_json']
