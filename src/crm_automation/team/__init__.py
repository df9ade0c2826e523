"""Team directory and round-robin lead distribution."""

from .directory import Directory, Team, User, UserRole, PhoneList
from .round_robin import RoundRobinAssigner, RoundRobinCursor, CursorStore

__all__ = [
    'Directory',
    'Team',
    'User',
    'UserRole',
    'PhoneList',
    'RoundRobinAssigner',
    'RoundRobinCursor',
    'CursorStore'
]
