"""Round-robin lead distribution across team members."""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional
import logging
import threading

from ..storage.state import KeyedLocks, read_json, write_json
from ..core.errors import EmptyTeamError
from .directory import Directory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundRobinCursor:
    """Index of the member who received the team's last assignment."""
    team_id: str
    last_assigned_member_index: int = -1


class CursorStore:
    """Round-robin cursors keyed by team id, persisted across runs."""

    def __init__(self, data_path: Optional[Path] = None):
        self.data_path = data_path
        self.cursors: Dict[str, RoundRobinCursor] = {}
        self._io_lock = threading.Lock()
        self._load_data()

    def _load_data(self):
        data = read_json(self.data_path, {})
        for team_id, index in data.items():
            self.cursors[team_id] = RoundRobinCursor(team_id, int(index))

    def get(self, team_id: str) -> RoundRobinCursor:
        return self.cursors.get(team_id) or RoundRobinCursor(team_id)

    def put(self, cursor: RoundRobinCursor):
        with self._io_lock:
            self.cursors[cursor.team_id] = cursor
            write_json(self.data_path, {
                c.team_id: c.last_assigned_member_index for c in self.cursors.values()
            })


class RoundRobinAssigner:
    """Hand out team members in rotation.

    Read-advance-write of a team's cursor happens under that team's lock,
    so concurrent callers for the same team each get a distinct slot while
    different teams never wait on each other.
    """

    def __init__(self, directory: Directory, cursors: Optional[CursorStore] = None):
        self.directory = directory
        self.cursors = cursors or CursorStore()
        self._locks = KeyedLocks()

    def next_assignee(self, team_id: str) -> str:
        """Return the next member of ``team_id`` and advance its cursor.

        Raises EmptyTeamError when the team is unknown or has no members.
        """
        members = self.directory.get_team_members(team_id)
        if not members:
            raise EmptyTeamError(f"Team '{team_id}' has no members eligible for round-robin")

        with self._locks.hold(team_id):
            cursor = self.cursors.get(team_id)
            index = (cursor.last_assigned_member_index + 1) % len(members)
            self.cursors.put(RoundRobinCursor(team_id, index))

        user_id = members[index]
        logger.debug(f"Round-robin for team {team_id}: member {index} -> {user_id}")
        return user_id
