"""Team, user and phone list directory snapshot."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
import json
import logging

logger = logging.getLogger(__name__)


class UserRole(Enum):
    """CRM user roles."""
    SUPER_ADMIN = "Super Admin"
    ADMIN = "Admin"
    MANAGER = "Manager"
    SALES_REP = "Sales Rep"


@dataclass(frozen=True)
class User:
    """A CRM user that leads can be assigned to."""
    id: str
    name: str = ""
    role: UserRole = UserRole.SALES_REP
    team_id: str = ""


@dataclass(frozen=True)
class Team:
    """A sales team. The lead is not a member unless also listed in member_user_ids."""
    id: str
    name: str = ""
    lead_user_id: Optional[str] = None
    member_user_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PhoneList:
    """A calling list leads can be added to."""
    id: str
    name: str = ""


class Directory:
    """Read-only snapshot of teams, users and phone lists."""

    def __init__(
        self,
        teams: List[Team] = None,
        users: List[User] = None,
        phone_lists: List[PhoneList] = None
    ):
        self.teams: Dict[str, Team] = {t.id: t for t in teams or []}
        self.users: Dict[str, User] = {u.id: u for u in users or []}
        self.phone_lists: Dict[str, PhoneList] = {p.id: p for p in phone_lists or []}

    def get_team(self, team_id: str) -> Optional[Team]:
        return self.teams.get(team_id)

    def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    def get_phone_list(self, phone_list_id: str) -> Optional[PhoneList]:
        return self.phone_lists.get(phone_list_id)

    def get_team_members(self, team_id: str) -> List[str]:
        """Ordered member ids of a team, without duplicates."""
        team = self.teams.get(team_id)
        if not team:
            return []
        seen = set()
        members = []
        for user_id in team.member_user_ids:
            if user_id not in seen:
                seen.add(user_id)
                members.append(user_id)
        return members

    @classmethod
    def from_dict(cls, data: Dict) -> "Directory":
        """Build from ``{"teams": [...], "users": [...], "phoneLists": [...]}``."""
        teams = [
            Team(
                id=str(t['id']),
                name=t.get('name', ''),
                lead_user_id=str(t['leadUserId']) if t.get('leadUserId') is not None else None,
                member_user_ids=[str(m) for m in t.get('memberUserIds', [])]
            )
            for t in data.get('teams', [])
        ]
        users = [
            User(
                id=str(u['id']),
                name=u.get('name', ''),
                role=UserRole(u.get('role', UserRole.SALES_REP.value)),
                team_id=str(u.get('teamId') or '')
            )
            for u in data.get('users', [])
        ]
        phone_lists = [
            PhoneList(id=str(p['id']), name=p.get('name', ''))
            for p in data.get('phoneLists', [])
        ]
        return cls(teams=teams, users=users, phone_lists=phone_lists)

    @classmethod
    def load(cls, path: Path) -> "Directory":
        """Load a directory snapshot from a JSON file."""
        with open(path, 'r') as f:
            directory = cls.from_dict(json.load(f))
        logger.info(
            f"Loaded directory: {len(directory.teams)} teams, {len(directory.users)} users, "
            f"{len(directory.phone_lists)} phone lists"
        )
        return directory
