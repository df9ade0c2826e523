"""Data models for lead snapshots consumed by the rule engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (with optional trailing Z) as naive local time."""
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


@dataclass(frozen=True)
class Lead:
    """An already-loaded lead record.

    The engine never stores or mutates leads; it reads this snapshot and
    emits action requests that the CRM applies on its side.
    """

    id: str
    source: Optional[str] = None
    deal_value: Optional[float] = None
    score: Optional[float] = None
    campaign: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    stage: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    # Contact and ownership fields exposed by the filter builder
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    course: Optional[str] = None
    company: Optional[str] = None
    assigned_to_id: Optional[str] = None
    follow_up_status: Optional[str] = None

    @property
    def idle_reference(self) -> Optional[datetime]:
        """Timestamp idle time is measured from."""
        return self.last_activity_at or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire shape used in webhook payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "course": self.course,
            "company": self.company,
            "source": self.source,
            "stage": self.stage,
            "score": self.score,
            "dealValue": self.deal_value,
            "campaign": self.campaign,
            "tags": list(self.tags),
            "assignedToId": self.assigned_to_id,
            "followUpStatus": self.follow_up_status,
            "customFields": dict(self.custom_fields),
            "lastActivityAt": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lead":
        """Build a snapshot from the camelCase wire shape."""
        assigned = data.get("assignedToId")
        return cls(
            id=str(data["id"]),
            source=data.get("source"),
            deal_value=data.get("dealValue"),
            score=data.get("score"),
            campaign=data.get("campaign"),
            tags=list(data.get("tags") or []),
            stage=data.get("stage"),
            custom_fields=dict(data.get("customFields") or {}),
            last_activity_at=parse_datetime(data.get("lastActivityAt")),
            created_at=parse_datetime(data.get("createdAt")),
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            city=data.get("city"),
            course=data.get("course"),
            company=data.get("company"),
            assigned_to_id=str(assigned) if assigned is not None else None,
            follow_up_status=data.get("followUpStatus"),
        )
