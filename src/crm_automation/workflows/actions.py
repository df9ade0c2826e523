"""Action execution: turn a rule's action into one outward request."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Deque, Dict, List, Optional, Union
import logging

from ..core.errors import (
    AutomationError,
    DispatchError,
    EmptyTeamError,
    ResolutionError,
    UnknownListError,
    UnknownTargetError,
)
from ..storage.models import Lead
from ..team.directory import Directory
from ..team.round_robin import RoundRobinAssigner
from .models import (
    ActionKind,
    AddTagAction,
    AddToPhoneListAction,
    AssignRoundRobinAction,
    AssignToTeamAction,
    AssignToUserAction,
    AutomationAction,
    CreateTaskAction,
    SendWebhookAction,
)

logger = logging.getLogger(__name__)


# ============================================================================
# ACTION REQUESTS
# ============================================================================

@dataclass(frozen=True)
class TagAdd:
    """Add ``tag`` to the lead's tags (set union on the CRM side)."""
    lead_id: str
    requested_at: datetime
    tag: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "TagAdd", "leadId": self.lead_id,
                "requestedAt": self.requested_at.isoformat(), "tag": self.tag}


@dataclass(frozen=True)
class ReassignLead:
    lead_id: str
    requested_at: datetime
    user_id: str
    team_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "ReassignLead", "leadId": self.lead_id,
                "requestedAt": self.requested_at.isoformat(),
                "userId": self.user_id, "teamId": self.team_id}


@dataclass(frozen=True)
class WebhookDispatch:
    lead_id: str
    requested_at: datetime
    url: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "WebhookDispatch", "leadId": self.lead_id,
                "requestedAt": self.requested_at.isoformat(),
                "url": self.url, "payload": self.payload}


@dataclass(frozen=True)
class TaskCreate:
    lead_id: str
    requested_at: datetime
    title: str
    due_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "TaskCreate", "leadId": self.lead_id,
                "requestedAt": self.requested_at.isoformat(),
                "title": self.title, "dueAt": self.due_at.isoformat()}


@dataclass(frozen=True)
class PhoneListMembershipAdd:
    lead_id: str
    requested_at: datetime
    phone_list_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": "PhoneListMembershipAdd", "leadId": self.lead_id,
                "requestedAt": self.requested_at.isoformat(),
                "phoneListId": self.phone_list_id}


ActionRequest = Union[TagAdd, ReassignLead, WebhookDispatch, TaskCreate, PhoneListMembershipAdd]


@dataclass
class ActionResult:
    """Outcome of one action: Ok with its request, or Failed with a reason."""
    action_kind: ActionKind
    lead_id: str
    ok: bool
    request: Optional[ActionRequest] = None
    reason: str = ""
    error: Optional[AutomationError] = None
    rule_id: str = ""
    executed_at: datetime = field(default_factory=datetime.now)

    @property
    def failed(self) -> bool:
        return not self.ok


class ActionExecutor:
    """Execute rule actions against the directory and collaborators.

    ``request_handler`` receives every request except webhooks, which go to
    ``webhook_handler`` when one is set. Both are expected to return
    quickly; webhook delivery itself is the dispatcher's job.
    """

    def __init__(
        self,
        directory: Directory,
        assigner: Optional[RoundRobinAssigner] = None,
        request_handler: Callable[[ActionRequest], Any] = None,
        webhook_handler: Callable[[WebhookDispatch], Any] = None,
        clock: Callable[[], datetime] = datetime.now,
        history_size: int = 1000
    ):
        self.directory = directory
        self.assigner = assigner or RoundRobinAssigner(directory)
        self.request_handler = request_handler
        self.webhook_handler = webhook_handler
        self.clock = clock
        self.execution_history: Deque[ActionResult] = deque(maxlen=history_size)

        self._handlers: Dict[ActionKind, Callable[[Any, Lead, datetime], ActionRequest]] = {
            ActionKind.ADD_TAG: self._add_tag,
            ActionKind.ASSIGN_TO_USER: self._assign_to_user,
            ActionKind.ASSIGN_TO_TEAM: self._assign_to_team,
            ActionKind.ASSIGN_ROUND_ROBIN: self._assign_round_robin,
            ActionKind.SEND_WEBHOOK: self._send_webhook,
            ActionKind.CREATE_TASK: self._create_task,
            ActionKind.ADD_TO_PHONE_LIST: self._add_to_phone_list,
        }
        missing = set(ActionKind) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for action kinds: {sorted(k.value for k in missing)}")

    def execute(self, action: AutomationAction, lead: Lead, rule_id: str = "") -> ActionResult:
        """Execute ``action`` for ``lead``. Never raises."""
        now = self.clock()
        try:
            request = self._handlers[action.kind](action, lead, now)
        except (ResolutionError, EmptyTeamError) as e:
            logger.warning(f"Action {action.kind.value} skipped for lead {lead.id}: {e}")
            return self._record(ActionResult(
                action_kind=action.kind, lead_id=lead.id, ok=False,
                reason=str(e), error=e, rule_id=rule_id
            ))

        try:
            self._emit(request)
        except Exception as e:
            error = DispatchError(f"{type(request).__name__} for lead {lead.id} failed: {e}")
            logger.error(str(error))
            return self._record(ActionResult(
                action_kind=action.kind, lead_id=lead.id, ok=False, request=request,
                reason=str(error), error=error, rule_id=rule_id
            ))

        return self._record(ActionResult(
            action_kind=action.kind, lead_id=lead.id, ok=True, request=request, rule_id=rule_id
        ))

    def _emit(self, request: ActionRequest):
        if isinstance(request, WebhookDispatch) and self.webhook_handler:
            self.webhook_handler(request)
        elif self.request_handler:
            self.request_handler(request)
        else:
            logger.debug(f"No handler for {type(request).__name__}; lead {request.lead_id} request dropped")

    def _record(self, result: ActionResult) -> ActionResult:
        self.execution_history.append(result)
        return result

    # Action handlers
    def _add_tag(self, action: AddTagAction, lead: Lead, now: datetime) -> TagAdd:
        return TagAdd(lead_id=lead.id, requested_at=now, tag=action.tag)

    def _assign_to_user(self, action: AssignToUserAction, lead: Lead, now: datetime) -> ReassignLead:
        if not self.directory.get_user(action.user_id):
            raise UnknownTargetError(f"Unknown user: {action.user_id}")
        return ReassignLead(lead_id=lead.id, requested_at=now, user_id=action.user_id)

    def _assign_to_team(self, action: AssignToTeamAction, lead: Lead, now: datetime) -> ReassignLead:
        team = self.directory.get_team(action.team_id)
        if not team:
            raise UnknownTargetError(f"Unknown team: {action.team_id}")
        if not team.lead_user_id:
            raise UnknownTargetError(f"Team {action.team_id} has no team lead")
        return ReassignLead(
            lead_id=lead.id, requested_at=now, user_id=team.lead_user_id, team_id=team.id
        )

    def _assign_round_robin(self, action: AssignRoundRobinAction, lead: Lead,
                            now: datetime) -> ReassignLead:
        if not self.directory.get_team(action.team_id):
            raise UnknownTargetError(f"Unknown team: {action.team_id}")
        user_id = self.assigner.next_assignee(action.team_id)
        return ReassignLead(
            lead_id=lead.id, requested_at=now, user_id=user_id, team_id=action.team_id
        )

    def _send_webhook(self, action: SendWebhookAction, lead: Lead, now: datetime) -> WebhookDispatch:
        return WebhookDispatch(
            lead_id=lead.id, requested_at=now, url=action.url, payload=lead.to_dict()
        )

    def _create_task(self, action: CreateTaskAction, lead: Lead, now: datetime) -> TaskCreate:
        return TaskCreate(
            lead_id=lead.id, requested_at=now, title=action.title,
            due_at=now + timedelta(days=action.due_days)
        )

    def _add_to_phone_list(self, action: AddToPhoneListAction, lead: Lead,
                           now: datetime) -> PhoneListMembershipAdd:
        if not self.directory.get_phone_list(action.phone_list_id):
            raise UnknownListError(f"Unknown phone list: {action.phone_list_id}")
        return PhoneListMembershipAdd(
            lead_id=lead.id, requested_at=now, phone_list_id=action.phone_list_id
        )

    def get_execution_history(self, failed_only: bool = False, limit: int = 100) -> List[ActionResult]:
        """Most recent action results, oldest first."""
        results = list(self.execution_history)
        if failed_only:
            results = [r for r in results if r.failed]
        return results[-limit:]
