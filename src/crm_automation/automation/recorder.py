"""In-memory sink for action requests."""

import threading
from typing import Any, Dict, List, Type

from ..workflows.actions import ActionRequest


class RequestRecorder:
    """Collect emitted action requests, e.g. for a dry run or a test."""

    def __init__(self):
        self.requests: List[ActionRequest] = []
        self._lock = threading.Lock()

    def __call__(self, request: ActionRequest):
        with self._lock:
            self.requests.append(request)

    def of_type(self, request_type: Type) -> List[ActionRequest]:
        with self._lock:
            return [r for r in self.requests if isinstance(r, request_type)]

    def for_lead(self, lead_id: str) -> List[ActionRequest]:
        with self._lock:
            return [r for r in self.requests if r.lead_id == lead_id]

    def to_dicts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [r.to_dict() for r in self.requests]

    def clear(self):
        with self._lock:
            self.requests.clear()
