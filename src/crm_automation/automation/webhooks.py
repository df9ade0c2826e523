"""Outbound webhook delivery for SEND_WEBHOOK actions."""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

import requests

from ..core.config import EngineConfig
from ..core.errors import DispatchError
from ..workflows.actions import WebhookDispatch

logger = logging.getLogger(__name__)


@dataclass
class WebhookDelivery:
    """Record of a webhook delivery attempt."""

    lead_id: str
    url: str
    payload: Dict[str, Any]
    status_code: Optional[int] = None
    response: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0
    delivered_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def delivered(self) -> bool:
        return self.delivered_at is not None


class WebhookDispatcher:
    """POST webhook requests with bounded retries.

    Usable directly as the executor's ``webhook_handler``: calling the
    dispatcher hands the request to a daemon thread and returns at once.
    Failures after the last retry are reported to ``on_failure``.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        on_failure: Callable[[WebhookDelivery, DispatchError], Any] = None,
        async_delivery: bool = True,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None
    ):
        self.config = config or EngineConfig()
        self.on_failure = on_failure
        self.async_delivery = async_delivery
        self.sleep = sleep
        self.session = session or requests.Session()
        self.delivery_history: Deque[WebhookDelivery] = deque(maxlen=500)

    def __call__(self, request: WebhookDispatch) -> WebhookDelivery:
        return self.dispatch(request)

    def dispatch(self, request: WebhookDispatch) -> WebhookDelivery:
        delivery = WebhookDelivery(lead_id=request.lead_id, url=request.url, payload=request.payload)
        self.delivery_history.append(delivery)

        if self.async_delivery:
            thread = threading.Thread(target=self._deliver, args=(delivery, request))
            thread.daemon = True
            thread.start()
        else:
            self._deliver(delivery, request)
        return delivery

    def _deliver(self, delivery: WebhookDelivery, request: WebhookDispatch):
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.config.user_agent,
            "X-Requested-At": request.requested_at.isoformat(),
        }
        attempts = max(1, self.config.webhook_retries)

        for attempt in range(attempts):
            delivery.attempts = attempt + 1
            try:
                response = self.session.post(
                    delivery.url, json=delivery.payload, headers=headers,
                    timeout=self.config.webhook_timeout
                )
                delivery.status_code = response.status_code
                delivery.response = response.text[:1000]
                if response.status_code < 400:
                    delivery.delivered_at = datetime.now()
                    delivery.error = None
                    logger.info(
                        f"Webhook delivered for lead {delivery.lead_id} -> {delivery.url} "
                        f"(status: {delivery.status_code})"
                    )
                    return
                delivery.error = f"HTTP {response.status_code}"
                logger.warning(
                    f"Webhook failed: {delivery.url} (attempt {attempt + 1}): HTTP {response.status_code}"
                )

            except requests.RequestException as e:
                delivery.error = str(e)
                logger.error(f"Webhook error: {delivery.url} (attempt {attempt + 1}): {e}")

            if attempt < attempts - 1:
                self.sleep(self.config.webhook_backoff * (2 ** attempt))

        error = DispatchError(
            f"Webhook to {delivery.url} for lead {delivery.lead_id} failed after "
            f"{delivery.attempts} attempt(s): {delivery.error}"
        )
        logger.error(str(error))
        if self.on_failure:
            self.on_failure(delivery, error)

    def get_failed_deliveries(self) -> List[WebhookDelivery]:
        return [d for d in self.delivery_history if d.error and not d.delivered]
