"""Tests for webhook delivery."""

import pytest
from datetime import datetime
from unittest.mock import MagicMock

import requests

from crm_automation.automation.webhooks import WebhookDispatcher
from crm_automation.core.config import EngineConfig
from crm_automation.core.errors import DispatchError
from crm_automation.workflows.actions import WebhookDispatch


def make_request():
    return WebhookDispatch(
        lead_id="L1",
        requested_at=datetime(2024, 6, 3, 10, 0),
        url="https://hooks.example.com/lead",
        payload={"id": "L1", "dealValue": 1500}
    )


def response(status_code):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = "ok" if status_code < 400 else "error"
    return resp


@pytest.fixture
def config():
    return EngineConfig(webhook_retries=3, webhook_backoff=1.0, webhook_timeout=5.0)


class TestWebhookDispatcher:
    """Tests for WebhookDispatcher."""

    def setup_method(self):
        self.sleeps = []
        self.failures = []

    def dispatcher(self, config, session):
        return WebhookDispatcher(
            config,
            on_failure=lambda delivery, error: self.failures.append((delivery, error)),
            async_delivery=False,
            sleep=self.sleeps.append,
            session=session
        )

    def test_successful_delivery(self, config):
        session = MagicMock()
        session.post.return_value = response(200)

        delivery = self.dispatcher(config, session).dispatch(make_request())

        assert delivery.delivered
        assert delivery.attempts == 1
        assert self.failures == []
        args, kwargs = session.post.call_args
        assert args[0] == "https://hooks.example.com/lead"
        assert kwargs["json"] == {"id": "L1", "dealValue": 1500}
        assert kwargs["timeout"] == 5.0
        assert kwargs["headers"]["User-Agent"] == config.user_agent
        assert kwargs["headers"]["X-Requested-At"] == "2024-06-03T10:00:00"

    def test_retries_with_backoff_then_succeeds(self, config):
        session = MagicMock()
        session.post.side_effect = [response(503), requests.ConnectionError("reset"), response(204)]

        delivery = self.dispatcher(config, session).dispatch(make_request())

        assert delivery.delivered
        assert delivery.attempts == 3
        assert self.sleeps == [1.0, 2.0]
        assert self.failures == []

    def test_reports_failure_after_last_retry(self, config):
        session = MagicMock()
        session.post.return_value = response(500)

        dispatcher = self.dispatcher(config, session)
        delivery = dispatcher.dispatch(make_request())

        assert not delivery.delivered
        assert session.post.call_count == 3
        assert len(self.failures) == 1
        failed_delivery, error = self.failures[0]
        assert failed_delivery is delivery
        assert isinstance(error, DispatchError)
        assert "HTTP 500" in str(error)
        assert dispatcher.get_failed_deliveries() == [delivery]

    def test_callable_as_handler(self, config):
        session = MagicMock()
        session.post.return_value = response(200)
        dispatcher = self.dispatcher(config, session)

        dispatcher(make_request())

        assert len(dispatcher.delivery_history) == 1
