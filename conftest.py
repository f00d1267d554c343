from concurrent.futures import Future
from uuid import UUID

import httpx
import pytest

from accounts.models import Identity
from config import Settings
from container import Services, build_services

WEBHOOK_SECRET = "test-webhook-secret"
WORKFLOW_URL = "https://workflow.test/webhook/review"
PII_KEY = "5f" * 32


class ImmediateExecutor:
    """Runs submitted work inline so dispatch effects are visible to the test."""

    def submit(self, fn, *args, **kwargs) -> Future:
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


class RecordingTransport(httpx.MockTransport):
    """Mock transport that keeps every request it answered."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)


def make_settings(**overrides) -> Settings:
    values = {
        "WEBHOOK_SECRET": WEBHOOK_SECRET,
        "REVIEW_WORKFLOW_URL": WORKFLOW_URL,
        "REVIEW_API_KEY": "test-api-key",
        "REVIEW_TIMEOUT_SECONDS": 2.0,
        "PII_ENC_KEY": PII_KEY,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_services(handler=None, **overrides) -> tuple[Services, RecordingTransport]:
    transport = RecordingTransport(
        handler or (lambda request: httpx.Response(200, json={"workflowId": "wf-1", "runId": "run-1"}))
    )
    services = build_services(
        make_settings(**overrides),
        client=httpx.Client(transport=transport),
        executor=ImmediateExecutor(),
    )
    return services, transport


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def services() -> Services:
    services, _ = make_services()
    return services


@pytest.fixture
def offline_services() -> Services:
    """Services without a review workflow: submissions stay PENDING."""
    services, _ = make_services(REVIEW_WORKFLOW_URL="")
    return services


@pytest.fixture
def user_id(services) -> UUID:
    return services.accounts.find_or_create(Identity(email="reviewer@example.com", name="Asha")).id


@pytest.fixture
def offline_user_id(offline_services) -> UUID:
    return offline_services.accounts.find_or_create(Identity(email="offline@example.com", name="Ravi")).id
