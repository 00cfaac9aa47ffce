"""Pytest configuration and fixtures.

Provides the provider test double, registry fixtures, environment isolation,
logging configuration and automatic API test skipping. Isolation fixtures
are autouse unless noted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import os
from typing import TYPE_CHECKING

import pytest

from aicall.body import Body, BodyBuilder, Metrics
from aicall.capability import Capability
from aicall.models import ModelCapabilities, ModelRegistry
from aicall.providers.base import ProviderRegistry
from aicall.registries import Registries
from aicall.returns import CallReturn

if TYPE_CHECKING:
    from aicall.request import RequestBase

# =============================================================================
# Test Doubles
# =============================================================================


def reply(
    request: RequestBase, text: str, *, finish_reason: str | None = "stop"
) -> CallReturn:
    """Build the return a well-behaved provider gives for *request*."""
    body = (
        BodyBuilder.from_body(request.body)
        .clear_new_markers()
        .add_assistant(text, metrics=Metrics(finish_reason=finish_reason))
        .build()
    )
    return CallReturn.from_body(body, request)


@dataclass
class FakeProvider:
    """Provider test double for executor behavior verification.

    Returns scripted results in order: a string becomes an assistant reply,
    an exception is raised, anything else (a ``CallReturn`` or ``None``) is
    returned as is. With an empty script every call answers "ok".
    """

    provider_name: str = "fake"
    script: list[CallReturn | BaseException | str | None] = field(
        default_factory=list
    )
    calls: int = 0
    last_request: RequestBase | None = None

    @property
    def name(self) -> str:
        return self.provider_name

    async def call(self, request: RequestBase) -> CallReturn | None:
        self.calls += 1
        self.last_request = request
        if not self.script:
            return reply(request, "ok")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return reply(request, item)
        return item

    def encode(self, request: RequestBase) -> str:
        return json.dumps(
            {"model": request.model, "turns": len(request.body.interactions)}
        )

    def decode(self, raw: str) -> Body:
        data = json.loads(raw)
        metrics = Metrics(finish_reason=data.get("finish_reason"))
        return (
            BodyBuilder.create().add_assistant(data["content"], metrics=metrics).build()
        )


# Models registered for the fake provider in most tests.
FAKE_MODELS = (
    ModelCapabilities(
        "fake",
        "chat-1",
        Capability.TOOL_CHAT | Capability.STREAMING,
        default_for=Capability.TEXT2TEXT,
    ),
    ModelCapabilities(
        "fake",
        "json-1",
        Capability.TEXT2TEXT | Capability.JSON_OUTPUT | Capability.STREAMING,
        default_for=Capability.TEXT2JSON,
    ),
    ModelCapabilities("fake", "basic-1", Capability.TEXT2TEXT),
)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def models() -> ModelRegistry:
    return ModelRegistry(list(FAKE_MODELS))


@pytest.fixture
def registries(fake_provider: FakeProvider, models: ModelRegistry) -> Registries:
    """Registries with the fake provider and its models (not autouse)."""
    return Registries(providers=ProviderRegistry(fake_provider), models=models)


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    monkeypatch.setattr("aicall.config.load_dotenv", lambda *_args, **_kwargs: False)


@pytest.fixture(autouse=True)
def isolate_aicall_env(request, monkeypatch):
    """Ensure a clean AICALL_* environment for each test.

    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith("AICALL_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)
