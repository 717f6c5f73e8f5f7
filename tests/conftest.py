import asyncio
import json
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

os.environ.setdefault("OPIK_TRACK_DISABLE", "true")

import pytest
from fastapi.testclient import TestClient

from mealstamp.core.base_agent import AgentResult, ErrorKind
from mealstamp.core.preferences import PreferencesStore
from mealstamp.core.storage import InMemoryStorage
from mealstamp.main import create_app

TEST_API_KEY = "test-gemini-key"


class PromptKind(str, Enum):
    SEGMENTATION = "segmentation"
    METRICS = "metrics"
    ADVICE = "advice"
    SUGGESTION = "suggestion"
    GOAL_PLAN = "goal_plan"


_PROMPT_MARKERS = {
    PromptKind.SEGMENTATION: "Give the segmentation masks",
    PromptKind.METRICS: "Analyze the nutritional content",
    PromptKind.ADVICE: "EXTREMELY CONCISE daily advice",
    PromptKind.SUGGESTION: "ONLY suggest the NEXT meal",
    PromptKind.GOAL_PLAN: "Detailed Daily Target",
}

FakeReply = Union[str, AgentResult]


def classify_prompt(prompt: str) -> PromptKind:
    for kind, marker in _PROMPT_MARKERS.items():
        if marker in prompt:
            return kind
    raise AssertionError(f"Unexpected prompt: {prompt[:80]}")


class FakeInferenceClient:
    """Canned replies per prompt kind; records every call."""

    def __init__(self, replies: Optional[dict[PromptKind, FakeReply]] = None) -> None:
        self.replies: dict[PromptKind, FakeReply] = dict(replies or {})
        self.calls: list[tuple[PromptKind, str, str]] = []
        self.gate: Optional[asyncio.Event] = None

    def reply(self, kind: PromptKind, reply: FakeReply) -> None:
        self.replies[kind] = reply

    def fail(self, kind: PromptKind, error: str = "HTTP 503", error_kind: ErrorKind = ErrorKind.NETWORK_FAILURE) -> None:
        self.replies[kind] = AgentResult.fail(error_kind, error, agent_name="FakeInferenceClient")

    def calls_of(self, kind: PromptKind) -> list[str]:
        return [prompt for call_kind, prompt, _ in self.calls if call_kind == kind]

    async def generate_content(
        self,
        prompt: str,
        image_data: Optional[bytes] = None,
        api_key: str = "",
        model: Optional[str] = None,
    ) -> AgentResult:
        kind = classify_prompt(prompt)
        self.calls.append((kind, prompt, api_key))
        if self.gate is not None:
            await self.gate.wait()
        if not api_key:
            return AgentResult.fail(ErrorKind.CONFIGURATION_MISSING, "API key is not configured")
        reply = self.replies.get(kind)
        if reply is None:
            return AgentResult.fail(ErrorKind.NETWORK_FAILURE, f"No canned reply for {kind.value}")
        if isinstance(reply, AgentResult):
            return reply
        return AgentResult.ok(reply, agent_name="FakeInferenceClient")


class FixedClock:
    def __init__(self, current: datetime) -> None:
        self.current = current

    def now(self) -> datetime:
        return self.current

    def set(self, hour: int, minute: int = 0) -> None:
        self.current = self.current.replace(hour=hour, minute=minute)


def metrics_payload(**overrides) -> dict:
    payload = {
        "calories": 200,
        "protein": 4.0,
        "fiber": 1.0,
        "addedSugar": 0.0,
        "saturatedFat": 0.5,
        "sodium": 5.0,
        "vegetableContent": 0.0,
        "water": 100.0,
        "processingLevel": 1,
        "isHealthy": True,
    }
    payload.update(overrides)
    return payload


def segmentation_reply(*labels: str) -> str:
    return json.dumps([
        {"box_2d": [100 * i, 100, 100 * i + 90, 400], "mask": "data:image/png;base64,AAAA", "label": label}
        for i, label in enumerate(labels)
    ])


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 3, 14, 8, 30, tzinfo=timezone.utc))


@pytest.fixture
def fake_client() -> FakeInferenceClient:
    return FakeInferenceClient()


@pytest.fixture
def storage(clock) -> InMemoryStorage:
    return InMemoryStorage(clock)


@pytest.fixture
def preferences() -> PreferencesStore:
    return PreferencesStore(initial_key=TEST_API_KEY)


@pytest.fixture
def client(fake_client, clock, preferences):
    app = create_app(inference_client=fake_client, clock=clock, preferences=preferences)
    with TestClient(app) as test_client:
        yield test_client
