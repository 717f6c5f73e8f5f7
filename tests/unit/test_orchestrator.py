import asyncio
import json

import pytest

from conftest import FakeInferenceClient, PromptKind, TEST_API_KEY, metrics_payload, segmentation_reply
from mealstamp.core.base_agent import ErrorKind
from mealstamp.core.orchestrator import FoodAnalysisOrchestrator

IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"


@pytest.fixture
def orchestrator(fake_client) -> FoodAnalysisOrchestrator:
    return FoodAnalysisOrchestrator(fake_client)


def _analyze(orchestrator, image=IMAGE, api_key=TEST_API_KEY):
    return asyncio.run(orchestrator.analyze_food_image(image, api_key))


def test_full_pipeline(orchestrator, fake_client: FakeInferenceClient) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, segmentation_reply("Rice", "Grilled chicken"))
    fake_client.reply(PromptKind.METRICS, json.dumps({
        "rice": metrics_payload(calories=200, protein=4.0),
        "Grilled Chicken": metrics_payload(calories=165, protein=31.0),
    }))

    result = _analyze(orchestrator)

    assert result.success
    analysis = result.output
    assert [item.label for item in analysis.food_items] == ["Rice", "Grilled chicken"]
    assert analysis.total_calories == 365
    assert analysis.is_healthy is True
    assert analysis.food_items[0].box_2d == [0, 100, 90, 400]
    assert "Rice, Grilled chicken" in fake_client.calls_of(PromptKind.METRICS)[0]


def test_metrics_gap_keeps_items(orchestrator, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, segmentation_reply("Rice", "Mystery sauce"))
    fake_client.reply(PromptKind.METRICS, json.dumps({"rice": metrics_payload()}))

    analysis = _analyze(orchestrator).output

    assert analysis.food_items[1].metrics is None
    assert analysis.food_items[1].is_healthy is False


def test_metrics_failure_degrades_to_empty_metrics(orchestrator, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, segmentation_reply("Rice", "Salad"))
    fake_client.fail(PromptKind.METRICS)

    result = _analyze(orchestrator)

    assert result.success
    assert [item.metrics for item in result.output.food_items] == [None, None]
    assert result.output.total_calories == 0
    assert result.output.is_healthy is False


def test_unparseable_metrics_degrade(orchestrator, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, segmentation_reply("Rice"))
    fake_client.reply(PromptKind.METRICS, "I think the rice has about 200 calories.")

    result = _analyze(orchestrator)
    assert result.success
    assert result.output.food_items[0].metrics is None


def test_missing_api_key_short_circuits(orchestrator, fake_client) -> None:
    result = _analyze(orchestrator, api_key="  ")
    assert result.error_kind == ErrorKind.CONFIGURATION_MISSING
    assert fake_client.calls == []


def test_empty_image(orchestrator, fake_client) -> None:
    result = _analyze(orchestrator, image=b"")
    assert result.error_kind == ErrorKind.IMAGE_READ_FAILURE
    assert fake_client.calls == []


def test_segmentation_network_failure_aborts(orchestrator, fake_client) -> None:
    fake_client.fail(PromptKind.SEGMENTATION, "Request timed out after 120s")
    result = _analyze(orchestrator)
    assert not result.success
    assert result.error_kind == ErrorKind.NETWORK_FAILURE
    assert fake_client.calls_of(PromptKind.METRICS) == []


def test_segmentation_parse_failure_aborts(orchestrator, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, "[{\"label\": \"Rice\"}]")
    result = _analyze(orchestrator)
    assert result.error_kind == ErrorKind.PARSE_FAILURE
    assert fake_client.calls_of(PromptKind.METRICS) == []


def test_no_food_detected(orchestrator, fake_client) -> None:
    fake_client.reply(PromptKind.SEGMENTATION, "[]")
    result = _analyze(orchestrator)
    assert result.error_kind == ErrorKind.NO_FOOD_DETECTED
    assert result.error == "No food items detected in the image"
