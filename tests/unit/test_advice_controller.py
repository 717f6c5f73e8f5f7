import asyncio

import pytest

from conftest import FakeInferenceClient, PromptKind
from mealstamp.agents.ai_coach import AICoach
from mealstamp.core.advice_controller import AdviceController
from mealstamp.core.preferences import PreferencesStore
from mealstamp.core.state import Meal, MealType, NutritionSnapshot


@pytest.fixture
def controller(fake_client, storage, preferences, clock) -> AdviceController:
    fake_client.reply(PromptKind.ADVICE, "Great start, keep hydrating.")
    fake_client.reply(PromptKind.SUGGESTION, "For your Lunch, try this:\\n- Quinoa bowl")
    return AdviceController(AICoach(fake_client), storage, preferences, clock=clock)


def _run(scenario):
    return asyncio.run(scenario())


def test_first_snapshot_triggers_and_second_identical_does_not(controller, fake_client) -> None:
    snapshot = NutritionSnapshot(current_calories=400)

    async def scenario():
        first = controller.maybe_refresh_advice(snapshot)
        await controller.drain()
        second = controller.maybe_refresh_advice(NutritionSnapshot(current_calories=400))
        await controller.drain()
        return first, second

    assert _run(scenario) == (True, False)
    assert len(fake_client.calls_of(PromptKind.ADVICE)) == 1
    assert len(fake_client.calls_of(PromptKind.SUGGESTION)) == 1


def test_cache_is_overwritten_before_remote_call_returns(controller, fake_client, clock) -> None:
    snapshot = NutritionSnapshot(current_calories=400)

    async def scenario():
        fake_client.gate = asyncio.Event()
        assert controller.maybe_refresh_advice(snapshot)
        # No await yet: the task has not even started
        assert controller.session.last_context is snapshot
        assert controller.session.last_generation_time == clock.now()
        assert controller.is_generating

        burst = [controller.maybe_refresh_advice(NutritionSnapshot(current_calories=400)) for _ in range(5)]
        await asyncio.sleep(0)
        assert controller.is_generating
        fake_client.gate.set()
        await controller.drain()
        return burst

    assert _run(scenario) == [False] * 5
    assert not controller.is_generating
    assert len(fake_client.calls_of(PromptKind.ADVICE)) == 1


def test_results_are_stored(controller, storage) -> None:
    async def scenario():
        controller.maybe_refresh_advice(storage.get_snapshot())
        await controller.drain()

    _run(scenario)
    snapshot = storage.get_snapshot()
    assert snapshot.overall_advice == "Great start, keep hydrating."
    assert snapshot.next_meal_suggestion == "For your Lunch, try this:\n- Quinoa bowl"


def test_sub_requests_fail_independently(controller, fake_client, storage) -> None:
    storage.update_advice("Old advice")
    storage.update_meal_suggestion("Old suggestion")
    fake_client.fail(PromptKind.ADVICE, "HTTP 500")

    async def scenario():
        controller.maybe_refresh_advice(storage.get_snapshot())
        await controller.drain()

    _run(scenario)
    snapshot = storage.get_snapshot()
    assert snapshot.overall_advice == "Old advice"
    assert snapshot.next_meal_suggestion.startswith("For your Lunch")
    assert not controller.is_generating


@pytest.mark.parametrize(
    "changed",
    [
        NutritionSnapshot(current_calories=900),
        NutritionSnapshot(current_calories=400, current_weight=71.0),
        NutritionSnapshot(
            current_calories=400,
            daily_meals=[Meal(meal_type=MealType.SNACK, captured_at="2025-03-14T08:00:00Z")],
        ),
    ],
)
def test_relevant_changes_trigger(controller, changed) -> None:
    async def scenario():
        controller.maybe_refresh_advice(NutritionSnapshot(current_calories=400))
        await controller.drain()
        triggered = controller.maybe_refresh_advice(changed)
        await controller.drain()
        return triggered

    assert _run(scenario) is True


def test_advice_text_change_does_not_trigger(controller) -> None:
    async def scenario():
        controller.maybe_refresh_advice(NutritionSnapshot(current_calories=400))
        await controller.drain()
        return controller.maybe_refresh_advice(
            NutritionSnapshot(current_calories=400, overall_advice="new text", next_meal_suggestion="x")
        )

    assert _run(scenario) is False


def test_day_phase_change_triggers(controller, clock) -> None:
    snapshot = NutritionSnapshot(current_calories=400)

    async def scenario():
        controller.maybe_refresh_advice(snapshot)
        await controller.drain()
        clock.set(10, 59)
        same_phase = controller.maybe_refresh_advice(snapshot)
        clock.set(11, 0)
        next_phase = controller.maybe_refresh_advice(snapshot)
        await controller.drain()
        return same_phase, next_phase

    assert _run(scenario) == (False, True)


def test_storage_updates_do_not_retrigger(controller, storage, fake_client) -> None:
    storage.add_listener(controller.maybe_refresh_advice)

    async def scenario():
        controller.maybe_refresh_advice(storage.get_snapshot())
        await controller.drain()

    _run(scenario)
    assert len(fake_client.calls_of(PromptKind.ADVICE)) == 1
    assert storage.get_snapshot().overall_advice is not None


def test_missing_api_key_skips_generation(fake_client, storage, clock) -> None:
    controller = AdviceController(AICoach(fake_client), storage, PreferencesStore(), clock=clock)

    async def scenario():
        triggered = controller.maybe_refresh_advice(NutritionSnapshot())
        await controller.drain()
        return triggered

    assert _run(scenario) is True
    assert fake_client.calls == []
    assert not controller.is_generating
    assert controller.session.last_context is not None


def test_without_event_loop_nothing_is_claimed(controller) -> None:
    assert controller.maybe_refresh_advice(NutritionSnapshot()) is False
    assert controller.session.last_context is None


def test_should_trigger_does_not_claim(controller) -> None:
    assert controller.should_trigger(NutritionSnapshot()) is True
    assert controller.session.last_context is None


def test_unexpected_coach_error_is_contained(fake_client, storage, preferences, clock) -> None:
    class BrokenCoach(AICoach):
        async def get_advice(self, *args, **kwargs):
            raise RuntimeError("boom")

    controller = AdviceController(BrokenCoach(fake_client), storage, preferences, clock=clock)
    fake_client.reply(PromptKind.SUGGESTION, "Oats")

    async def scenario():
        controller.maybe_refresh_advice(NutritionSnapshot())
        await controller.drain()

    _run(scenario)
    assert storage.get_snapshot().next_meal_suggestion == "Oats"
    assert not controller.is_generating
