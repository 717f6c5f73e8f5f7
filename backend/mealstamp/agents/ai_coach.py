"""
MealStamp - AICoach

Coaching prompt service: turns a nutrition snapshot into a plain-text
context and asks the model for two independent pieces of advice, the
daily advice paragraph and the next-meal suggestion. Each request
succeeds or fails on its own.
"""

import logging
from datetime import datetime
from typing import Optional

from opik import track

from mealstamp.config import get_settings
from mealstamp.core.base_agent import AgentResult, ErrorKind
from mealstamp.core.inference import GeminiClient, InferenceClient
from mealstamp.core.prompts import build_advice_prompt, build_meal_suggestion_prompt
from mealstamp.core.state import KeyMetric, NutritionSnapshot

logger = logging.getLogger(__name__)

AGENT_NAME = "AICoach"

# Applied in order; "* **" must be handled before "**"
_RESPONSE_REPLACEMENTS = [
    ("\\n", "\n"),
    ('\\"', '"'),
    ("\\u003c", "<"),
    ("\\u003e", ">"),
    ("\\u0026", "&"),
    ("<b>", ""),
    ("</b>", ""),
    ("<br>", "\n"),
    ("* **", "• "),
    ("**", ""),
]


def clean_response(text: str) -> str:
    """
    Best-effort cleanup of coaching replies.

    Strips wrapping quotes, unescapes the sequences the model emits when
    it answers with a JSON string, and drops stray bold markup.
    """
    text = text.strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1]
    for old, new in _RESPONSE_REPLACEMENTS:
        text = text.replace(old, new)
    return text.strip()


def _clock_time(moment: datetime, reference: datetime) -> str:
    if moment.tzinfo is not None and reference.tzinfo is not None:
        moment = moment.astimezone(reference.tzinfo)
    return moment.strftime("%H:%M")


def build_context(snapshot: NutritionSnapshot, key_metrics: list[KeyMetric], now: datetime) -> str:
    """
    Render the coaching context: key metrics, today's meals, goal and time.
    """
    lines = ["--- Key Metrics Status ---"]
    if key_metrics:
        for metric in key_metrics:
            lines.append(
                f"{metric.title}: {int(metric.current)} / {int(metric.target)}{metric.unit} "
                f"(Status: {metric.status.name})"
            )
    else:
        lines.append(f"Calories: {snapshot.current_calories} / {snapshot.target_calories} (Target)")
        lines.append(f"Water: {snapshot.water_intake_liters}L / {snapshot.water_target_liters}L (Target)")

    lines.append("")
    lines.append("--- Meals Captured ---")
    if not snapshot.daily_meals:
        lines.append("No meals captured yet today.")
    else:
        for meal in sorted(snapshot.daily_meals, key=lambda m: m.captured_at):
            lines.append(
                f"- {meal.meal_type.name} at {_clock_time(meal.captured_at, now)} : "
                f"{meal.calories or 0} kcal"
            )

    lines.append("")
    lines.append("--- User Context ---")
    lines.append(f"Goal: {snapshot.primary_goal}")

    lines.append("")
    lines.append(f"Current Time: {now.strftime('%H:%M')}")
    return "\n".join(lines) + "\n"


class AICoach:
    """
    Example:
        coach = AICoach()
        result = await coach.get_advice(snapshot, key_metrics, api_key, now)
        if result.success:
            storage.update_advice(result.output)
    """

    def __init__(self, client: Optional[InferenceClient] = None):
        self.settings = get_settings()
        self.client = client or GeminiClient()
        self._logger = logging.getLogger(f"mealstamp.agent.{AGENT_NAME}")

    @track(name="ai_coach.get_advice")
    async def get_advice(
        self,
        snapshot: NutritionSnapshot,
        key_metrics: list[KeyMetric],
        api_key: str,
        now: datetime,
    ) -> AgentResult:
        """Daily advice paragraph for the snapshot."""
        self._logger.info("Getting advice...")
        prompt = build_advice_prompt(build_context(snapshot, key_metrics, now))
        return await self._request(prompt, api_key, "advice")

    @track(name="ai_coach.get_meal_suggestion")
    async def get_meal_suggestion(
        self,
        snapshot: NutritionSnapshot,
        key_metrics: list[KeyMetric],
        api_key: str,
        now: datetime,
    ) -> AgentResult:
        """Suggestion for the next meal of the day."""
        self._logger.info("Getting meal suggestion...")
        prompt = build_meal_suggestion_prompt(build_context(snapshot, key_metrics, now))
        return await self._request(prompt, api_key, "meal suggestion")

    async def _request(self, prompt: str, api_key: str, what: str) -> AgentResult:
        result = await self.client.generate_content(
            prompt=prompt,
            api_key=api_key,
            model=self.settings.gemini_model,
        )
        if not result.success:
            self._logger.warning(f"Failed to generate {what}: {result.error}")
            return AgentResult.fail(
                result.error_kind or ErrorKind.NETWORK_FAILURE,
                f"Failed to generate {what}: {result.error}",
                agent_name=AGENT_NAME,
                latency_ms=result.latency_ms,
            )

        text = clean_response(result.output or "")
        self._logger.debug(f"{what.capitalize()} response: {text}")
        return AgentResult.ok(text, agent_name=AGENT_NAME, latency_ms=result.latency_ms)
