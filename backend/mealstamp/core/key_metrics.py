"""
MealStamp - Key Metrics

Derives the three goal-specific metrics shown on the home view. The same
view feeds the coaching context and the advice staleness check, which
compares it by value between snapshots.
"""

import logging
import re
from typing import Optional

from pydantic import ValidationError

from mealstamp.core.state import (
    DailyGoalPlan,
    GoalMetric,
    KeyMetric,
    MetricStatus,
    NutritionSnapshot,
)

logger = logging.getLogger(__name__)

MAX_KEY_METRICS = 3
DEFAULT_PLAN_TARGET = 100.0

_FIRST_NUMBER = re.compile(r"(\d+)(\.\d+)?")
_NON_UNIT_CHARS = re.compile(r"[0-9.\s]")


def parse_goal_plan(detail_goal: str) -> Optional[DailyGoalPlan]:
    """Decode the profile's detail goal JSON; None when blank or invalid."""
    if not detail_goal or not detail_goal.strip():
        return None
    try:
        return DailyGoalPlan.model_validate_json(detail_goal)
    except ValidationError as e:
        logger.warning(f"Error parsing detail goal: {e.error_count()} errors")
        return None


def _is_water(label: str) -> bool:
    return "water" in label or "hydra" in label


def _metric_from_goal(goal_metric: GoalMetric, snapshot: NutritionSnapshot) -> KeyMetric:
    label = goal_metric.label.lower()
    number = _FIRST_NUMBER.search(goal_metric.value)
    target = float(number.group()) if number else DEFAULT_PLAN_TARGET
    plan_unit = _NON_UNIT_CHARS.sub("", goal_metric.value)

    if "calor" in label:
        current = float(snapshot.current_calories)
        status = MetricStatus.WARNING if current > target * 1.1 else MetricStatus.GOOD
        unit = ""
    elif "protein" in label:
        current, status, unit = snapshot.protein, MetricStatus.GOOD, "g"
    elif "fiber" in label:
        current = snapshot.fiber
        status = MetricStatus.GOOD if current >= target * 0.8 else MetricStatus.WARNING
        unit = "g"
    elif "sugar" in label:
        current = snapshot.added_sugar
        status = MetricStatus.WARNING if current > target else MetricStatus.GOOD
        unit = "g"
    elif "fat" in label and "sat" in label:
        current = snapshot.saturated_fat
        status = MetricStatus.GOOD if current < target else MetricStatus.WARNING
        unit = "g"
    elif "sodium" in label:
        current = snapshot.sodium
        status = MetricStatus.WARNING if current > target else MetricStatus.GOOD
        unit = "mg"
    elif _is_water(label):
        current, status, unit = snapshot.water_intake_liters, MetricStatus.GOOD, "L"
    elif "carb" in label:
        current, status, unit = snapshot.carbs, MetricStatus.GOOD, "g"
    else:
        current, status, unit = 0.0, MetricStatus.NEUTRAL, plan_unit

    # Plans sometimes state water in ml
    if _is_water(label) and target > 10:
        target = target / 1000.0

    return KeyMetric(
        title=goal_metric.label,
        current=current,
        target=target,
        unit=unit or plan_unit,
        status=status,
    )


def _fallback_metrics(snapshot: NutritionSnapshot) -> list[KeyMetric]:
    if "weight" in snapshot.primary_goal.lower():
        calories_status = (
            MetricStatus.WARNING
            if snapshot.current_calories > snapshot.target_calories
            else MetricStatus.GOOD
        )
        return [
            KeyMetric(
                title="Calories",
                current=snapshot.current_calories,
                target=snapshot.target_calories,
                status=calories_status,
            ),
            KeyMetric(title="Protein", current=snapshot.protein, target=140.0, unit="g", status=MetricStatus.GOOD),
            KeyMetric(
                title="Fiber",
                current=snapshot.fiber,
                target=25.0,
                unit="g",
                status=MetricStatus.GOOD if snapshot.fiber > 20 else MetricStatus.WARNING,
            ),
        ]

    return [
        KeyMetric(
            title="Calories",
            current=snapshot.current_calories,
            target=snapshot.target_calories,
            status=MetricStatus.NEUTRAL,
        ),
        KeyMetric(
            title="Water",
            current=snapshot.water_intake_liters,
            target=snapshot.water_target_liters,
            unit="L",
            status=MetricStatus.GOOD,
        ),
        KeyMetric(title="Protein", current=snapshot.protein, target=100.0, unit="g", status=MetricStatus.GOOD),
    ]


def generate_key_metrics(snapshot: NutritionSnapshot) -> list[KeyMetric]:
    """
    Build the key metrics for a snapshot.

    Uses the first three metrics of the user's daily goal plan when one is
    stored, otherwise a fixed set chosen from the primary goal.
    """
    plan = parse_goal_plan(snapshot.detail_goal)
    if plan is not None and plan.metrics:
        return [_metric_from_goal(goal_metric, snapshot) for goal_metric in plan.metrics[:MAX_KEY_METRICS]]
    return _fallback_metrics(snapshot)
