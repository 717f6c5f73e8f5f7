"""
MealStamp - In-Memory Storage

Keyed storage for days, meals, food items, the user profile and weight
history, plus the snapshot stream the advice controller listens to.
Can be replaced with a database for production.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from mealstamp.core.clock import Clock, SystemClock
from mealstamp.core.state import (
    DailyNutrients,
    DayMeals,
    DayStatus,
    FoodItem,
    Meal,
    MealAnalysis,
    NutritionSnapshot,
    UserProfile,
)

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[NutritionSnapshot], None]

DEFAULT_TARGET_CALORIES = 2000
DEFAULT_WATER_TARGET_LITERS = 2.5
COMPLETE_DAY_MEALS = 3


def generate_day_id(moment: datetime) -> str:
    """Day key in DDMMYYYY form."""
    return moment.strftime("%d%m%Y")


def format_date_label(moment: datetime, today: datetime) -> str:
    """'Today', 'Yesterday' or e.g. '5 Mar'."""
    days_diff = (today.date() - moment.date()).days
    if days_diff == 0:
        return "Today"
    if days_diff == 1:
        return "Yesterday"
    return f"{moment.day} {moment.strftime('%b')}"


class InMemoryStorage:
    """
    Thread-safe in-memory storage for the single app user.

    Every mutation recomputes today's snapshot and pushes it to the
    registered listeners synchronously, after the lock is released.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._listeners: list[SnapshotListener] = []

        self._meals: dict[int, Meal] = {}
        self._meals_by_day: dict[str, list[int]] = defaultdict(list)
        self._day_dates: dict[str, datetime] = {}
        self._next_meal_id = 1

        self._profile = UserProfile()
        self._weight_history: list[tuple[datetime, float]] = []
        self._water_by_day: dict[str, float] = defaultdict(float)
        self.target_calories = DEFAULT_TARGET_CALORIES
        self.water_target_liters = DEFAULT_WATER_TARGET_LITERS

        self._overall_advice: Optional[str] = None
        self._next_meal_suggestion: Optional[str] = None

        logger.info("InMemoryStorage initialized")

    # === Snapshot stream ===

    def add_listener(self, listener: SnapshotListener) -> None:
        """Register a callback receiving every new snapshot."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    # === Meals ===

    def save_meal_with_food_items(self, meal: Meal, analysis: MealAnalysis) -> int:
        """Persist a captured meal with the analysis totals and food items."""
        with self._lock:
            meal_id = meal.id or self._next_meal_id
            self._next_meal_id = max(self._next_meal_id, meal_id + 1)
            day_id = generate_day_id(meal.captured_at)

            stored = meal.model_copy(update={
                "id": meal_id,
                "calories": analysis.total_calories,
                "carbs": None,
                "protein": analysis.total_protein,
                # No total fat estimate; saturated fat stands in
                "fat": analysis.total_saturated_fat,
                "fiber": analysis.total_fiber,
                "added_sugar": analysis.total_added_sugar,
                "sodium": analysis.total_sodium,
                "saturated_fat": analysis.total_saturated_fat,
                "vegetable_content": analysis.total_vegetable_content,
                "water": analysis.total_water,
                "average_processing_level": analysis.average_processing_level,
                "ai_comment": analysis.ai_comment,
                "is_healthy": analysis.is_healthy,
                "food_items": [item.model_copy(deep=True) for item in analysis.food_items],
            })

            self._day_dates.setdefault(day_id, meal.captured_at.replace(hour=0, minute=0, second=0, microsecond=0))
            if meal_id not in self._meals:
                self._meals_by_day[day_id].append(meal_id)
            self._meals[meal_id] = stored

        logger.info(f"Saved meal {meal_id} with {len(analysis.food_items)} food items for day {day_id}")
        self._notify()
        return meal_id

    def get_meal(self, meal_id: int) -> Optional[Meal]:
        return self._meals.get(meal_id)

    def get_food_items_for_meal(self, meal_id: int) -> list[FoodItem]:
        meal = self._meals.get(meal_id)
        if meal is None:
            return []
        return [item.model_copy(deep=True) for item in meal.food_items]

    def get_meals_for_day(self, day_id: str) -> list[Meal]:
        """Meals of a day, oldest capture first."""
        with self._lock:
            meals = [self._meals[meal_id] for meal_id in self._meals_by_day.get(day_id, [])]
        return sorted(meals, key=lambda m: m.captured_at)

    def get_day_status(self, day_id: str) -> DayStatus:
        meals = self.get_meals_for_day(day_id)
        healthy = sum(1 for meal in meals if meal.is_healthy)
        return DayStatus(
            total_meals=len(meals),
            healthy_meals=healthy,
            is_complete=len(meals) >= COMPLETE_DAY_MEALS,
        )

    def _recent_days(self, limit: int, offset: int = 0) -> list[tuple[str, datetime]]:
        """(day_id, date) pairs, newest first."""
        with self._lock:
            ordered = sorted(self._day_dates.items(), key=lambda kv: kv[1], reverse=True)
        return ordered[offset:offset + limit]

    def get_days_with_meals(self, limit: int = 10, offset: int = 0) -> list[DayMeals]:
        """Page of days that have meals, newest day first."""
        today = self._clock.now()
        return [
            DayMeals(
                day_id=day_id,
                date_label=format_date_label(date, today),
                date=date,
                meals=self.get_meals_for_day(day_id),
                status=self.get_day_status(day_id),
            )
            for day_id, date in self._recent_days(limit, offset)
        ]

    def get_weekly_trends(self, days: int = 7) -> list[DailyNutrients]:
        """Totals for the most recent days with meals, oldest first."""
        today = self._clock.now()
        trends = []
        for day_id, date in self._recent_days(days):
            meals = self.get_meals_for_day(day_id)
            items = [item for meal in meals for item in meal.food_items if item.metrics]
            trends.append(DailyNutrients(
                day_label=format_date_label(date, today),
                date=date,
                calories=sum(meal.calories or 0 for meal in meals),
                carbs=sum(meal.carbs or 0.0 for meal in meals),
                protein=sum(meal.protein or 0.0 for meal in meals),
                fat=sum(meal.fat or 0.0 for meal in meals),
                fiber=sum(item.metrics.fiber for item in items),
                added_sugar=sum(item.metrics.added_sugar for item in items),
                sodium=sum(item.metrics.sodium for item in items),
                saturated_fat=sum(item.metrics.saturated_fat for item in items),
                vegetable_content=sum(item.metrics.vegetable_content for item in items),
                water=sum(item.metrics.water for item in items),
            ))

        trends.sort(key=lambda d: d.date)
        return trends

    # === Water, weight & profile ===

    def add_water(self, liters: float) -> float:
        """Add to today's intake, capped at twice the target. Returns the new total."""
        day_id = generate_day_id(self._clock.now())
        with self._lock:
            total = min(self._water_by_day[day_id] + liters, self.water_target_liters * 2)
            self._water_by_day[day_id] = total
        logger.info(f"Water intake for {day_id}: {total:.2f}L")
        self._notify()
        return total

    def update_weight(self, weight: float) -> None:
        """Record a weight entry; it also becomes the profile weight."""
        with self._lock:
            self._weight_history.append((self._clock.now(), weight))
            self._profile = self._profile.model_copy(update={"weight": weight})
        logger.info(f"Weight updated: {weight}kg")
        self._notify()

    def update_user_profile(self, profile: UserProfile) -> UserProfile:
        with self._lock:
            self._profile = profile.model_copy(deep=True)
        logger.info(f"Profile updated (goal: {profile.primary_goal or 'none'})")
        self._notify()
        return profile

    def get_profile(self) -> UserProfile:
        return self._profile.model_copy(deep=True)

    # === Advice slots ===

    def update_advice(self, advice: str) -> None:
        with self._lock:
            self._overall_advice = advice
        self._notify()

    def update_meal_suggestion(self, suggestion: str) -> None:
        with self._lock:
            self._next_meal_suggestion = suggestion
        self._notify()

    # === Snapshot ===

    def get_snapshot(self) -> NutritionSnapshot:
        """Current nutrition state for today."""
        now = self._clock.now()
        today_id = generate_day_id(now)
        meals = self.get_meals_for_day(today_id)

        with self._lock:
            profile = self._profile
            history = list(self._weight_history)
            water = self._water_by_day.get(today_id, 0.0)
            advice = self._overall_advice
            suggestion = self._next_meal_suggestion

        calories = sum(meal.calories or 0 for meal in meals)
        fat = sum(meal.fat or 0.0 for meal in meals)

        return NutritionSnapshot(
            current_calories=calories,
            target_calories=self.target_calories,
            carbs=sum(meal.carbs or 0.0 for meal in meals),
            protein=sum(meal.protein or 0.0 for meal in meals),
            fat=fat,
            fiber=sum(meal.fiber or 0.0 for meal in meals),
            added_sugar=sum(meal.added_sugar or 0.0 for meal in meals),
            sodium=sum(meal.sodium or 0.0 for meal in meals),
            saturated_fat=sum(meal.saturated_fat or 0.0 for meal in meals),
            vegetable_content=sum(meal.vegetable_content or 0.0 for meal in meals),
            water_intake_liters=water,
            water_target_liters=self.water_target_liters,
            current_weight=history[-1][1] if history else profile.weight,
            weight_progress=[(format_date_label(moment, now), weight) for moment, weight in history],
            ai_warning=self._check_warnings(water, calories, fat),
            overall_advice=advice,
            next_meal_suggestion=suggestion,
            age=profile.age,
            sex=profile.sex,
            height=profile.height,
            activity_level=profile.activity_level,
            health_conditions=list(profile.health_conditions),
            dietary_pattern=profile.dietary_pattern,
            medications=profile.medications,
            primary_goal=profile.primary_goal,
            goal_intensity=profile.goal_intensity,
            secondary_goals=list(profile.secondary_goals),
            detail_goal=profile.detail_goal,
            daily_meals=meals,
        )

    @staticmethod
    def _check_warnings(water: float, calories: int, fat: float) -> Optional[str]:
        if water < 0.5 and calories > 1000:
            return "Water intake too low for current consumption."
        if fat > 100:
            return "High fat intake detected."
        return None

