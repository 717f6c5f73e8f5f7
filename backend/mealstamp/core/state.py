"""
MealStamp - Pydantic State Schema

This module defines the type-safe data structures handed between the
two-phase analysis pipeline, the persistence store and the AI coach.
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from mealstamp.core.base_agent import ErrorKind


# Share of healthy items a meal (or day) needs to count as healthy
HEALTHY_RATIO_THRESHOLD = 0.67


class MealType(str, Enum):
    """Categorization of meal timing."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class ActivityLevel(str, Enum):
    """Self-reported activity level from the user profile."""
    SEDENTARY = "Sedentary"
    LIGHTLY_ACTIVE = "Lightly Active"
    ACTIVE = "Active"
    VERY_ACTIVE = "Very Active"


class SegmentationMask(BaseModel):
    """A single food region detected in phase 1."""
    box_2d: list[int] = Field(
        ...,
        min_length=4,
        max_length=4,
        description="Bounding box [y0, x0, y1, x1] normalized to 0-1000"
    )
    mask: str = Field(
        default="",
        description="Base64 segmentation mask, raw or as a data URI"
    )
    label: str = Field(..., description="Descriptive food label (not unique)")

    @field_validator("mask", mode="before")
    @classmethod
    def _missing_mask_is_empty(cls, value):
        return "" if value is None else value

    def base64_data(self) -> str:
        """Return the pure base64 payload, dropping any data URI prefix."""
        if self.mask.startswith("data:"):
            _, sep, payload = self.mask.partition(",")
            return payload if sep else self.mask
        return self.mask

    def denormalized_box(self, image_width: int, image_height: int) -> list[int]:
        """Pixel coordinates [y0, x0, y1, x1] for an image of the given size."""
        y0, x0, y1, x1 = self.box_2d
        return [
            (y0 * image_height) // 1000,
            (x0 * image_width) // 1000,
            (y1 * image_height) // 1000,
            (x1 * image_width) // 1000,
        ]

    def box_dimensions(self, image_width: int, image_height: int) -> tuple[int, int]:
        """Bounding box (width, height) in pixels."""
        y0, x0, y1, x1 = self.denormalized_box(image_width, image_height)
        return x1 - x0, abs(y0 - y1)


class FoodMetrics(BaseModel):
    """Nutrition estimate for one food item from phase 2."""
    model_config = ConfigDict(populate_by_name=True)

    calories: int = Field(..., description="Energy in kcal")
    protein: float = Field(..., description="Protein in grams")
    fiber: float = Field(..., description="Fiber in grams")
    added_sugar: float = Field(..., alias="addedSugar", description="Added sugar in grams")
    saturated_fat: float = Field(..., alias="saturatedFat", description="Saturated fat in grams")
    sodium: float = Field(..., description="Sodium in mg")
    vegetable_content: float = Field(..., alias="vegetableContent", description="Vegetables in grams")
    water: float = Field(..., description="Water in ml")
    processing_level: int = Field(
        ...,
        alias="processingLevel",
        description="1 = unprocessed ... 5 = ultra-processed"
    )
    is_healthy: bool = Field(..., alias="isHealthy")


class FoodItem(BaseModel):
    """A segmented food region joined with its (optional) metrics."""
    label: str = Field(..., description="Food label from segmentation")
    box_2d: list[int] = Field(default_factory=list)
    mask: str = Field(default="")
    metrics: Optional[FoodMetrics] = Field(
        default=None,
        description="None when no metrics could be matched to this label"
    )

    @computed_field
    @property
    def is_healthy(self) -> bool:
        return self.metrics.is_healthy if self.metrics else False

    @classmethod
    def from_segmentation(cls, mask: SegmentationMask, metrics: Optional[FoodMetrics]) -> "FoodItem":
        return cls(label=mask.label, box_2d=list(mask.box_2d), mask=mask.mask, metrics=metrics)


class MealAnalysis(BaseModel):
    """Meal-level totals derived from a list of food items."""
    food_items: list[FoodItem] = Field(default_factory=list)
    total_calories: int = 0
    total_protein: float = 0.0
    total_fiber: float = 0.0
    total_added_sugar: float = 0.0
    total_saturated_fat: float = 0.0
    total_sodium: float = 0.0
    total_vegetable_content: float = 0.0
    total_water: float = 0.0
    average_processing_level: int = 0
    is_healthy: bool = False
    ai_comment: str = ""


class Meal(BaseModel):
    """A captured meal as held by the persistence store."""
    id: int = Field(default=0, ge=0, description="0 until persisted")
    meal_type: MealType = Field(default=MealType.SNACK)
    captured_at: datetime = Field(..., description="When the meal was captured")
    image_url: Optional[str] = Field(default=None)
    calories: Optional[int] = None
    carbs: Optional[float] = None
    protein: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None
    added_sugar: Optional[float] = None
    sodium: Optional[float] = None
    saturated_fat: Optional[float] = None
    vegetable_content: Optional[float] = None
    water: Optional[float] = None
    average_processing_level: Optional[int] = None
    ai_comment: Optional[str] = None
    is_healthy: Optional[bool] = None
    food_items: list[FoodItem] = Field(default_factory=list)


class GoalMetric(BaseModel):
    """One metric of a generated daily goal plan (e.g. 'Protein': '140g')."""
    label: str
    value: str
    rationale: str = ""


class DailyGoalPlan(BaseModel):
    """Detailed daily target plan stored as JSON on the user profile."""
    title: str = ""
    description: str = ""
    metrics: list[GoalMetric] = Field(default_factory=list)


class MetricStatus(str, Enum):
    """Status of a key metric against its target."""
    GOOD = "good"
    WARNING = "warning"
    ALERT = "alert"
    NEUTRAL = "neutral"


class KeyMetric(BaseModel):
    """Goal-specific metric shown on the home view and fed to the coach."""
    title: str
    current: float
    target: float
    unit: str = ""
    status: MetricStatus = MetricStatus.NEUTRAL


class NutritionSnapshot(BaseModel):
    """
    Point-in-time view of the user's nutrition state.

    A new snapshot is emitted on every underlying data change (meal,
    weight, water, profile, advice) and feeds the advice staleness check.
    """
    model_config = ConfigDict(frozen=True)

    # === Today's totals ===
    current_calories: int = 0
    target_calories: int = 2000
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    added_sugar: float = 0.0
    sodium: float = 0.0
    saturated_fat: float = 0.0
    vegetable_content: float = 0.0

    # === Hydration & weight ===
    water_intake_liters: float = 0.0
    water_target_liters: float = 2.5
    current_weight: float = 60.0
    weight_progress: list[tuple[str, float]] = Field(
        default_factory=list,
        description="(date label, weight) pairs, oldest first"
    )

    # === Advice slots ===
    ai_warning: Optional[str] = None
    overall_advice: Optional[str] = None
    next_meal_suggestion: Optional[str] = None

    # === User profile ===
    age: int = 0
    sex: str = ""
    height: float = 0.0
    activity_level: ActivityLevel = ActivityLevel.LIGHTLY_ACTIVE
    health_conditions: list[str] = Field(default_factory=list)
    dietary_pattern: str = ""
    medications: str = ""
    primary_goal: str = ""
    goal_intensity: str = ""
    secondary_goals: list[str] = Field(default_factory=list)
    detail_goal: str = Field(default="", description="DailyGoalPlan JSON")

    daily_meals: list[Meal] = Field(default_factory=list)


class DailyNutrients(BaseModel):
    """Per-day totals used by the weekly trend view."""
    day_label: str
    date: Optional[datetime] = None
    calories: int = 0
    carbs: float = 0.0
    protein: float = 0.0
    fat: float = 0.0
    fiber: float = 0.0
    added_sugar: float = 0.0
    sodium: float = 0.0
    saturated_fat: float = 0.0
    vegetable_content: float = 0.0
    water: float = 0.0
    meal_timing_score: float = 100.0


class DayStatus(BaseModel):
    """Captured/healthy meal counts for a single day."""
    total_meals: int = 0
    healthy_meals: int = 0
    is_complete: bool = False

    @computed_field
    @property
    def is_healthy(self) -> bool:
        return self.total_meals > 0 and self.healthy_meals >= self.total_meals * HEALTHY_RATIO_THRESHOLD


class DayMeals(BaseModel):
    """One entry of the meal history: a day, its meals and its status."""
    day_id: str = Field(..., description="DDMMYYYY day key")
    date_label: str
    date: datetime
    meals: list[Meal] = Field(default_factory=list)
    status: DayStatus


# === Agent Input/Output Models ===

class SegmentationInput(BaseModel):
    """Input to the FoodSegmenter agent."""
    image_bytes: bytes = Field(..., description="Raw image data")
    api_key: str = Field(..., description="Gemini API key")
    model: Optional[str] = Field(default=None, description="Override the configured model")


class SegmentationOutput(BaseModel):
    """Output from the FoodSegmenter agent."""
    masks: list[SegmentationMask] = Field(default_factory=list)
    model_used: str = Field(default="")


class MetricsRequest(BaseModel):
    """Input to the MetricsAnalyst agent."""
    labels: list[str] = Field(..., description="Phase-1 labels, in order, duplicates allowed")
    image_bytes: bytes = Field(...)
    api_key: str = Field(...)
    model: Optional[str] = Field(default=None)


class MatchStrategy(str, Enum):
    """Which response shape produced the metrics mapping."""
    MAP = "map"
    LIST = "list"
    NONE = "none"


class ReconciliationOutcome(BaseModel):
    """
    Result of mapping a phase-2 response back onto the phase-1 labels.

    ``metrics`` always has exactly one slot per input label, in input
    order; a ``None`` slot is a reconciliation gap.
    """
    labels: list[str] = Field(default_factory=list)
    metrics: list[Optional[FoodMetrics]] = Field(default_factory=list)
    strategy: MatchStrategy = MatchStrategy.NONE
    error: Optional[str] = Field(
        default=None,
        description="Why no response shape could be used (strategy NONE)"
    )

    @property
    def gaps(self) -> list[str]:
        """Labels that ended up without metrics."""
        return [label for label, metrics in zip(self.labels, self.metrics) if metrics is None]

    @property
    def matched_count(self) -> int:
        return sum(1 for metrics in self.metrics if metrics is not None)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        """RECONCILIATION_GAP when at least one label is left without metrics."""
        return ErrorKind.RECONCILIATION_GAP if self.gaps else None


class UserProfile(BaseModel):
    """Profile fields the user edits; mirrored onto every snapshot."""
    age: int = Field(default=0, ge=0)
    sex: str = ""
    height: float = Field(default=0.0, ge=0, description="Height in cm")
    weight: float = Field(default=60.0, gt=0, description="Profile weight in kg")
    activity_level: ActivityLevel = ActivityLevel.LIGHTLY_ACTIVE
    health_conditions: list[str] = Field(default_factory=list)
    dietary_pattern: str = ""
    medications: str = ""
    primary_goal: str = ""
    goal_intensity: str = ""
    secondary_goals: list[str] = Field(default_factory=list)
    detail_goal: str = Field(default="", description="DailyGoalPlan JSON")


class GoalPlanRequest(BaseModel):
    """Input to the GoalPlanner agent."""
    profile: UserProfile
    api_key: str = Field(default="", description="Gemini API key; blank fails before any request")
    model: Optional[str] = Field(default=None)
