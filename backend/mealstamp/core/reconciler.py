"""
MealStamp - Metrics Reconciler

Maps the free-text phase-2 reply back onto the phase-1 labels.

The model is asked for ``{"<label>": {...metrics...}}`` but does not
always comply: sometimes it returns a list of named records under one of
several top-level keys. Shapes are tried in strict order:

1. Map shape: keys are food names, matched to labels by case-insensitive
   equality.
2. List shape (only when the map decode fails as a whole): records under
   "the food items", "items" or "food_items", matched by case-insensitive
   substring containment in either direction. First record in list order
   wins.
3. Nothing decodes: every label maps to None.

Whatever happens, the outcome holds exactly one slot per input label.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mealstamp.core.state import FoodMetrics, MatchStrategy, ReconciliationOutcome

logger = logging.getLogger(__name__)

_METRICS_MAP = TypeAdapter(dict[str, FoodMetrics])


class FoodListEntry(BaseModel):
    """One named record of the list-shaped reply; every field optional."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    calories: Optional[int] = None
    protein: Optional[float] = None
    fiber: Optional[float] = None
    added_sugar: Optional[float] = Field(default=None, alias="addedSugar")
    saturated_fat: Optional[float] = Field(default=None, alias="saturatedFat")
    sodium: Optional[float] = None
    vegetable_content: Optional[float] = Field(default=None, alias="vegetableContent")
    water: Optional[float] = None
    processing_level: Optional[int] = Field(default=None, alias="processingLevel")
    is_healthy: Optional[bool] = Field(default=None, alias="isHealthy")

    def to_metrics(self) -> FoodMetrics:
        return FoodMetrics(
            calories=self.calories or 0,
            protein=self.protein or 0.0,
            fiber=self.fiber or 0.0,
            added_sugar=self.added_sugar or 0.0,
            saturated_fat=self.saturated_fat or 0.0,
            sodium=self.sodium or 0.0,
            vegetable_content=self.vegetable_content or 0.0,
            water=self.water or 0.0,
            processing_level=self.processing_level or 0,
            is_healthy=bool(self.is_healthy),
        )


class FoodListResponse(BaseModel):
    """List-shaped reply; the model varies the top-level key."""
    model_config = ConfigDict(populate_by_name=True)

    the_food_items: Optional[list[FoodListEntry]] = Field(default=None, alias="the food items")
    items: Optional[list[FoodListEntry]] = None
    food_items: Optional[list[FoodListEntry]] = None

    def entries(self) -> list[FoodListEntry]:
        for candidate in (self.the_food_items, self.items, self.food_items):
            if candidate is not None:
                return candidate
        return []


class MetricsReconciler:
    """
    Reconciles a phase-2 reply against the ordered phase-1 labels.

    Example:
        outcome = MetricsReconciler().reconcile(["Rice", "Chicken"], reply_text)
        outcome.metrics   # [FoodMetrics | None, FoodMetrics | None]
    """

    def reconcile(self, labels: list[str], response_text: str) -> ReconciliationOutcome:
        """Map response entries back onto ``labels`` (by position)."""
        trimmed = (response_text or "").strip()
        logger.debug(f"Parsing batch metrics JSON (first 300 chars): {trimmed[:300]}")

        try:
            data: Any = json.loads(trimmed)
        except json.JSONDecodeError as e:
            logger.warning(f"Batch metrics reply is not JSON (map and list both fail): {e}")
            return self.unavailable(labels, f"Response is not valid JSON: {e}")

        try:
            metrics_map = _METRICS_MAP.validate_python(data)
        except ValidationError as e:
            logger.warning(
                f"Standard map parsing failed ({e.error_count()} errors). Trying list fallback..."
            )
        else:
            return self._match_map(labels, metrics_map)

        try:
            list_response = FoodListResponse.model_validate(data)
        except ValidationError as e:
            logger.warning(
                f"Batch metrics parsing error (both map and list failed): {e.error_count()} errors"
            )
            return self.unavailable(labels, "Response matches neither the map nor the list shape")

        return self._match_list(labels, list_response.entries())

    @staticmethod
    def unavailable(labels: list[str], error: str) -> ReconciliationOutcome:
        """Outcome with an empty slot for every label."""
        return ReconciliationOutcome(
            labels=list(labels),
            metrics=[None] * len(labels),
            strategy=MatchStrategy.NONE,
            error=error,
        )

    def _match_map(self, labels: list[str], metrics_map: dict[str, FoodMetrics]) -> ReconciliationOutcome:
        logger.info(f"Parsed metrics for {len(metrics_map)} foods")

        slots: list[Optional[FoodMetrics]] = []
        for label in labels:
            wanted = label.casefold()
            matched = next(
                (metrics for key, metrics in metrics_map.items() if key.casefold() == wanted),
                None,
            )
            logger.debug(f"Mapping '{label}' -> {'found' if matched else 'NOT FOUND'}")
            slots.append(matched)

        outcome = ReconciliationOutcome(labels=list(labels), metrics=slots, strategy=MatchStrategy.MAP)
        logger.info(f"Successfully mapped {outcome.matched_count}/{len(labels)} foods")
        return outcome

    def _match_list(self, labels: list[str], entries: list[FoodListEntry]) -> ReconciliationOutcome:
        logger.info(f"Parsed list fallback with {len(entries)} items")

        slots: list[Optional[FoodMetrics]] = []
        for label in labels:
            matched = self._find_entry(label, entries)
            if matched is not None:
                logger.debug(f"List mapping '{label}' -> found '{matched.name}'")
                slots.append(matched.to_metrics())
            else:
                logger.debug(f"List mapping '{label}' -> NOT FOUND")
                slots.append(None)

        outcome = ReconciliationOutcome(labels=list(labels), metrics=slots, strategy=MatchStrategy.LIST)
        logger.info(f"List fallback mapped {outcome.matched_count}/{len(labels)} foods")
        return outcome

    @staticmethod
    def _find_entry(label: str, entries: list[FoodListEntry]) -> Optional[FoodListEntry]:
        # No scoring between candidates: first in list order wins
        wanted = label.casefold()
        for entry in entries:
            name = (entry.name or "").casefold()
            if not name:
                continue
            if wanted in name or name in wanted:
                return entry
        return None
