"""
MealStamp - Food Analysis Orchestrator

Runs the two-phase analysis pipeline for one meal photo:

1. **SEGMENT**: FoodSegmenter detects food regions and their labels.
   Any failure here (or an empty detection) aborts the analysis.
2. **MEASURE**: MetricsAnalyst estimates nutrition for all labels in a
   single batch request and reconciles the reply onto the labels.
   Failures degrade to items without metrics.
3. **AGGREGATE**: the items are reduced into a MealAnalysis.
"""

import logging
import time
from typing import Optional

from opik import track

from mealstamp.agents import FoodSegmenter, MetricsAnalyst
from mealstamp.config import get_settings
from mealstamp.core.aggregator import build_meal_analysis
from mealstamp.core.base_agent import AgentResult, ErrorKind
from mealstamp.core.inference import GeminiClient, InferenceClient
from mealstamp.core.reconciler import MetricsReconciler
from mealstamp.core.state import (
    FoodItem,
    MetricsRequest,
    ReconciliationOutcome,
    SegmentationInput,
)

logger = logging.getLogger(__name__)

ORCHESTRATOR_NAME = "FoodAnalysisOrchestrator"


class FoodAnalysisOrchestrator:
    """
    Central coordinator for meal photo analysis.

    Usage:
        orchestrator = FoodAnalysisOrchestrator()
        result = await orchestrator.analyze_food_image(image_bytes, api_key)
        if result.success:
            analysis = result.output  # MealAnalysis
    """

    def __init__(self, client: Optional[InferenceClient] = None):
        self.settings = get_settings()
        self._logger = logging.getLogger("mealstamp.orchestrator")

        client = client or GeminiClient()
        self.food_segmenter = FoodSegmenter(client)
        self.metrics_analyst = MetricsAnalyst(client, MetricsReconciler())

        self._logger.info("FoodAnalysisOrchestrator initialized with agents: FoodSegmenter, MetricsAnalyst")

    @track(name="orchestrator.analyze_food_image")
    async def analyze_food_image(self, image_bytes: bytes, api_key: Optional[str]) -> AgentResult:
        """
        Run the full pipeline on a meal photo.

        Returns:
            AgentResult with a MealAnalysis as output, or the failure kind of
            the phase that aborted the analysis
        """
        start_time = time.time()

        if not image_bytes:
            return self._fail(ErrorKind.IMAGE_READ_FAILURE, "Could not read image data", start_time)

        if not api_key or not api_key.strip():
            return self._fail(ErrorKind.CONFIGURATION_MISSING, "API key is not configured", start_time)

        self._logger.info(f"Starting food analysis ({len(image_bytes)} bytes)")

        # === SEGMENT ===
        segmentation = await self.food_segmenter.execute(
            SegmentationInput(image_bytes=image_bytes, api_key=api_key)
        )
        if not segmentation.success:
            return self._fail(segmentation.error_kind, segmentation.error, start_time)

        masks = segmentation.output.masks
        if not masks:
            return self._fail(ErrorKind.NO_FOOD_DETECTED, "No food items detected in the image", start_time)

        labels = [mask.label for mask in masks]
        self._logger.info(f"Segmentation complete: {len(labels)} food regions")

        # === MEASURE ===
        measured = await self.metrics_analyst.execute(
            MetricsRequest(labels=labels, image_bytes=image_bytes, api_key=api_key)
        )
        if measured.success:
            outcome: ReconciliationOutcome = measured.output
        else:
            outcome = MetricsReconciler.unavailable(labels, measured.error or "Metrics analysis failed")

        if outcome.gaps:
            self._logger.warning(
                f"{outcome.error_kind.value}: {len(outcome.gaps)} of {len(labels)} items "
                f"without metrics (strategy: {outcome.strategy.value})"
            )

        # === AGGREGATE ===
        food_items = [
            FoodItem.from_segmentation(mask, metrics)
            for mask, metrics in zip(masks, outcome.metrics)
        ]
        analysis = build_meal_analysis(food_items)

        latency_ms = int((time.time() - start_time) * 1000)
        self._logger.info(
            f"Analysis complete in {latency_ms}ms: {analysis.total_calories}cal, "
            f"healthy={analysis.is_healthy}"
        )
        return AgentResult.ok(analysis, agent_name=ORCHESTRATOR_NAME, latency_ms=latency_ms)

    def _fail(self, kind: Optional[ErrorKind], message: Optional[str], start_time: float) -> AgentResult:
        kind = kind or ErrorKind.NETWORK_FAILURE
        message = message or "Analysis failed"
        self._logger.error(f"Food analysis failed ({kind.value}): {message}")
        return AgentResult.fail(
            kind,
            message,
            agent_name=ORCHESTRATOR_NAME,
            latency_ms=int((time.time() - start_time) * 1000),
        )
