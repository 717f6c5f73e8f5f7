"""
MealStamp - MetricsAnalyst Agent

Phase 2 of the analysis pipeline: one batch request estimating nutrition
for every phase-1 label, reconciled back onto the labels. This phase
never fails the pipeline; a failed request or an unusable reply yields an
outcome with no metrics.
"""

import logging
from typing import Optional

from opik import track

from mealstamp.config import get_settings
from mealstamp.core.base_agent import BaseAgent
from mealstamp.core.inference import GeminiClient, InferenceClient
from mealstamp.core.prompts import build_batch_metrics_prompt
from mealstamp.core.reconciler import MetricsReconciler
from mealstamp.core.state import MetricsRequest, ReconciliationOutcome

logger = logging.getLogger(__name__)


class MetricsAnalyst(BaseAgent[MetricsRequest, ReconciliationOutcome]):
    """
    Estimates per-food nutrition with a single batch prompt.

    Example:
        analyst = MetricsAnalyst()
        result = await analyst.execute(MetricsRequest(
            labels=["Rice", "Grilled chicken"],
            image_bytes=image_data,
            api_key=api_key,
        ))
        outcome = result.output   # ReconciliationOutcome
    """

    def __init__(
        self,
        client: Optional[InferenceClient] = None,
        reconciler: Optional[MetricsReconciler] = None,
    ):
        super().__init__()
        self.settings = get_settings()
        self.client = client or GeminiClient()
        self.reconciler = reconciler or MetricsReconciler()

    @property
    def name(self) -> str:
        return "MetricsAnalyst"

    @track(name="metrics_analyst.process")
    async def process(self, input: MetricsRequest) -> ReconciliationOutcome:
        self._log_input(input)
        model = input.model or self.settings.gemini_model

        self._logger.info(
            f"Phase 2 - Batch analyzing metrics for {len(input.labels)} items: "
            f"{', '.join(input.labels)}"
        )
        result = await self.client.generate_content(
            prompt=build_batch_metrics_prompt(input.labels),
            image_data=input.image_bytes,
            api_key=input.api_key,
            model=model,
        )

        if not result.success:
            self._logger.warning(f"Failed to get batch metrics: {result.error}")
            return self.reconciler.unavailable(input.labels, result.error or "Batch metrics request failed")

        outcome = self.reconciler.reconcile(input.labels, result.output or "")
        if outcome.gaps:
            self._logger.warning(f"No metrics matched for: {', '.join(outcome.gaps)}")

        self._log_output(outcome)
        return outcome
