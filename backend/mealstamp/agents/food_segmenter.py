"""
MealStamp - FoodSegmenter Agent

Phase 1 of the analysis pipeline: asks Gemini for segmentation masks of
every food item in the photo and parses them into SegmentationMask
objects. Any failure here aborts the pipeline, since phase 2 needs the
label list to form its request.
"""

import logging
from typing import Optional

from opik import track

from mealstamp.config import get_settings
from mealstamp.core.base_agent import AnalysisError, BaseAgent, ErrorKind
from mealstamp.core.inference import GeminiClient, InferenceClient
from mealstamp.core.prompts import SEGMENTATION_PROMPT
from mealstamp.core.segmentation import parse_segmentation_response
from mealstamp.core.state import SegmentationInput, SegmentationOutput

logger = logging.getLogger(__name__)


class FoodSegmenter(BaseAgent[SegmentationInput, SegmentationOutput]):
    """
    Detects and localizes food regions in a meal photo.

    Example:
        segmenter = FoodSegmenter()
        result = await segmenter.execute(SegmentationInput(
            image_bytes=image_data,
            api_key=api_key,
        ))
        if result.success:
            labels = [mask.label for mask in result.output.masks]
    """

    def __init__(self, client: Optional[InferenceClient] = None):
        super().__init__()
        self.settings = get_settings()
        self.client = client or GeminiClient()

    @property
    def name(self) -> str:
        return "FoodSegmenter"

    @track(name="food_segmenter.process")
    async def process(self, input: SegmentationInput) -> SegmentationOutput:
        """
        Request and parse segmentation masks for the image.

        Raises:
            AnalysisError: the client's failure kind, or PARSE_FAILURE
        """
        self._log_input(input)
        model = input.model or self.settings.gemini_model

        self._logger.info("Phase 1 - Requesting segmentation")
        result = await self.client.generate_content(
            prompt=SEGMENTATION_PROMPT,
            image_data=input.image_bytes,
            api_key=input.api_key,
            model=model,
        )

        if not result.success:
            raise AnalysisError(
                result.error_kind or ErrorKind.NETWORK_FAILURE,
                result.error or "Segmentation request failed",
            )

        masks = parse_segmentation_response(result.output or "")

        for index, mask in enumerate(masks, start=1):
            self._logger.info(f"Food {index}: {mask.label} (box: {mask.box_2d})")

        output = SegmentationOutput(masks=masks, model_used=model)
        self._log_output(output)
        return output
