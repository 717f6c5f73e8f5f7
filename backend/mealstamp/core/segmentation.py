"""
MealStamp - Segmentation Parser

Turns the phase-1 model reply into SegmentationMask objects. The parse is
all-or-nothing: phase 2 needs the complete label list, so a single bad
entry fails the whole response.
"""

import json
import logging
import re

from pydantic import TypeAdapter, ValidationError

from mealstamp.core.base_agent import AnalysisError, ErrorKind
from mealstamp.core.state import SegmentationMask

logger = logging.getLogger(__name__)

_MASK_LIST = TypeAdapter(list[SegmentationMask])
_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def _extract_json_text(response_text: str) -> str:
    """Find the JSON payload inside prose or code fences."""
    fenced = _FENCED_BLOCK.search(response_text)
    if fenced:
        return fenced.group(1).strip()

    trimmed = response_text.strip()
    if trimmed.startswith("[") or trimmed.startswith("{"):
        return trimmed

    start = trimmed.find("[")
    end = trimmed.rfind("]")
    if start != -1 and end > start:
        return trimmed[start : end + 1]
    return trimmed


def parse_segmentation_response(response_text: str) -> list[SegmentationMask]:
    """
    Decode the phase-1 reply into a list of segmentation masks.

    Accepts a bare JSON list, a list wrapped in a ```json fence or prose,
    or an object holding the list under "detections". Unknown fields are
    ignored; a missing box or label fails the whole parse.

    Raises:
        AnalysisError: with ErrorKind.PARSE_FAILURE
    """
    json_text = _extract_json_text(response_text)
    logger.debug(f"Parsing segmentation JSON (first 200 chars): {json_text[:200]}")

    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error(f"Segmentation parsing error: {e}")
        raise AnalysisError(
            ErrorKind.PARSE_FAILURE,
            f"Segmentation response is not valid JSON: {e}",
            original_error=e,
        ) from e

    if isinstance(data, dict) and isinstance(data.get("detections"), list):
        data = data["detections"]

    try:
        masks = _MASK_LIST.validate_python(data)
    except ValidationError as e:
        logger.error(f"Segmentation response has an unexpected shape: {e.error_count()} errors")
        raise AnalysisError(
            ErrorKind.PARSE_FAILURE,
            "Segmentation response does not match the expected mask list",
            original_error=e,
        ) from e

    logger.info(f"Parsed {len(masks)} segmentation masks")
    return masks
