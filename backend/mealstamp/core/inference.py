"""
MealStamp - Remote Inference Client

Thin text/image-in, text-out wrapper around the hosted Gemini model.
One request per call, bounded by the configured timeout, no retries.
The client never raises: every outcome is an AgentResult whose output is
the extracted response text.
"""

import asyncio
import logging
import time
from typing import Optional, Protocol

import google.generativeai as genai
from opik import track

from mealstamp.config import get_settings
from mealstamp.core.base_agent import AgentResult, ErrorKind

logger = logging.getLogger(__name__)

CLIENT_NAME = "GeminiClient"


class InferenceClient(Protocol):
    """Contract every remote model client satisfies."""

    async def generate_content(
        self,
        prompt: str,
        image_data: Optional[bytes] = None,
        api_key: str = "",
        model: Optional[str] = None,
    ) -> AgentResult:
        ...


def clean_model_text(text: str) -> str:
    """Drop markdown code fences the model wraps around JSON payloads."""
    return text.replace("```json", "").replace("```", "").strip()


class GeminiClient:
    """
    Gemini generate_content client.

    Example:
        client = GeminiClient()
        result = await client.generate_content(prompt, image_bytes, api_key=key)
        if result.success:
            print(result.output)
    """

    def __init__(self, timeout_seconds: Optional[float] = None, default_model: Optional[str] = None):
        settings = get_settings()
        self.timeout_seconds = timeout_seconds or settings.request_timeout_seconds
        self.default_model = default_model or settings.gemini_model

    @track(name="gemini_client.generate_content")
    async def generate_content(
        self,
        prompt: str,
        image_data: Optional[bytes] = None,
        api_key: str = "",
        model: Optional[str] = None,
    ) -> AgentResult:
        """
        Send a prompt (and optionally a JPEG image) to the model.

        Args:
            prompt: Prompt text
            image_data: Raw JPEG bytes, sent ahead of the prompt
            api_key: Gemini API key; blank short-circuits before any request
            model: Model name (defaults to the configured model)

        Returns:
            AgentResult with the cleaned response text as output
        """
        start_time = time.time()
        model_name = model or self.default_model

        if not api_key or not api_key.strip():
            logger.warning("Gemini API key is not configured")
            return AgentResult.fail(
                ErrorKind.CONFIGURATION_MISSING,
                "API key is not configured",
                agent_name=CLIENT_NAME,
            )

        logger.info(f"Generating content with model: {model_name}")

        parts: list = []
        if image_data is not None:
            parts.append({"mime_type": "image/jpeg", "data": image_data})
        parts.append(prompt)

        try:
            genai.configure(api_key=api_key)
            generative_model = genai.GenerativeModel(model_name)
            response = await asyncio.wait_for(
                generative_model.generate_content_async(
                    parts,
                    request_options={"timeout": self.timeout_seconds},
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Gemini request timed out after {self.timeout_seconds}s")
            return AgentResult.fail(
                ErrorKind.NETWORK_FAILURE,
                f"Request timed out after {self.timeout_seconds}s",
                agent_name=CLIENT_NAME,
                latency_ms=int((time.time() - start_time) * 1000),
            )
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            return AgentResult.fail(
                ErrorKind.NETWORK_FAILURE,
                f"Request failed: {e}",
                agent_name=CLIENT_NAME,
                latency_ms=int((time.time() - start_time) * 1000),
            )

        latency_ms = int((time.time() - start_time) * 1000)

        try:
            text = clean_model_text(response.text)
        except ValueError as e:
            # Raised by the SDK when the reply carries no text part (blocked/empty)
            logger.error(f"Could not find text in Gemini response: {e}")
            return AgentResult.fail(
                ErrorKind.NETWORK_FAILURE,
                "Could not find text field in response",
                agent_name=CLIENT_NAME,
                latency_ms=latency_ms,
            )

        logger.info(f"Response received in {latency_ms}ms, length: {len(text)}")
        logger.debug(f"Extracted text content (first 500 chars): {text[:500]}")
        return AgentResult.ok(text, agent_name=CLIENT_NAME, latency_ms=latency_ms)
