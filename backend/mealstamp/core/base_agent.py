"""
MealStamp - Base Agent Abstract Class

Defines the common interface, error taxonomy and tagged result type shared
by the pipeline agents. All agents inherit from BaseAgent and implement
the process() method.
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import TypeVar, Generic, Any
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Type variables for input/output types
InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class ErrorKind(str, Enum):
    """Failure categories surfaced by the pipeline."""
    NETWORK_FAILURE = "network_failure"          # timeout, connection, non-2xx, empty reply
    PARSE_FAILURE = "parse_failure"              # segmentation JSON invalid
    RECONCILIATION_GAP = "reconciliation_gap"    # label without metrics (non-fatal)
    CONFIGURATION_MISSING = "configuration_missing"  # no API key
    NO_FOOD_DETECTED = "no_food_detected"
    IMAGE_READ_FAILURE = "image_read_failure"


class AnalysisError(Exception):
    """Typed pipeline error carrying its ErrorKind."""

    def __init__(self, kind: ErrorKind, message: str, original_error: Exception | None = None):
        self.kind = kind
        self.message = message
        self.original_error = original_error
        super().__init__(f"[{kind.value}] {message}")


class AgentResult(BaseModel):
    """Tagged success/error result with execution metadata."""
    success: bool
    output: Any = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    latency_ms: int = 0
    agent_name: str = ""

    @classmethod
    def ok(cls, output: Any, agent_name: str = "", latency_ms: int = 0) -> "AgentResult":
        return cls(success=True, output=output, agent_name=agent_name, latency_ms=latency_ms)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        error: str,
        agent_name: str = "",
        latency_ms: int = 0,
    ) -> "AgentResult":
        return cls(
            success=False,
            error=error,
            error_kind=kind,
            agent_name=agent_name,
            latency_ms=latency_ms,
        )


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """
    Abstract base class for all MealStamp agents.

    All agents follow the same pattern:
    1. Receive typed input (Pydantic model)
    2. Process the input (calls the remote model)
    3. Return typed output (Pydantic model)

    Calls are single-shot: the pipeline never retries a remote request,
    a failed phase is reported through AgentResult instead.

    Usage:
        class MyAgent(BaseAgent[MyInput, MyOutput]):
            @property
            def name(self) -> str:
                return "MyAgent"

            async def process(self, input: MyInput) -> MyOutput:
                # Your logic here
                return MyOutput(...)
    """

    def __init__(self):
        self._logger = logging.getLogger(f"mealstamp.agent.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the agent's name for logging and tracing."""
        pass

    @abstractmethod
    async def process(self, input: InputT) -> OutputT:
        """
        Process the input and return output.

        Raises:
            AnalysisError: If processing fails with a known failure kind
        """
        pass

    async def execute(self, input: InputT) -> AgentResult:
        """
        Execute the agent with error handling and latency tracking.

        AnalysisError keeps its kind; any other exception is reported as
        a network failure. Use this method instead of calling process()
        directly.
        """
        start_time = time.time()

        self._logger.info(f"Starting {self.name} execution")

        try:
            output = await self.process(input)
            latency_ms = int((time.time() - start_time) * 1000)

            self._logger.info(f"{self.name} completed in {latency_ms}ms")

            return AgentResult.ok(output, agent_name=self.name, latency_ms=latency_ms)

        except AnalysisError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            self._logger.error(f"{self.name} failed after {latency_ms}ms: {e.message}")
            return AgentResult.fail(e.kind, e.message, agent_name=self.name, latency_ms=latency_ms)

        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            self._logger.error(f"{self.name} failed after {latency_ms}ms: {e}")
            return AgentResult.fail(
                ErrorKind.NETWORK_FAILURE,
                str(e),
                agent_name=self.name,
                latency_ms=latency_ms,
            )

    def _log_input(self, input: InputT, truncate: int = 200):
        """Log input data for debugging (truncated, image bytes excluded)."""
        input_str = str(input.model_dump(exclude={"image_bytes", "api_key"}))
        if len(input_str) > truncate:
            input_str = input_str[:truncate] + "..."
        self._logger.debug(f"Input: {input_str}")

    def _log_output(self, output: OutputT, truncate: int = 200):
        """Log output data for debugging (truncated for large outputs)."""
        output_str = str(output.model_dump())
        if len(output_str) > truncate:
            output_str = output_str[:truncate] + "..."
        self._logger.debug(f"Output: {output_str}")
