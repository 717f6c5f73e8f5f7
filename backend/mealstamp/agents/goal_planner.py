"""
MealStamp - GoalPlanner Agent

Turns the user profile into a DailyGoalPlan: a short title, a strategy
description and one target per goal-specific metric. The plan is stored
as the profile's detail goal and drives the key metrics on the home view.
"""

import logging
from typing import Optional

from opik import track
from pydantic import ValidationError

from mealstamp.config import get_settings
from mealstamp.core.base_agent import AnalysisError, BaseAgent, ErrorKind
from mealstamp.core.inference import GeminiClient, InferenceClient, clean_model_text
from mealstamp.core.prompts import build_goal_plan_prompt
from mealstamp.core.state import DailyGoalPlan, GoalPlanRequest

logger = logging.getLogger(__name__)


class GoalPlanner(BaseAgent[GoalPlanRequest, DailyGoalPlan]):
    """
    Generates the detailed daily target plan for a profile.

    Example:
        planner = GoalPlanner()
        result = await planner.execute(GoalPlanRequest(profile=profile, api_key=api_key))
        if result.success:
            profile.detail_goal = result.output.model_dump_json()
    """

    def __init__(self, client: Optional[InferenceClient] = None):
        super().__init__()
        self.settings = get_settings()
        self.client = client or GeminiClient()

    @property
    def name(self) -> str:
        return "GoalPlanner"

    @track(name="goal_planner.process")
    async def process(self, input: GoalPlanRequest) -> DailyGoalPlan:
        """
        Raises:
            AnalysisError: CONFIGURATION_MISSING without a key, the client's
                failure kind, or PARSE_FAILURE for a reply that is not a plan
        """
        self._log_input(input)

        if not input.api_key.strip():
            raise AnalysisError(
                ErrorKind.CONFIGURATION_MISSING,
                "Gemini API key missing. Please set it in settings.",
            )

        self._logger.info(f"Generating daily target plan for goal: {input.profile.primary_goal or 'none'}")
        result = await self.client.generate_content(
            prompt=build_goal_plan_prompt(input.profile),
            api_key=input.api_key,
            model=input.model or self.settings.gemini_model,
        )

        if not result.success:
            raise AnalysisError(
                result.error_kind or ErrorKind.NETWORK_FAILURE,
                f"Failed to generate goal: {result.error}",
            )

        try:
            plan = DailyGoalPlan.model_validate_json(clean_model_text(result.output or ""))
        except ValidationError as e:
            raise AnalysisError(
                ErrorKind.PARSE_FAILURE,
                "Failed to parse goal format. Please try again.",
                original_error=e,
            )

        self._log_output(plan)
        return plan
