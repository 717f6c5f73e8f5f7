"""
MealStamp - Agents Module

Specialized agents for the food-analysis pipeline and coaching:
- FoodSegmenter: Phase 1, food segmentation with Gemini Vision
- MetricsAnalyst: Phase 2, batch nutrition estimates reconciled onto labels
- AICoach: Daily advice and next-meal suggestion
- GoalPlanner: Daily target plan generated from the user profile
"""

from mealstamp.agents.food_segmenter import FoodSegmenter
from mealstamp.agents.metrics_analyst import MetricsAnalyst
from mealstamp.agents.ai_coach import AICoach
from mealstamp.agents.goal_planner import GoalPlanner

__all__ = ["FoodSegmenter", "MetricsAnalyst", "AICoach", "GoalPlanner"]
