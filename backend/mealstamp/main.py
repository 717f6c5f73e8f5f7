"""
MealStamp - FastAPI Application

Main entry point for the MealStamp backend API. Exposes meal photo
analysis, the home view (snapshot, key metrics and coaching advice),
trends, and the water/weight/profile/settings updates that feed the
snapshot stream.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import opik
from fastapi import APIRouter, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from mealstamp import __version__
from mealstamp.agents import AICoach, GoalPlanner
from mealstamp.config import get_settings
from mealstamp.core.advice_controller import AdviceController
from mealstamp.core.advice_session import AdviceSession, determine_meal_type
from mealstamp.core.base_agent import AgentResult, ErrorKind
from mealstamp.core.clock import Clock, SystemClock
from mealstamp.core.inference import GeminiClient, InferenceClient
from mealstamp.core.key_metrics import generate_key_metrics
from mealstamp.core.orchestrator import FoodAnalysisOrchestrator
from mealstamp.core.preferences import PreferencesStore
from mealstamp.core.state import (
    DailyGoalPlan,
    DailyNutrients,
    DayMeals,
    DayStatus,
    FoodItem,
    GoalPlanRequest,
    KeyMetric,
    Meal,
    MealAnalysis,
    MealType,
    NutritionSnapshot,
    UserProfile,
)
from mealstamp.core.storage import InMemoryStorage

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.CONFIGURATION_MISSING: 400,
    ErrorKind.IMAGE_READ_FAILURE: 400,
    ErrorKind.NO_FOOD_DETECTED: 422,
    ErrorKind.PARSE_FAILURE: 502,
    ErrorKind.NETWORK_FAILURE: 502,
}


@dataclass
class Services:
    """Application-wide collaborators, created once per app."""
    clock: Clock
    storage: InMemoryStorage
    preferences: PreferencesStore
    orchestrator: FoodAnalysisOrchestrator
    advice_controller: AdviceController
    goal_planner: GoalPlanner


def build_services(
    inference_client: Optional[InferenceClient] = None,
    clock: Optional[Clock] = None,
    preferences: Optional[PreferencesStore] = None,
) -> Services:
    settings = get_settings()
    clock = clock or SystemClock.from_name(settings.timezone)
    client = inference_client or GeminiClient()
    storage = InMemoryStorage(clock)
    preferences = preferences or PreferencesStore(
        initial_key=settings.gemini_api_key,
        path=settings.preferences_path or None,
    )
    controller = AdviceController(
        coach=AICoach(client),
        storage=storage,
        preferences=preferences,
        session=AdviceSession(),
        clock=clock,
    )
    return Services(
        clock=clock,
        storage=storage,
        preferences=preferences,
        orchestrator=FoodAnalysisOrchestrator(client),
        advice_controller=controller,
        goal_planner=GoalPlanner(client),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def raise_for_failure(result: AgentResult) -> None:
    """Map a failed AgentResult onto an HTTP error keyed by its kind."""
    kind = result.error_kind or ErrorKind.NETWORK_FAILURE
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(kind, 500),
        detail={"error_kind": kind.value, "message": result.error},
    )


# === Lifespan Management ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the snapshot stream and clean up in-flight generations."""
    settings = get_settings()
    services: Services = app.state.services

    # Startup
    logger.info("🚀 Starting MealStamp Backend")
    logger.info(f"Environment: {settings.environment}")

    key_status = settings.validate_required_keys()
    for key, configured in key_status.items():
        status = "✅" if configured else "⚠️ Missing"
        logger.info(f"  {key}: {status}")

    if settings.opik_api_key:
        try:
            opik.configure(api_key=settings.opik_api_key)
            logger.info(f"📊 Opik tracing enabled - Project: {settings.opik_project_name}")
        except Exception as e:
            logger.warning(f"⚠️ Opik initialization failed: {e}")

    controller = services.advice_controller
    services.storage.add_listener(controller.maybe_refresh_advice)
    # First snapshot after start always generates
    controller.maybe_refresh_advice(services.storage.get_snapshot())

    yield

    # Shutdown
    await controller.drain()
    logger.info("👋 Shutting down MealStamp Backend")


# === Request/Response Models ===
class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    api_keys_configured: dict[str, bool]


class AnalyzeResponse(BaseModel):
    """Response from the /analyze endpoint."""
    meal_id: int
    meal_type: MealType
    analysis: MealAnalysis
    processing_time_ms: int


class HomeResponse(BaseModel):
    snapshot: NutritionSnapshot
    key_metrics: list[KeyMetric]
    suggested_meal_type: str
    ai_warning: Optional[str] = None
    overall_advice: Optional[str] = None
    next_meal_suggestion: Optional[str] = None
    is_ai_loading: bool = False


class WaterRequest(BaseModel):
    liters: float = Field(..., gt=0, description="Amount of water drunk, in litres")


class WeightRequest(BaseModel):
    weight: float = Field(..., gt=0, description="Body weight in kg")


class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., description="Gemini API key; blank clears it")


router = APIRouter()


# === Endpoints ===
@router.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "MealStamp",
        "version": __version__,
        "description": "AI meal analysis and nutrition coaching",
        "docs_url": "/docs",
    }


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint for monitoring."""
    settings = get_settings()
    return HealthResponse(
        status="ok",
        timestamp=datetime.utcnow().isoformat(),
        version=__version__,
        api_keys_configured=settings.validate_required_keys(),
    )


@router.post("/analyze", response_model=AnalyzeResponse, tags=["analysis"])
async def analyze_meal(
    request: Request,
    image: UploadFile = File(..., description="Meal photo (JPEG)"),
    meal_type: str | None = Form(None, description="Meal type: breakfast, lunch, dinner, snack"),
):
    """
    Analyze a meal photo and store it.

    Runs segmentation, then the batch nutrition estimate, then aggregates
    the items. Items whose metrics could not be matched are returned with
    null metrics.
    """
    services = get_services(request)

    parsed_meal_type = MealType.SNACK
    if meal_type:
        try:
            parsed_meal_type = MealType(meal_type.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid meal type: {meal_type}")

    image_bytes = await image.read()
    captured_at = services.clock.now()

    result = await services.orchestrator.analyze_food_image(image_bytes, services.preferences.get_api_key())
    if not result.success:
        raise_for_failure(result)

    analysis: MealAnalysis = result.output
    meal_id = services.storage.save_meal_with_food_items(
        Meal(meal_type=parsed_meal_type, captured_at=captured_at, image_url=image.filename),
        analysis,
    )

    return AnalyzeResponse(
        meal_id=meal_id,
        meal_type=parsed_meal_type,
        analysis=analysis,
        processing_time_ms=result.latency_ms,
    )


@router.get("/meals/{meal_id}/food-items", response_model=list[FoodItem], tags=["meals"])
async def get_food_items(request: Request, meal_id: int):
    services = get_services(request)
    if services.storage.get_meal(meal_id) is None:
        raise HTTPException(status_code=404, detail=f"Meal {meal_id} not found")
    return services.storage.get_food_items_for_meal(meal_id)


@router.get("/home", response_model=HomeResponse, tags=["home"])
async def get_home(request: Request):
    """Today's snapshot with key metrics and the cached coaching advice."""
    services = get_services(request)
    snapshot = services.storage.get_snapshot()
    return HomeResponse(
        snapshot=snapshot,
        key_metrics=generate_key_metrics(snapshot),
        suggested_meal_type=determine_meal_type(services.clock.now()),
        ai_warning=snapshot.ai_warning,
        overall_advice=snapshot.overall_advice,
        next_meal_suggestion=snapshot.next_meal_suggestion,
        is_ai_loading=services.advice_controller.is_generating,
    )


@router.get("/trends", response_model=list[DailyNutrients], tags=["history"])
async def get_trends(request: Request, days: int = 7):
    return get_services(request).storage.get_weekly_trends(days)


@router.get("/days", response_model=list[DayMeals], tags=["history"])
async def get_days(request: Request, limit: int = Query(10, ge=1, le=100), offset: int = Query(0, ge=0)):
    """Meal history, newest day first."""
    return get_services(request).storage.get_days_with_meals(limit, offset)


@router.get("/days/{day_id}/status", response_model=DayStatus, tags=["history"])
async def get_day_status(request: Request, day_id: str):
    return get_services(request).storage.get_day_status(day_id)


@router.post("/water", tags=["tracking"])
async def add_water(request: Request, body: WaterRequest):
    total = get_services(request).storage.add_water(body.liters)
    return {"water_intake_liters": total}


@router.post("/weight", tags=["tracking"])
async def update_weight(request: Request, body: WeightRequest):
    get_services(request).storage.update_weight(body.weight)
    return {"current_weight": body.weight}


@router.put("/profile", response_model=UserProfile, tags=["profile"])
async def update_profile(request: Request, profile: UserProfile):
    return get_services(request).storage.update_user_profile(profile)


@router.get("/profile", response_model=UserProfile, tags=["profile"])
async def get_profile(request: Request):
    return get_services(request).storage.get_profile()


@router.post("/profile/goal-plan", response_model=DailyGoalPlan, tags=["profile"])
async def generate_goal_plan(request: Request):
    """
    Generate the daily target plan for the stored profile.

    The plan is saved as the profile's detail goal, so the key metrics
    and coaching advice follow it from the next snapshot on.
    """
    services = get_services(request)
    profile = services.storage.get_profile()

    result = await services.goal_planner.execute(
        GoalPlanRequest(profile=profile, api_key=services.preferences.get_api_key() or "")
    )
    if not result.success:
        raise_for_failure(result)

    plan: DailyGoalPlan = result.output
    services.storage.update_user_profile(profile.model_copy(update={"detail_goal": plan.model_dump_json()}))
    return plan


@router.put("/settings/api-key", tags=["settings"])
async def set_api_key(request: Request, body: ApiKeyRequest):
    services = get_services(request)
    services.preferences.set_api_key(body.api_key)
    return {"configured": services.preferences.get_api_key() is not None}


# === FastAPI Application ===
def create_app(
    inference_client: Optional[InferenceClient] = None,
    clock: Optional[Clock] = None,
    preferences: Optional[PreferencesStore] = None,
) -> FastAPI:
    app = FastAPI(
        title="MealStamp",
        description="Two-phase AI meal analysis with staleness-gated coaching advice",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = build_services(inference_client, clock, preferences)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


# === Run with Uvicorn ===
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mealstamp.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
