import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from core.config import AnalysisPreferences, AnalysisWindow, AppConfig, Settings, get_settings
from core.logging import get_logger
from core.models import Event
from core.time_utils import get_timezone
from services.analysis import ScheduleAnalyzer, parse_events, sanitize_events
from services.logistics import travel_legs
from services.travel import (
    ChainedTravelEstimator,
    DistanceMatrixClient,
    TravelTimeEstimator,
    build_offline_estimator,
)

logger = get_logger(__name__)

router = APIRouter()


class AnalysisRequest(BaseModel):
    events: list[dict[str, Any]] = Field(default_factory=list)
    history: Optional[list[dict[str, Any]]] = None
    preferences: dict[str, Any] = Field(default_factory=dict)
    window: Optional[AnalysisWindow] = None


def resolve_preferences(app_config: AppConfig, overrides: dict[str, Any]) -> AnalysisPreferences:
    """Layer request overrides on top of the configured defaults."""
    merged = app_config.preferences.model_dump()
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    try:
        return AnalysisPreferences.model_validate(merged)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=json.loads(exc.json())) from exc


async def build_travel_estimator(
    events: list[Event], settings: Settings, app_config: AppConfig
) -> TravelTimeEstimator:
    offline = build_offline_estimator(app_config.travel)
    if not settings.maps_api_key:
        return offline

    client = DistanceMatrixClient(settings.maps_api_key, timeout=app_config.travel.request_timeout_seconds)
    resolved = await client.resolve_legs(travel_legs(events))
    return ChainedTravelEstimator([resolved, offline])


@router.get("/preferences")
async def get_preferences(settings: Settings = Depends(get_settings)) -> dict:
    """Expose the configured default preferences."""
    app_config = settings.load_app_config()
    return {"status": "ok", "preferences": app_config.preferences.model_dump(mode="json")}


@router.post("/analysis")
async def analyze_schedule(
    payload: AnalysisRequest,
    settings: Settings = Depends(get_settings),
) -> dict:
    """Run the full schedule analysis over the submitted events."""
    app_config = settings.load_app_config()
    preferences = resolve_preferences(app_config, payload.preferences)

    events, skipped = parse_events(payload.events)
    history = None
    if payload.history is not None:
        history, skipped_history = parse_events(payload.history)
        if skipped_history:
            logger.warning("Ignoring %d invalid history events", len(skipped_history))

    estimator = None
    if preferences.travel_time_enabled:
        legs_events, _ = sanitize_events(events, get_timezone(preferences.timezone))
        estimator = await build_travel_estimator(legs_events, settings, app_config)

    analyzer = ScheduleAnalyzer(preferences, travel_estimator=estimator, travel_config=app_config.travel)
    result = await analyzer.analyze_async(events, history=history, window=payload.window, skipped=skipped)
    return {"status": "ok", "result": result.model_dump(mode="json")}
