"""API routes for the admin display settings form and the kiosk read model."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, File, HTTPException, Request, UploadFile

from ..schemas.display_settings import DisplaySettingsState, KioskDisplaySettings
from ..services.background_images import (
    BackgroundImageError,
    BackgroundImageTooLarge,
    UnsupportedImageType,
)
from ..services.display_settings import (
    DisplaySettingsService,
    InvalidDisplaySettings,
    SubmissionBlocked,
)
from ..services.settings_store import SettingsStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/display-settings", tags=["display-settings"])
kiosk_router = APIRouter(prefix="/api/display-settings", tags=["display-settings"])


def get_display_settings_service(request: Request) -> DisplaySettingsService:
    service = getattr(request.app.state, "display_settings_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Display settings service unavailable")
    return service


@router.get("", response_model=DisplaySettingsState, response_model_by_alias=True)
async def load_display_settings(
    service: DisplaySettingsService = Depends(get_display_settings_service),
) -> DisplaySettingsState:
    """Load the persisted settings into the form (runs when the screen mounts)."""
    return await service.load()


@router.get("/state", response_model=DisplaySettingsState, response_model_by_alias=True)
async def read_form_state(
    service: DisplaySettingsService = Depends(get_display_settings_service),
) -> DisplaySettingsState:
    return service.snapshot()


@router.post(
    "/background-image",
    response_model=DisplaySettingsState,
    response_model_by_alias=True,
)
async def upload_background_image(
    service: DisplaySettingsService = Depends(get_display_settings_service),
    file: UploadFile | None = File(default=None),
) -> DisplaySettingsState:
    try:
        return await service.upload_background(file)
    except UnsupportedImageType as exc:
        raise HTTPException(status_code=415, detail=f"Unsupported image type: {exc}") from exc
    except BackgroundImageTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except BackgroundImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionBlocked as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.put("", response_model=DisplaySettingsState, response_model_by_alias=True)
async def save_display_settings(
    payload: dict[str, Any] = Body(...),
    service: DisplaySettingsService = Depends(get_display_settings_service),
) -> DisplaySettingsState:
    try:
        return await service.submit(payload)
    except InvalidDisplaySettings as exc:
        raise HTTPException(
            status_code=422,
            detail={"errors": [error.model_dump() for error in exc.errors]},
        ) from exc
    except SubmissionBlocked as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@kiosk_router.get("", response_model=KioskDisplaySettings, response_model_by_alias=True)
async def read_display_settings(
    service: DisplaySettingsService = Depends(get_display_settings_service),
) -> KioskDisplaySettings:
    """Serve the saved background and screensaver settings to display clients."""
    try:
        return await service.current_settings()
    except SettingsStoreError as exc:
        logger.error(f"Failed to read display settings: {exc}")
        raise HTTPException(status_code=502, detail="Display settings unavailable") from exc


__all__ = ["router", "kiosk_router", "get_display_settings_service"]
