from __future__ import annotations

from fastapi import APIRouter, Depends

from citesearch.config import Settings, get_settings
from citesearch.models.schemas import ConfigResponse, HealthResponse

router = APIRouter(prefix="/api", tags=["meta"])


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", service="citesearch")


@router.get("/config", response_model=ConfigResponse)
async def public_config(settings: Settings = Depends(get_settings)):
    """Active providers and prompt settings; never includes API keys."""
    return ConfigResponse(**settings.public_view())
