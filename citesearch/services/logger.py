"""Centralized logging service for debugging and monitoring."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from citesearch.config import Settings

NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "sse_starlette.sse",
    "httpx",
    "httpcore",
    "openai._base_client",
    "asyncio",
)

logger = logging.getLogger("citesearch")

_configured = False


def configure_logging(settings: Settings) -> None:
    """Install console and file handlers once per process."""
    global _configured
    if _configured:
        return

    app_level = getattr(logging, settings.app_log_level.upper(), logging.INFO)
    noisy_level = getattr(logging, settings.noisy_log_level.upper(), logging.WARNING)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_dir:
        log_dir = Path(settings.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "citesearch.log"))

    logging.basicConfig(
        level=app_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Reduce noise from framework/network libraries unless explicitly overridden.
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(noisy_level)

    _configured = True


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_llm_call(
    provider: str,
    model: str,
    caller: str,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log an LLM API call."""
    call_data = {
        "timestamp": _now(),
        "provider": provider,
        "model": model,
        "caller": caller,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(level, f"LLM_CALL: {json.dumps(call_data)}")


def log_search_call(
    provider: str,
    query: str,
    result_count: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log a search provider call."""
    call_data = {
        "timestamp": _now(),
        "provider": provider,
        "query": query[:100],
        "result_count": result_count,
        "duration_ms": duration_ms,
        "status": status,
        "error": error,
    }
    level = logging.INFO if status == "success" else logging.WARNING
    logger.log(level, f"SEARCH_CALL: {json.dumps(call_data)}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": _now(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {json.dumps(event_data, default=str)}")
