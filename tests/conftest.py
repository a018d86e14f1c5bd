from __future__ import annotations

import pytest

from citesearch.config import Settings
from fakes import build_settings


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first event loop."""
    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None
