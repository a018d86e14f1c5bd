from __future__ import annotations

from functools import partial
from typing import Callable

from fastapi import Depends

from citesearch.config import Settings, get_settings
from citesearch.services.orchestrator import AnswerOrchestrator

OrchestratorFactory = Callable[[], AnswerOrchestrator]


def get_orchestrator_factory(
    settings: Settings = Depends(get_settings),
) -> OrchestratorFactory:
    """Defer client construction until the request body has been validated.

    Building the orchestrator checks provider keys, so a missing key is
    reported as a setup error only for otherwise valid requests.
    """
    return partial(AnswerOrchestrator.from_settings, settings)
