"""
Shared API dependencies.

The orchestrator is built once per process from PipelineSettings; tests
override `get_orchestrator` through FastAPI's dependency_overrides.
"""

from functools import lru_cache

from services.pipeline_service import PipelineOrchestrator, build_orchestrator
from services.settings import PipelineSettings


@lru_cache(maxsize=1)
def get_settings() -> PipelineSettings:
    return PipelineSettings.from_env()


@lru_cache(maxsize=1)
def get_orchestrator() -> PipelineOrchestrator:
    return build_orchestrator(get_settings())
