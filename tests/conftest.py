"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from repositories.memory import InMemoryComplianceRecordRepository, InMemoryLeadRepository  # noqa: E402
from services.notification_service import RecordingNotifier  # noqa: E402
from services.pipeline_service import PipelineOrchestrator  # noqa: E402

T0 = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
ORG_ID = UUID("00000000-0000-0000-0000-0000000000aa")


class FakeClock:
    """Deterministic UTC clock; advance() moves it forward."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def orchestrator(clock: FakeClock, notifier: RecordingNotifier) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        InMemoryLeadRepository(),
        InMemoryComplianceRecordRepository(),
        notifier=notifier,
        clock=clock,
    )
