"""
Notification collaborator interface.

After a transition has committed, the orchestrator informs the notifier of
(lead_id, from_status, to_status, occurred_at). The notifier alone decides
whether an email/SMS goes out; the core never calls a channel directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol
from uuid import UUID

from domain.lead import LeadStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransitionEvent:
    lead_id: UUID
    from_status: LeadStatus
    to_status: LeadStatus
    occurred_at: datetime
    action: str


class TransitionNotifier(Protocol):
    def notify(self, event: TransitionEvent) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the event in the application log."""

    def notify(self, event: TransitionEvent) -> None:
        logger.info(
            "Lead %s: %s -> %s (%s)",
            event.lead_id,
            event.from_status.value,
            event.to_status.value,
            event.action,
        )


class RecordingNotifier:
    """Keeps every event in memory; handy for wiring checks and tests."""

    def __init__(self) -> None:
        self.events: List[TransitionEvent] = []

    def notify(self, event: TransitionEvent) -> None:
        self.events.append(event)


__all__ = [
    "TransitionEvent",
    "TransitionNotifier",
    "LoggingNotifier",
    "RecordingNotifier",
]
