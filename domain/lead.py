"""
Domain: Lead aggregate.

Contract excerpts implemented here:
- A Lead is a prospective customer captured before any commercial commitment,
  uniquely identified by lead_id (UUID) within an organization.
- status and financing must always be consistent with the transition tables;
  a Lead is never mutated in place. Transitions return a new instance.
- history is an append-only, insertion-ordered audit log. Entries are never
  mutated or removed.
- Leads are never deleted; they move to a terminal status instead.
- Behavioral signals are recorded as SIGNAL history entries, so the signal
  history used for scoring is derived from the audit log.

All timestamps must be timezone-aware UTC and passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from .financing import Financing, SelfFundedFinancing, ThirdPartyFinancing
from .scoring import SCORE_MAX, SCORE_MIN, Signal, SignalType
from .time import require_utc_timestamp


class LeadStatus(str, Enum):
    PROSPECT = "PROSPECT"  # Newly injected
    PROSPECTION = "PROSPECTION"  # In the calling loop
    CONTACTED = "CONTACTED"  # Spoken to, decision pending
    QUALIFIED = "QUALIFIED"  # Meeting honored, qualification decision pending
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    FINANCING = "FINANCING"
    SIGNED = "SIGNED"
    DISQUALIFIED = "DISQUALIFIED"
    NO_ANSWER = "NO_ANSWER"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({LeadStatus.SIGNED, LeadStatus.DISQUALIFIED, LeadStatus.NO_ANSWER})

# Statuses in which a financing decision may be attached.
FINANCING_STATUSES = frozenset(
    {LeadStatus.FINANCING, LeadStatus.SIGNED, LeadStatus.DISQUALIFIED, LeadStatus.NO_ANSWER}
)


class SalesStage(str, Enum):
    NEW = "NEW"
    AWAITING_MEETING = "AWAITING_MEETING"
    MEETING_MISSED = "MEETING_MISSED"
    QUALIFICATION_DECISION = "QUALIFICATION_DECISION"
    FINANCING_PENDING = "FINANCING_PENDING"

    # Self-funded
    OFFER_PENDING = "OFFER_PENDING"
    PAYMENT = "PAYMENT"

    # Third-party funded
    ACCOUNT_CHECK = "ACCOUNT_CHECK"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    PLACEMENT_TEST = "PLACEMENT_TEST"
    REMEDIATION = "REMEDIATION"
    FUNDING_FILE_REVIEW = "FUNDING_FILE_REVIEW"

    # End
    ENROLLED = "ENROLLED"
    LOST_NOT_INTERESTED = "LOST_NOT_INTERESTED"
    LOST_UNREACHABLE = "LOST_UNREACHABLE"


class HistoryEntryType(str, Enum):
    STATUS_CHANGE = "STATUS_CHANGE"
    CALL_LOG = "CALL_LOG"
    FOLLOW_UP = "FOLLOW_UP"
    ABSENCE = "ABSENCE"
    PAYMENT = "PAYMENT"
    SIGNAL = "SIGNAL"
    NOTE = "NOTE"


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """Immutable activity-log entry."""

    entry_type: HistoryEntryType
    timestamp: datetime
    actor: str
    action: str
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain aggregate for a Lead.

    version is the compare-and-swap token owned by the persistence layer;
    domain transitions never change it.
    """

    lead_id: UUID
    organization_id: UUID
    status: LeadStatus
    created_at: datetime
    updated_at: datetime
    sales_stage: Optional[SalesStage] = None
    score: int = 0
    call_attempts: int = 0
    follow_up_count: int = 0
    financing: Optional[Financing] = None
    history: Tuple[HistoryEntry, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    source: Optional[str] = None
    last_response_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_utc_timestamp("updated_at", self.updated_at)
        if self.last_response_at is not None:
            require_utc_timestamp("last_response_at", self.last_response_at)

        if not SCORE_MIN <= self.score <= SCORE_MAX:
            raise ValueError("score must be within [0, 100]")
        if self.call_attempts < 0:
            raise ValueError("call_attempts must be >= 0")
        if self.follow_up_count < 0:
            raise ValueError("follow_up_count must be >= 0")
        if self.version < 0:
            raise ValueError("version must be >= 0")

        if self.financing is not None and self.status not in FINANCING_STATUSES:
            raise ValueError(f"financing cannot be attached to a {self.status.value} lead")
        if self.status == LeadStatus.SIGNED and (self.financing is None or not self.financing.is_complete):
            raise ValueError("a SIGNED lead requires a completed financing")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_self_funded(self) -> bool:
        return isinstance(self.financing, SelfFundedFinancing)

    @property
    def is_third_party_funded(self) -> bool:
        return isinstance(self.financing, ThirdPartyFinancing)

    def signals(self) -> List[Signal]:
        """Signal history derived from SIGNAL entries, in insertion order."""

        return [
            Signal(signal_type=SignalType(entry.details["signal_type"]), occurred_at=entry.timestamp)
            for entry in self.history
            if entry.entry_type == HistoryEntryType.SIGNAL
        ]

    def append_history(self, entry: HistoryEntry) -> "Lead":
        """Return a new Lead with `entry` appended; updated_at never moves backwards."""

        return replace(
            self,
            history=self.history + (entry,),
            updated_at=max(self.updated_at, entry.timestamp),
        )

    def transition(
        self,
        *,
        at: datetime,
        actor: str,
        action: str,
        status: Optional[LeadStatus] = None,
        sales_stage: Optional[SalesStage] = None,
        entry_type: HistoryEntryType = HistoryEntryType.STATUS_CHANGE,
        details: Optional[Mapping[str, Any]] = None,
        **changes: Any,
    ) -> "Lead":
        """
        Apply a state change and append its audit entry in one step.

        The entry records the previous and next status/stage alongside `details`.
        """

        next_status = status if status is not None else self.status
        next_stage = sales_stage if sales_stage is not None else self.sales_stage

        entry_details: Dict[str, Any] = {
            "from_status": self.status.value,
            "to_status": next_status.value,
            "from_stage": self.sales_stage.value if self.sales_stage else None,
            "to_stage": next_stage.value if next_stage else None,
        }
        if details:
            entry_details.update(details)

        updated = replace(self, status=next_status, sales_stage=next_stage, **changes)
        return updated.append_history(
            HistoryEntry(
                entry_type=entry_type,
                timestamp=at,
                actor=actor,
                action=action,
                details=entry_details,
            )
        )

    def to_summary(self) -> Dict[str, Any]:
        """Compact, JSON-friendly view used in structured failures."""

        return {
            "lead_id": str(self.lead_id),
            "status": self.status.value,
            "sales_stage": self.sales_stage.value if self.sales_stage else None,
            "score": self.score,
            "call_attempts": self.call_attempts,
            "follow_up_count": self.follow_up_count,
            "financing_type": self.financing.financing_type.value if self.financing else None,
            "version": self.version,
        }


__all__ = [
    "LeadStatus",
    "TERMINAL_STATUSES",
    "FINANCING_STATUSES",
    "SalesStage",
    "HistoryEntryType",
    "HistoryEntry",
    "Lead",
]
