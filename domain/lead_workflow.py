"""
Domain: Lead state machine (pure transitions).

Main path:
  PROSPECT -> PROSPECTION -> CONTACTED -> MEETING_SCHEDULED
           -> QUALIFIED (decision pending) -> FINANCING -> SIGNED

Side exits to DISQUALIFIED and NO_ANSWER are reachable from every
non-terminal status. DISQUALIFIED and NO_ANSWER can only be left through
reopen(), which resets the attempt counters.

Every function here validates against the given snapshot and either raises a
PipelineError or returns a new Lead with one audit entry appended. None of
them perform I/O or read the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import UUID

from .errors import InvalidStateError, ValidationError
from .lead import HistoryEntry, HistoryEntryType, Lead, LeadStatus, SalesStage
from .scoring import SignalType
from .time import is_utc_timestamp


class CallOutcome(str, Enum):
    APPOINTMENT_SET = "APPOINTMENT_SET"
    CALLBACK_SCHEDULED = "CALLBACK_SCHEDULED"
    NO_ANSWER = "NO_ANSWER"
    REFUSAL = "REFUSAL"
    WRONG_NUMBER = "WRONG_NUMBER"


class QualificationDecision(str, Enum):
    PROCEED = "PROCEED"
    POSTPONE = "POSTPONE"
    ABANDON = "ABANDON"


@dataclass(frozen=True, slots=True)
class WorkflowPolicy:
    """Thresholds that drive automatic transitions."""

    max_follow_ups: int = 3
    max_call_attempts: int = 5
    placement_test_min_score: int = 50

    def __post_init__(self) -> None:
        if self.max_follow_ups < 1:
            raise ValueError("max_follow_ups must be >= 1")
        if self.max_call_attempts < 1:
            raise ValueError("max_call_attempts must be >= 1")
        if not 0 <= self.placement_test_min_score <= 100:
            raise ValueError("placement_test_min_score must be within [0, 100]")


# Statuses from which a call outcome may be logged (the calling loop).
_CALLABLE_STATUSES = frozenset(
    {LeadStatus.PROSPECT, LeadStatus.PROSPECTION, LeadStatus.CONTACTED, LeadStatus.MEETING_SCHEDULED}
)

_REOPENABLE_STATUSES = frozenset({LeadStatus.DISQUALIFIED, LeadStatus.NO_ANSWER})


def _require_not_terminal(lead: Lead, operation: str) -> None:
    if lead.is_terminal:
        raise InvalidStateError(
            f"Cannot {operation}: lead {lead.lead_id} is in terminal status {lead.status.value}",
            current=lead,
        )


def new_lead(
    *,
    lead_id: UUID,
    organization_id: UUID,
    at: datetime,
    actor: str,
    source: Optional[str] = None,
    metadata: Optional[Mapping[str, Any]] = None,
    responded_at: Optional[datetime] = None,
) -> Lead:
    """Create a PROSPECT lead with its creation entry."""

    if responded_at is not None and not is_utc_timestamp(responded_at):
        raise ValidationError("responded_at must be a UTC timestamp")
    lead = Lead(
        lead_id=lead_id,
        organization_id=organization_id,
        status=LeadStatus.PROSPECT,
        sales_stage=SalesStage.NEW,
        created_at=at,
        updated_at=at,
        metadata=dict(metadata or {}),
        source=source,
        last_response_at=responded_at,
    )
    return lead.append_history(
        HistoryEntry(
            entry_type=HistoryEntryType.STATUS_CHANGE,
            timestamp=at,
            actor=actor,
            action="LEAD_CREATED",
            details={"to_status": LeadStatus.PROSPECT.value, "source": source},
        )
    )


def start_prospection(lead: Lead, *, at: datetime, actor: str) -> Lead:
    if lead.status != LeadStatus.PROSPECT:
        raise InvalidStateError(
            f"Prospection can only start from PROSPECT (current: {lead.status.value})", current=lead
        )
    return lead.transition(at=at, actor=actor, action="PROSPECTION_STARTED", status=LeadStatus.PROSPECTION)


def record_call_outcome(
    lead: Lead, outcome: CallOutcome, *, at: datetime, actor: str, policy: WorkflowPolicy
) -> Lead:
    """
    Apply the outcome of an outbound call.

    A NO_ANSWER outcome increments call_attempts; reaching max_call_attempts
    moves the lead to NO_ANSWER. Any answered call refreshes last_response_at.
    """

    _require_not_terminal(lead, "log a call")
    if lead.status not in _CALLABLE_STATUSES:
        raise InvalidStateError(
            f"Call outcomes cannot be logged while lead is {lead.status.value}", current=lead
        )

    details = {"outcome": outcome.value}

    if outcome == CallOutcome.NO_ANSWER:
        attempts = lead.call_attempts + 1
        details["call_attempts"] = attempts
        if attempts >= policy.max_call_attempts:
            return lead.transition(
                at=at,
                actor=actor,
                action="CALL_ATTEMPTS_EXHAUSTED",
                status=LeadStatus.NO_ANSWER,
                sales_stage=SalesStage.LOST_UNREACHABLE,
                entry_type=HistoryEntryType.CALL_LOG,
                details=details,
                call_attempts=attempts,
            )
        next_status = LeadStatus.PROSPECTION if lead.status == LeadStatus.PROSPECT else lead.status
        return lead.transition(
            at=at,
            actor=actor,
            action="CALL_NO_ANSWER",
            status=next_status,
            entry_type=HistoryEntryType.CALL_LOG,
            details=details,
            call_attempts=attempts,
        )

    if outcome == CallOutcome.CALLBACK_SCHEDULED:
        return lead.transition(
            at=at,
            actor=actor,
            action="CALLBACK_SCHEDULED",
            status=LeadStatus.CONTACTED,
            entry_type=HistoryEntryType.CALL_LOG,
            details=details,
            last_response_at=at,
        )

    if outcome == CallOutcome.APPOINTMENT_SET:
        return lead.transition(
            at=at,
            actor=actor,
            action="MEETING_SCHEDULED",
            status=LeadStatus.MEETING_SCHEDULED,
            sales_stage=SalesStage.AWAITING_MEETING,
            entry_type=HistoryEntryType.CALL_LOG,
            details=details,
            last_response_at=at,
        )

    # REFUSAL / WRONG_NUMBER
    return lead.transition(
        at=at,
        actor=actor,
        action=f"CALL_{outcome.value}",
        status=LeadStatus.DISQUALIFIED,
        sales_stage=SalesStage.LOST_NOT_INTERESTED,
        entry_type=HistoryEntryType.CALL_LOG,
        details=details,
        last_response_at=at if outcome == CallOutcome.REFUSAL else lead.last_response_at,
    )


def qualify_meeting(
    lead: Lead, honored: bool, absence_reason: Optional[str], *, at: datetime, actor: str
) -> Lead:
    """
    Record whether the qualification meeting took place.

    Not honored: an absence record is appended, the attempt counter increments
    and the lead returns to a callable state (CONTACTED / MEETING_MISSED).
    Honored: the lead waits for the qualification decision.
    """

    if lead.status != LeadStatus.MEETING_SCHEDULED or lead.sales_stage != SalesStage.AWAITING_MEETING:
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not awaiting a meeting outcome "
            f"(status: {lead.status.value}, stage: {lead.sales_stage.value if lead.sales_stage else None})",
            current=lead,
        )

    if not honored:
        reason = (absence_reason or "").strip()
        if not reason:
            raise ValidationError("An absence reason is required when the meeting was not honored", current=lead)
        return lead.transition(
            at=at,
            actor=actor,
            action="MEETING_NOT_HONORED",
            status=LeadStatus.CONTACTED,
            sales_stage=SalesStage.MEETING_MISSED,
            entry_type=HistoryEntryType.ABSENCE,
            details={"reason": reason, "call_attempts": lead.call_attempts + 1},
            call_attempts=lead.call_attempts + 1,
        )

    return lead.transition(
        at=at,
        actor=actor,
        action="MEETING_HONORED",
        status=LeadStatus.QUALIFIED,
        sales_stage=SalesStage.QUALIFICATION_DECISION,
        last_response_at=at,
    )


def decide_qualification(
    lead: Lead, decision: QualificationDecision, *, at: datetime, actor: str
) -> Lead:
    if lead.sales_stage != SalesStage.QUALIFICATION_DECISION or lead.status != LeadStatus.QUALIFIED:
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not awaiting a qualification decision", current=lead
        )

    if decision == QualificationDecision.PROCEED:
        return lead.transition(
            at=at,
            actor=actor,
            action="DECISION_PROCEED",
            status=LeadStatus.FINANCING,
            sales_stage=SalesStage.FINANCING_PENDING,
        )
    if decision == QualificationDecision.POSTPONE:
        # Re-scheduled meeting; counters untouched.
        return lead.transition(
            at=at,
            actor=actor,
            action="DECISION_POSTPONE",
            status=LeadStatus.MEETING_SCHEDULED,
            sales_stage=SalesStage.AWAITING_MEETING,
        )
    return lead.transition(
        at=at,
        actor=actor,
        action="DECISION_ABANDON",
        status=LeadStatus.DISQUALIFIED,
        sales_stage=SalesStage.LOST_NOT_INTERESTED,
    )


def process_follow_up(lead: Lead, *, at: datetime, actor: str, policy: WorkflowPolicy) -> Lead:
    """
    Advance the follow-up cadence.

    Below the threshold the status is untouched but the attempt is recorded.
    Reaching max_follow_ups moves the lead to NO_ANSWER.
    """

    _require_not_terminal(lead, "follow up")

    count = lead.follow_up_count + 1
    attempts = lead.call_attempts + 1
    details = {"follow_up_count": count, "call_attempts": attempts}

    if count >= policy.max_follow_ups:
        return lead.transition(
            at=at,
            actor=actor,
            action="FOLLOW_UPS_EXHAUSTED",
            status=LeadStatus.NO_ANSWER,
            sales_stage=SalesStage.LOST_UNREACHABLE,
            entry_type=HistoryEntryType.FOLLOW_UP,
            details=details,
            follow_up_count=count,
            call_attempts=attempts,
        )

    return lead.transition(
        at=at,
        actor=actor,
        action="FOLLOW_UP_RECORDED",
        entry_type=HistoryEntryType.FOLLOW_UP,
        details=details,
        follow_up_count=count,
        call_attempts=attempts,
    )


def disqualify(lead: Lead, reason: str, *, at: datetime, actor: str) -> Lead:
    _require_not_terminal(lead, "disqualify")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A disqualification reason is required", current=lead)
    return lead.transition(
        at=at,
        actor=actor,
        action="DISQUALIFIED",
        status=LeadStatus.DISQUALIFIED,
        sales_stage=SalesStage.LOST_NOT_INTERESTED,
        details={"reason": reason},
    )


def reopen(lead: Lead, *, at: datetime, actor: str) -> Lead:
    """
    Bring a DISQUALIFIED or NO_ANSWER lead back into the calling loop.

    Attempt and follow-up counters are reset. Leads that already chose a
    financing cannot be reopened, since the choice is write-once.
    """

    if lead.status not in _REOPENABLE_STATUSES:
        raise InvalidStateError(
            f"Only DISQUALIFIED or NO_ANSWER leads can be reopened (current: {lead.status.value})",
            current=lead,
        )
    if lead.financing is not None:
        raise InvalidStateError(
            "Lead cannot be reopened after a financing was chosen", current=lead
        )
    return lead.transition(
        at=at,
        actor=actor,
        action="LEAD_REOPENED",
        status=LeadStatus.PROSPECTION,
        sales_stage=SalesStage.NEW,
        details={"previous_call_attempts": lead.call_attempts, "previous_follow_ups": lead.follow_up_count},
        call_attempts=0,
        follow_up_count=0,
    )


def record_signal(lead: Lead, signal_type: SignalType, *, at: datetime, actor: str) -> Lead:
    """Append a behavioral signal. Allowed in every status; signals never change state."""

    if not is_utc_timestamp(at):
        raise ValidationError("Signal timestamp must be a UTC timestamp", current=lead)
    return lead.append_history(
        HistoryEntry(
            entry_type=HistoryEntryType.SIGNAL,
            timestamp=at,
            actor=actor,
            action="SIGNAL_RECORDED",
            details={"signal_type": signal_type.value},
        )
    )


__all__ = [
    "CallOutcome",
    "QualificationDecision",
    "WorkflowPolicy",
    "new_lead",
    "start_prospection",
    "record_call_outcome",
    "qualify_meeting",
    "decide_qualification",
    "process_follow_up",
    "disqualify",
    "reopen",
    "record_signal",
]
