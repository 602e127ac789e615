"""
Domain: Funding-compliance record for third-party-funded engagements.

Mirrors the external funding body's lifecycle for one training engagement:

  RECEIVED -> PENDING -> ACCEPTED -> ENTRY_DECLARED -> EXIT_DECLARED
           -> SERVICE_DECLARED -> SERVICE_VALIDATED -> INVOICED

Contract excerpts implemented here:
- The stage index is monotonically non-decreasing; the only legal move is to
  exactly the next stage (no skipping, no re-entry, no reversal).
- Reaching a stage stamps its milestone timestamp exactly once. A stamped
  milestone is never overwritten.
- The record is billable iff its stage is SERVICE_VALIDATED or INVOICED.

This module is pure. Write-time compare-and-swap on current_stage is the
repository's job; this type only models the transition.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional
from uuid import UUID

from .errors import IllegalTransitionError
from .time import require_utc_timestamp


class FundingStage(str, Enum):
    RECEIVED = "RECEIVED"
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    ENTRY_DECLARED = "ENTRY_DECLARED"
    EXIT_DECLARED = "EXIT_DECLARED"
    SERVICE_DECLARED = "SERVICE_DECLARED"
    SERVICE_VALIDATED = "SERVICE_VALIDATED"
    INVOICED = "INVOICED"

    @property
    def index(self) -> int:
        return _STAGE_ORDER.index(self)

    def next(self) -> Optional["FundingStage"]:
        """The only stage reachable from this one (None for the final stage)."""
        position = self.index + 1
        return _STAGE_ORDER[position] if position < len(_STAGE_ORDER) else None


_STAGE_ORDER = tuple(FundingStage)

BILLABLE_STAGES = frozenset({FundingStage.SERVICE_VALIDATED, FundingStage.INVOICED})


@dataclass(frozen=True, slots=True)
class FundingComplianceRecord:
    """
    Milestone ledger for one third-party-funded engagement.

    milestones holds one UTC timestamp per stage ever reached; it always contains
    every stage up to and including current_stage.
    """

    record_id: UUID
    lead_id: UUID
    current_stage: FundingStage
    milestones: Mapping[FundingStage, datetime]
    external_file_id: Optional[str] = None
    invoiced: bool = False
    version: int = 0

    def __post_init__(self) -> None:
        for stage, stamped_at in self.milestones.items():
            require_utc_timestamp(f"milestones[{stage.value}]", stamped_at)

        reached = set(_STAGE_ORDER[: self.current_stage.index + 1])
        if set(self.milestones) != reached:
            raise ValueError("milestones must contain exactly the stages up to current_stage")
        if self.invoiced != (self.current_stage == FundingStage.INVOICED):
            raise ValueError("invoiced must be set iff current_stage is INVOICED")

    @staticmethod
    def open(
        *,
        record_id: UUID,
        lead_id: UUID,
        received_at: datetime,
        external_file_id: Optional[str] = None,
    ) -> "FundingComplianceRecord":
        """Create a record at RECEIVED, stamping its first milestone."""

        require_utc_timestamp("received_at", received_at)
        return FundingComplianceRecord(
            record_id=record_id,
            lead_id=lead_id,
            current_stage=FundingStage.RECEIVED,
            milestones={FundingStage.RECEIVED: received_at},
            external_file_id=external_file_id,
        )

    @property
    def is_billable(self) -> bool:
        return self.current_stage in BILLABLE_STAGES

    def milestone(self, stage: FundingStage) -> Optional[datetime]:
        return self.milestones.get(stage)

    def advance(self, target: FundingStage, at: datetime) -> "FundingComplianceRecord":
        """
        Return a new record at `target`.

        Raises IllegalTransitionError unless target is exactly the next stage.
        """

        require_utc_timestamp("at", at)

        expected = self.current_stage.next()
        if target != expected:
            if target.index <= self.current_stage.index:
                raise IllegalTransitionError(
                    f"Stage {target.value} already reached (current stage is {self.current_stage.value})",
                    current=self,
                )
            raise IllegalTransitionError(
                f"Cannot advance from {self.current_stage.value} to {target.value}; "
                f"next stage must be {expected.value if expected else 'none (final stage)'}",
                current=self,
            )

        milestones: Dict[FundingStage, datetime] = dict(self.milestones)
        milestones[target] = at
        return replace(
            self,
            current_stage=target,
            milestones=milestones,
            invoiced=target == FundingStage.INVOICED,
        )

    def to_summary(self) -> Dict[str, object]:
        return {
            "record_id": str(self.record_id),
            "lead_id": str(self.lead_id),
            "current_stage": self.current_stage.value,
            "invoiced": self.invoiced,
            "version": self.version,
        }


__all__ = [
    "FundingStage",
    "BILLABLE_STAGES",
    "FundingComplianceRecord",
]
