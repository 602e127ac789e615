"""
Funding-body sync.

Applies stage reports polled from the external funding body's portal. Each
report goes through `advance_stage` like any other caller, so the
monotonic-stage rule applies: a report that arrives out of order is rejected
and counted, never silently reconciled. A report for the stage a record is
already at is counted as unchanged.

Handles:
- Portal status codes (A_TRAITER, ACCEPTE, ENTREE_DECLAREE, ...) and plain stage names
- Records addressed by record id or by the funding body's dossier number
- Per-report error isolation: one bad report never stops the batch
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional
from uuid import UUID

from domain.errors import ConcurrencyConflictError, InvalidStateError, NotFoundError
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from services.pipeline_service import PipelineOrchestrator

logger = logging.getLogger(__name__)

SYNC_ACTOR: str = "funding-body-sync"

# Portal status codes -> compliance stages.
PORTAL_STATUS_TO_STAGE: Mapping[str, FundingStage] = {
    "A_TRAITER": FundingStage.PENDING,
    "EN_ATTENTE": FundingStage.PENDING,
    "ACCEPTE": FundingStage.ACCEPTED,
    "ENTREE_DECLAREE": FundingStage.ENTRY_DECLARED,
    "SORTIE_DECLAREE": FundingStage.EXIT_DECLARED,
    "SERVICE_FAIT_DECLARE": FundingStage.SERVICE_DECLARED,
    "SERVICE_FAIT_VALIDE": FundingStage.SERVICE_VALIDATED,
    "FACTURE": FundingStage.INVOICED,
}


@dataclass(frozen=True, slots=True)
class FundingStageReport:
    """
    One status line reported by the funding body.

    Either record_id or external_file_id must identify the record.
    """

    status: str
    record_id: Optional[UUID] = None
    external_file_id: Optional[str] = None


@dataclass(slots=True)
class SyncSummary:
    advanced: int = 0
    unchanged: int = 0
    rejected: int = 0
    errors: int = 0
    messages: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.advanced + self.unchanged + self.rejected + self.errors


def resolve_stage(status: str) -> FundingStage:
    """Map a portal status code or stage name to a FundingStage (ValueError if unknown)."""

    key = status.strip().upper()
    if key in PORTAL_STATUS_TO_STAGE:
        return PORTAL_STATUS_TO_STAGE[key]
    try:
        return FundingStage(key)
    except ValueError:
        raise ValueError(f"Unknown funding status: {status!r}") from None


def _find_record(orchestrator: PipelineOrchestrator, report: FundingStageReport) -> FundingComplianceRecord:
    if report.record_id is not None:
        return orchestrator.get_compliance_record(report.record_id)
    if report.external_file_id:
        record = orchestrator.find_compliance_record(report.external_file_id)
        if record is None:
            raise NotFoundError(f"No funding compliance record for dossier {report.external_file_id}")
        return record
    raise NotFoundError("Report identifies no record (record_id or external_file_id required)")


def sync_funding_reports(
    orchestrator: PipelineOrchestrator, reports: Iterable[FundingStageReport]
) -> SyncSummary:
    """
    Apply a batch of funding-body reports.

    Returns a SyncSummary; individual failures are counted and logged, not raised.
    """

    summary = SyncSummary()

    for report in reports:
        label = str(report.record_id or report.external_file_id)
        try:
            target = resolve_stage(report.status)
            record = _find_record(orchestrator, report)

            if record.current_stage == target:
                summary.unchanged += 1
                continue

            orchestrator.advance_stage(record.record_id, target, actor=SYNC_ACTOR)
            summary.advanced += 1

        except InvalidStateError as exc:
            # Out-of-order report (skipped stage or regression)
            logger.warning("Rejected funding report for %s: %s", label, exc.reason)
            summary.rejected += 1
            summary.messages.append(f"{label}: {exc.reason}")

        except (NotFoundError, ConcurrencyConflictError) as exc:
            logger.error("Failed to apply funding report for %s: %s", label, exc.reason)
            summary.errors += 1
            summary.messages.append(f"{label}: {exc.reason}")

        except ValueError as exc:
            logger.error("Invalid funding report for %s: %s", label, exc)
            summary.errors += 1
            summary.messages.append(f"{label}: {exc}")

    logger.info(
        "Funding sync done: %d advanced, %d unchanged, %d rejected, %d errors",
        summary.advanced,
        summary.unchanged,
        summary.rejected,
        summary.errors,
    )
    return summary


__all__ = [
    "SYNC_ACTOR",
    "PORTAL_STATUS_TO_STAGE",
    "FundingStageReport",
    "SyncSummary",
    "resolve_stage",
    "sync_funding_reports",
]
