"""
Funding-compliance API Endpoints.

Stage changes from manual back-office actions and from the funding-body
sync both go through the orchestrator's `advance_stage`, so the
monotonic-stage rule applies to every caller.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends

from api.dependencies import get_orchestrator
from api.models import (
    AdvanceStageRequest,
    BillableResponse,
    ComplianceRecordResponse,
    ErrorResponse,
    StageReportRequest,
    SyncSummaryResponse,
)
from services.funding_sync_service import FundingStageReport, sync_funding_reports
from services.pipeline_service import PipelineOrchestrator

router = APIRouter(
    prefix="/funding-records",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)


@router.post("/sync", response_model=SyncSummaryResponse, summary="Apply Funding-Body Reports")
def sync_reports(
    reports: List[StageReportRequest], orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """
    Apply a batch of polled funding-body reports.

    Out-of-order reports are counted as rejected; a bad report never fails the batch.
    """
    summary = sync_funding_reports(
        orchestrator,
        [
            FundingStageReport(
                status=report.status,
                record_id=report.record_id,
                external_file_id=report.external_file_id,
            )
            for report in reports
        ],
    )
    return SyncSummaryResponse(
        advanced=summary.advanced,
        unchanged=summary.unchanged,
        rejected=summary.rejected,
        errors=summary.errors,
        messages=summary.messages,
    )


@router.get("/{record_id}", response_model=ComplianceRecordResponse, summary="Get Funding Compliance Record")
def get_record(record_id: UUID, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return ComplianceRecordResponse.from_domain(orchestrator.get_compliance_record(record_id))


@router.post("/{record_id}/advance", response_model=ComplianceRecordResponse, summary="Advance Stage")
def advance_stage(
    record_id: UUID, request: AdvanceStageRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """
    Move the record to exactly its next stage.

    **Example request:**
    ```json
    {"target_stage": "PENDING", "actor": "back-office"}
    ```

    Skipping, repeating or reversing a stage returns 409 `illegal_transition`.
    """
    return ComplianceRecordResponse.from_domain(
        orchestrator.advance_stage(record_id, request.target_stage, actor=request.actor)
    )


@router.get("/{record_id}/billable", response_model=BillableResponse, summary="Billing Eligibility")
def record_billable(record_id: UUID, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return BillableResponse(id=record_id, billable=orchestrator.is_billable(record_id))
