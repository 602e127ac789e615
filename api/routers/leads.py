"""
Leads API Endpoints.

One POST endpoint per business event (call outcome, meeting outcome,
payment capture, ...). Each delegates to the pipeline orchestrator; rejected
operations surface as structured errors through the app's PipelineError handler.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from api.dependencies import get_orchestrator
from api.models import (
    ActorRequest,
    BillableResponse,
    CallOutcomeRequest,
    ChooseFinancingRequest,
    ComplianceRecordResponse,
    DisqualifyRequest,
    ErrorResponse,
    FundingAccountRequest,
    FundingFileRequest,
    FundingFileResponse,
    LeadResponse,
    MeetingOutcomeRequest,
    PaymentRequest,
    PlacementTestRequest,
    QualificationDecisionRequest,
    RegisterLeadRequest,
    ScoreBreakdownResponse,
    SignalRequest,
    ValidateOfferRequest,
)
from services.pipeline_service import PipelineOrchestrator

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}

router = APIRouter(prefix="/leads", responses=_ERRORS)


@router.post(
    "",
    response_model=LeadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Lead",
)
def register_lead(request: RegisterLeadRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Register a new PROSPECT lead and compute its initial score."""
    lead = orchestrator.register_lead(
        request.organization_id,
        source=request.source,
        metadata=request.metadata,
        responded_at=request.responded_at,
    )
    return LeadResponse.from_domain(lead)


@router.get("", response_model=List[LeadResponse], summary="Call Queue")
def list_leads(
    organization_id: UUID = Query(..., description="Organization whose leads to list"),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Every lead of the organization, highest triage score first."""
    return [LeadResponse.from_domain(lead) for lead in orchestrator.list_leads(organization_id)]


@router.get("/{lead_id}", response_model=LeadResponse, summary="Get Lead")
def get_lead(lead_id: UUID, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    return LeadResponse.from_domain(orchestrator.get_lead(lead_id))


@router.get("/{lead_id}/score", response_model=ScoreBreakdownResponse, summary="Explain Score")
def explain_score(lead_id: UUID, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Itemised triage score as of now."""
    return ScoreBreakdownResponse.from_domain(orchestrator.explain_score(lead_id))


@router.get("/{lead_id}/billable", response_model=BillableResponse, summary="Lead Billing Eligibility")
def lead_billable(lead_id: UUID, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """`billable: false` is a hard block for the invoicing collaborator."""
    return BillableResponse(id=lead_id, billable=orchestrator.is_lead_billable(lead_id))


# --- Calling loop ---


@router.post("/{lead_id}/prospection", response_model=LeadResponse, summary="Start Prospection")
def start_prospection(
    lead_id: UUID, request: ActorRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(orchestrator.start_prospection(lead_id, actor=request.actor))


@router.post("/{lead_id}/calls", response_model=LeadResponse, summary="Record Call Outcome")
def record_call_outcome(
    lead_id: UUID, request: CallOutcomeRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.record_call_outcome(lead_id, request.outcome, actor=request.actor)
    )


@router.post("/{lead_id}/signals", response_model=LeadResponse, summary="Record Behavioral Signal")
def record_signal(
    lead_id: UUID, request: SignalRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.record_signal(lead_id, request.signal_type, request.occurred_at, actor=request.actor)
    )


@router.post("/{lead_id}/follow-ups", response_model=LeadResponse, summary="Process Follow-Up")
def process_follow_up(
    lead_id: UUID, request: ActorRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(orchestrator.process_follow_up(lead_id, actor=request.actor))


# --- Qualification ---


@router.post("/{lead_id}/meeting", response_model=LeadResponse, summary="Qualify Meeting")
def qualify_meeting(
    lead_id: UUID, request: MeetingOutcomeRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """
    Record whether the qualification meeting was honored.

    **Example request (no-show):**
    ```json
    {"honored": false, "absence_reason": "Sick leave", "actor": "agent-42"}
    ```
    """
    return LeadResponse.from_domain(
        orchestrator.qualify_meeting(lead_id, request.honored, request.absence_reason, actor=request.actor)
    )


@router.post("/{lead_id}/qualification", response_model=LeadResponse, summary="Decide Qualification")
def decide_qualification(
    lead_id: UUID,
    request: QualificationDecisionRequest,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    return LeadResponse.from_domain(
        orchestrator.decide_qualification(lead_id, request.decision, actor=request.actor)
    )


@router.post("/{lead_id}/disqualify", response_model=LeadResponse, summary="Disqualify Lead")
def disqualify_lead(
    lead_id: UUID, request: DisqualifyRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(orchestrator.disqualify_lead(lead_id, request.reason, actor=request.actor))


@router.post("/{lead_id}/reopen", response_model=LeadResponse, summary="Reopen Lead")
def reopen_lead(
    lead_id: UUID, request: ActorRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(orchestrator.reopen_lead(lead_id, actor=request.actor))


# --- Financing ---


@router.post("/{lead_id}/financing", response_model=LeadResponse, summary="Choose Financing")
def choose_financing(
    lead_id: UUID, request: ChooseFinancingRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.choose_financing(
            lead_id, request.financing_type, request.agreed_total, actor=request.actor
        )
    )


@router.post("/{lead_id}/offer", response_model=LeadResponse, summary="Validate Self-Funded Offer")
def validate_offer(
    lead_id: UUID, request: ValidateOfferRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.validate_offer(lead_id, request.amount, request.min_deposit_percent, actor=request.actor)
    )


@router.post("/{lead_id}/payments", response_model=LeadResponse, summary="Record Payment")
def record_payment(
    lead_id: UUID, request: PaymentRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """Payment-capture webhook target. Signs the lead once the agreed total is paid."""
    return LeadResponse.from_domain(orchestrator.record_payment(lead_id, request.amount_paid, actor=request.actor))


@router.post("/{lead_id}/funding-account", response_model=LeadResponse, summary="Set Funding Account Status")
def set_funding_account_status(
    lead_id: UUID, request: FundingAccountRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.set_funding_account_status(lead_id, request.is_active, actor=request.actor)
    )


@router.post("/{lead_id}/placement-test", response_model=LeadResponse, summary="Validate Placement Test")
def validate_placement_test(
    lead_id: UUID, request: PlacementTestRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    return LeadResponse.from_domain(
        orchestrator.validate_placement_test(lead_id, request.score, actor=request.actor)
    )


@router.post("/{lead_id}/funding-file", response_model=FundingFileResponse, summary="Validate Funding File")
def validate_funding_file(
    lead_id: UUID, request: FundingFileRequest, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """Accept the funding-body dossier; signs the lead and opens its compliance record."""
    lead, record = orchestrator.validate_funding_file(
        lead_id, external_file_id=request.external_file_id, actor=request.actor
    )
    return FundingFileResponse(
        lead=LeadResponse.from_domain(lead),
        compliance_record=ComplianceRecordResponse.from_domain(record),
    )
