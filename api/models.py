"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.financing import FinancingType, SelfFundedFinancing, ThirdPartyFinancing
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from domain.lead import HistoryEntry, Lead
from domain.lead_workflow import CallOutcome, QualificationDecision
from domain.scoring import ScoreBreakdown, SignalType


# ============================================================================
# Lead Request Models
# ============================================================================

class RegisterLeadRequest(BaseModel):
    """Request to register a new lead."""
    organization_id: UUID
    source: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    responded_at: Optional[datetime] = Field(
        None,
        description="UTC timestamp of the lead's latest response (feeds the freshness bonus)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "organization_id": "123e4567-e89b-12d3-a456-426614174000",
                "source": "website",
                "metadata": {"campaign": "spring"},
                "responded_at": "2026-01-01T12:00:00Z"
            }
        }


class CallOutcomeRequest(BaseModel):
    outcome: CallOutcome
    actor: str = "system"


class SignalRequest(BaseModel):
    signal_type: SignalType
    occurred_at: Optional[datetime] = Field(None, description="UTC time the signal was observed (defaults to now)")
    actor: str = "system"


class MeetingOutcomeRequest(BaseModel):
    """Outcome of the qualification meeting."""
    honored: bool
    absence_reason: Optional[str] = None
    actor: str = "system"

    class Config:
        json_schema_extra = {
            "example": {"honored": False, "absence_reason": "Sick leave", "actor": "agent-42"}
        }


class QualificationDecisionRequest(BaseModel):
    decision: QualificationDecision
    actor: str = "system"


class ActorRequest(BaseModel):
    actor: str = "system"


class DisqualifyRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    actor: str = "system"


class ChooseFinancingRequest(BaseModel):
    """Select the financing branch (write-once)."""
    financing_type: FinancingType
    agreed_total: Optional[Decimal] = Field(
        None,
        description="Total training price; required for SELF_FUNDED"
    )
    actor: str = "system"

    class Config:
        json_schema_extra = {
            "example": {"financing_type": "SELF_FUNDED", "agreed_total": "1000.00", "actor": "agent-42"}
        }


class ValidateOfferRequest(BaseModel):
    amount: Decimal = Field(..., description="Deposit paid with the signed offer")
    min_deposit_percent: Decimal = Field(..., description="Minimum deposit, as a percentage of the agreed total")
    actor: str = "system"


class PaymentRequest(BaseModel):
    amount_paid: Decimal
    actor: str = "system"


class FundingAccountRequest(BaseModel):
    is_active: bool
    actor: str = "system"


class PlacementTestRequest(BaseModel):
    score: int
    actor: str = "system"


class FundingFileRequest(BaseModel):
    external_file_id: Optional[str] = Field(None, description="Dossier number at the funding body")
    actor: str = "system"


class AdvanceStageRequest(BaseModel):
    target_stage: FundingStage
    actor: str = "system"


class StageReportRequest(BaseModel):
    """One status line polled from the funding body's portal."""
    status: str = Field(..., description="Portal status code (e.g. ACCEPTE) or stage name")
    record_id: Optional[UUID] = None
    external_file_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {"status": "ENTREE_DECLAREE", "external_file_id": "EDOF-2026-000123"}
        }


# ============================================================================
# Response Models
# ============================================================================

class HistoryEntryResponse(BaseModel):
    entry_type: str
    timestamp: datetime
    actor: str
    action: str
    details: Dict[str, Any]

    @staticmethod
    def from_domain(entry: HistoryEntry) -> "HistoryEntryResponse":
        return HistoryEntryResponse(
            entry_type=entry.entry_type.value,
            timestamp=entry.timestamp,
            actor=entry.actor,
            action=entry.action,
            details=dict(entry.details),
        )


class FinancingResponse(BaseModel):
    financing_type: FinancingType
    # Self-funded
    agreed_total: Optional[Decimal] = None
    min_deposit_percent: Optional[Decimal] = None
    amount_paid: Optional[Decimal] = None
    offer_validated: Optional[bool] = None
    # Third-party funded
    account_active: Optional[bool] = None
    placement_score: Optional[int] = None
    needs_remediation: Optional[bool] = None
    file_validated: Optional[bool] = None
    compliance_record_id: Optional[UUID] = None

    @staticmethod
    def from_domain(financing: Any) -> Optional["FinancingResponse"]:
        if isinstance(financing, SelfFundedFinancing):
            return FinancingResponse(
                financing_type=financing.financing_type,
                agreed_total=financing.agreed_total,
                min_deposit_percent=financing.min_deposit_percent,
                amount_paid=financing.amount_paid,
                offer_validated=financing.offer_validated,
            )
        if isinstance(financing, ThirdPartyFinancing):
            return FinancingResponse(
                financing_type=financing.financing_type,
                account_active=financing.account_active,
                placement_score=financing.placement_score,
                needs_remediation=financing.needs_remediation,
                file_validated=financing.file_validated,
                compliance_record_id=financing.compliance_record_id,
            )
        return None


class LeadResponse(BaseModel):
    """Lead aggregate as returned to callers."""
    lead_id: UUID
    organization_id: UUID
    status: str
    sales_stage: Optional[str]
    score: int
    call_attempts: int
    follow_up_count: int
    financing: Optional[FinancingResponse]
    history: List[HistoryEntryResponse]
    metadata: Dict[str, Any]
    source: Optional[str]
    last_response_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int

    @staticmethod
    def from_domain(lead: Lead) -> "LeadResponse":
        return LeadResponse(
            lead_id=lead.lead_id,
            organization_id=lead.organization_id,
            status=lead.status.value,
            sales_stage=lead.sales_stage.value if lead.sales_stage else None,
            score=lead.score,
            call_attempts=lead.call_attempts,
            follow_up_count=lead.follow_up_count,
            financing=FinancingResponse.from_domain(lead.financing),
            history=[HistoryEntryResponse.from_domain(entry) for entry in lead.history],
            metadata=dict(lead.metadata),
            source=lead.source,
            last_response_at=lead.last_response_at,
            created_at=lead.created_at,
            updated_at=lead.updated_at,
            version=lead.version,
        )


class ScoreContribution(BaseModel):
    signal_type: SignalType
    count: int
    points: int


class ScoreBreakdownResponse(BaseModel):
    contributions: List[ScoreContribution]
    freshness_bonus: int
    stale_penalty: int
    raw_total: int
    score: int

    @staticmethod
    def from_domain(breakdown: ScoreBreakdown) -> "ScoreBreakdownResponse":
        return ScoreBreakdownResponse(
            contributions=[
                ScoreContribution(signal_type=signal_type, count=count, points=points)
                for signal_type, count, points in breakdown.contributions
            ],
            freshness_bonus=breakdown.freshness_bonus,
            stale_penalty=breakdown.stale_penalty,
            raw_total=breakdown.raw_total,
            score=breakdown.score,
        )


class ComplianceRecordResponse(BaseModel):
    record_id: UUID
    lead_id: UUID
    external_file_id: Optional[str]
    current_stage: FundingStage
    milestones: Dict[str, datetime]
    invoiced: bool
    billable: bool
    version: int

    @staticmethod
    def from_domain(record: FundingComplianceRecord) -> "ComplianceRecordResponse":
        return ComplianceRecordResponse(
            record_id=record.record_id,
            lead_id=record.lead_id,
            external_file_id=record.external_file_id,
            current_stage=record.current_stage,
            milestones={stage.value: stamped_at for stage, stamped_at in record.milestones.items()},
            invoiced=record.invoiced,
            billable=record.is_billable,
            version=record.version,
        )


class FundingFileResponse(BaseModel):
    lead: LeadResponse
    compliance_record: ComplianceRecordResponse


class BillableResponse(BaseModel):
    id: UUID
    billable: bool


class SyncSummaryResponse(BaseModel):
    advanced: int
    unchanged: int
    rejected: int
    errors: int
    messages: List[str]


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Structured rejection: error kind, reason, and the unchanged current state."""
    kind: str
    reason: str
    current: Optional[Dict[str, Any]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "validation",
                "reason": "Insufficient deposit: 299 < 300 (30% of 1000)",
                "current": {
                    "lead_id": "123e4567-e89b-12d3-a456-426614174000",
                    "status": "FINANCING",
                    "sales_stage": "OFFER_PENDING",
                    "score": 4,
                    "call_attempts": 1,
                    "follow_up_count": 1,
                    "financing_type": "SELF_FUNDED",
                    "version": 6
                }
            }
        }
