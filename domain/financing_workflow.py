"""
Domain: Financing sub-workflow (pure transitions).

Entered only after a PROCEED qualification decision (FINANCING /
FINANCING_PENDING). A financing type is chosen exactly once; afterwards only
the operations of that branch are accepted.

Self-funded:
  OFFER_PENDING --validate_offer--> PAYMENT --record_payment (paid in full)--> SIGNED
  The deposit passed to validate_offer counts as the first payment.

Third-party funded:
  ACCOUNT_CHECK --set_account_status--> ACCOUNT_INACTIVE | PLACEMENT_TEST
  PLACEMENT_TEST / REMEDIATION --validate_placement_test--> FUNDING_FILE_REVIEW | REMEDIATION
  FUNDING_FILE_REVIEW --validate_funding_file--> SIGNED (+ compliance record)
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID

from .errors import InvalidArgumentError, InvalidStateError, ValidationError
from .financing import FinancingType, SelfFundedFinancing, ThirdPartyFinancing
from .funding_compliance import FundingComplianceRecord
from .lead import HistoryEntryType, Lead, LeadStatus, SalesStage
from .lead_workflow import WorkflowPolicy

_THIRD_PARTY_OPEN_STAGES = frozenset(
    {
        SalesStage.ACCOUNT_CHECK,
        SalesStage.ACCOUNT_INACTIVE,
        SalesStage.PLACEMENT_TEST,
        SalesStage.REMEDIATION,
        SalesStage.FUNDING_FILE_REVIEW,
    }
)


def _to_decimal(name: str, value: object, lead: Lead) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except ArithmeticError:
        raise ValidationError(f"{name} must be a number (got {value!r})", current=lead) from None
    if not amount.is_finite():
        raise ValidationError(f"{name} must be finite", current=lead)
    return amount


def _require_financing_status(lead: Lead) -> None:
    if lead.status != LeadStatus.FINANCING:
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not in financing (status: {lead.status.value})", current=lead
        )


def _self_funded(lead: Lead) -> SelfFundedFinancing:
    _require_financing_status(lead)
    if not isinstance(lead.financing, SelfFundedFinancing):
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not on the self-funded branch", current=lead
        )
    return lead.financing


def _third_party(lead: Lead) -> ThirdPartyFinancing:
    _require_financing_status(lead)
    if not isinstance(lead.financing, ThirdPartyFinancing):
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not on the third-party-funded branch", current=lead
        )
    return lead.financing


def choose_financing(
    lead: Lead,
    financing_type: FinancingType,
    agreed_total: Optional[object],
    *,
    at: datetime,
    actor: str,
) -> Lead:
    """Select the financing branch (write-once)."""

    if lead.financing is not None:
        raise InvalidArgumentError(
            f"Financing already chosen for lead {lead.lead_id} "
            f"({lead.financing.financing_type.value})",
            current=lead,
        )
    _require_financing_status(lead)
    if lead.sales_stage != SalesStage.FINANCING_PENDING:
        raise InvalidStateError(f"Lead {lead.lead_id} is not awaiting a financing choice", current=lead)

    if financing_type == FinancingType.SELF_FUNDED:
        if agreed_total is None:
            raise ValidationError("agreed_total is required for self-funded financing", current=lead)
        total = _to_decimal("agreed_total", agreed_total, lead)
        if total <= 0:
            raise ValidationError("agreed_total must be greater than 0", current=lead)
        return lead.transition(
            at=at,
            actor=actor,
            action="FINANCING_CHOSEN_SELF_FUNDED",
            sales_stage=SalesStage.OFFER_PENDING,
            details={"financing_type": financing_type.value, "agreed_total": str(total)},
            financing=SelfFundedFinancing(agreed_total=total),
        )

    return lead.transition(
        at=at,
        actor=actor,
        action="FINANCING_CHOSEN_THIRD_PARTY",
        sales_stage=SalesStage.ACCOUNT_CHECK,
        details={"financing_type": financing_type.value},
        financing=ThirdPartyFinancing(),
    )


# --- Self-funded branch ---


def validate_offer(
    lead: Lead, amount: object, min_deposit_percent: object, *, at: datetime, actor: str
) -> Lead:
    """
    Accept the commercial offer once the deposit covers the minimum percentage.

    amount >= agreed_total * min_deposit_percent / 100 (boundary inclusive).
    """

    financing = _self_funded(lead)
    if financing.offer_validated:
        raise InvalidStateError(f"Offer already validated for lead {lead.lead_id}", current=lead)

    deposit = _to_decimal("amount", amount, lead)
    percent = _to_decimal("min_deposit_percent", min_deposit_percent, lead)

    if not Decimal(0) < percent <= Decimal(100):
        raise ValidationError("min_deposit_percent must be within (0, 100]", current=lead)
    if deposit <= 0:
        raise ValidationError("Deposit amount must be greater than 0", current=lead)
    if deposit > financing.agreed_total:
        raise ValidationError(
            f"Deposit {deposit} exceeds the agreed total {financing.agreed_total}", current=lead
        )

    required = financing.required_deposit(percent)
    if deposit < required:
        raise ValidationError(
            f"Insufficient deposit: {deposit} < {required} "
            f"({percent}% of {financing.agreed_total})",
            current=lead,
        )

    updated = replace(financing, min_deposit_percent=percent, amount_paid=deposit, offer_validated=True)
    details = {"deposit": str(deposit), "min_deposit_percent": str(percent), "required": str(required)}

    if updated.is_complete:
        return lead.transition(
            at=at,
            actor=actor,
            action="OFFER_VALIDATED_PAID_IN_FULL",
            status=LeadStatus.SIGNED,
            sales_stage=SalesStage.ENROLLED,
            entry_type=HistoryEntryType.PAYMENT,
            details=details,
            financing=updated,
        )
    return lead.transition(
        at=at,
        actor=actor,
        action="OFFER_VALIDATED",
        sales_stage=SalesStage.PAYMENT,
        entry_type=HistoryEntryType.PAYMENT,
        details=details,
        financing=updated,
    )


def record_payment(lead: Lead, amount_paid: object, *, at: datetime, actor: str) -> Lead:
    """Add a payment; the lead is SIGNED once the agreed total is fully paid."""

    financing = _self_funded(lead)
    if not financing.offer_validated:
        raise InvalidStateError(
            f"Deposit not validated yet for lead {lead.lead_id}; validate the offer first", current=lead
        )

    amount = _to_decimal("amount_paid", amount_paid, lead)
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0", current=lead)

    cumulative = financing.amount_paid + amount
    if cumulative > financing.agreed_total:
        raise ValidationError(
            f"Payment of {amount} would exceed the agreed total "
            f"(remaining: {financing.remaining})",
            current=lead,
        )

    updated = replace(financing, amount_paid=cumulative)
    details = {"amount": str(amount), "cumulative": str(cumulative), "remaining": str(updated.remaining)}

    if updated.is_complete:
        return lead.transition(
            at=at,
            actor=actor,
            action="PAYMENT_COMPLETED",
            status=LeadStatus.SIGNED,
            sales_stage=SalesStage.ENROLLED,
            entry_type=HistoryEntryType.PAYMENT,
            details=details,
            financing=updated,
        )
    return lead.transition(
        at=at,
        actor=actor,
        action="PAYMENT_PARTIAL",
        entry_type=HistoryEntryType.PAYMENT,
        details=details,
        financing=updated,
    )


# --- Third-party-funded branch ---


def set_funding_account_status(lead: Lead, is_active: bool, *, at: datetime, actor: str) -> Lead:
    """Record whether the external funding account is usable. Inactive blocks downstream steps."""

    financing = _third_party(lead)
    if lead.sales_stage not in _THIRD_PARTY_OPEN_STAGES:
        raise InvalidStateError(
            "Funding account status cannot change once the funding file is validated", current=lead
        )

    if is_active:
        # An account re-activated after a passed test goes straight back to file review.
        passed = financing.placement_score is not None and not financing.needs_remediation
        next_stage = SalesStage.FUNDING_FILE_REVIEW if passed else (
            SalesStage.REMEDIATION if financing.needs_remediation else SalesStage.PLACEMENT_TEST
        )
    else:
        next_stage = SalesStage.ACCOUNT_INACTIVE

    return lead.transition(
        at=at,
        actor=actor,
        action=f"FUNDING_ACCOUNT_{'ACTIVE' if is_active else 'INACTIVE'}",
        sales_stage=next_stage,
        details={"is_active": is_active},
        financing=replace(financing, account_active=is_active),
    )


def validate_placement_test(
    lead: Lead, score: int, *, at: datetime, actor: str, policy: WorkflowPolicy
) -> Lead:
    """
    Record a placement-test score.

    At or above the configured minimum the file goes to review; below it the
    lead is flagged for remediation (never disqualified) and may be re-tested.
    """

    financing = _third_party(lead)
    if financing.account_active is not True:
        raise InvalidStateError("Funding account is not active", current=lead)
    if lead.sales_stage not in (SalesStage.PLACEMENT_TEST, SalesStage.REMEDIATION):
        raise InvalidStateError(
            f"Lead {lead.lead_id} is not awaiting a placement test", current=lead
        )
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= 100:
        raise ValidationError("Placement test score must be an integer within [0, 100]", current=lead)

    passed = score >= policy.placement_test_min_score
    details = {"score": score, "min_score": policy.placement_test_min_score, "passed": passed}
    return lead.transition(
        at=at,
        actor=actor,
        action="PLACEMENT_TEST_PASSED" if passed else "PLACEMENT_TEST_REMEDIATION",
        sales_stage=SalesStage.FUNDING_FILE_REVIEW if passed else SalesStage.REMEDIATION,
        details=details,
        financing=replace(financing, placement_score=score, needs_remediation=not passed),
    )


def validate_funding_file(
    lead: Lead,
    *,
    record_id: UUID,
    external_file_id: Optional[str],
    at: datetime,
    actor: str,
) -> Tuple[Lead, FundingComplianceRecord]:
    """
    Accept the funding-body dossier: sign the lead and open its compliance record.

    Returns the signed lead and the new record (stage RECEIVED).
    """

    financing = _third_party(lead)
    if financing.account_active is not True:
        raise InvalidStateError("Funding account is not active", current=lead)
    if lead.sales_stage != SalesStage.FUNDING_FILE_REVIEW:
        raise InvalidStateError(
            f"Lead {lead.lead_id} has no funding file awaiting validation", current=lead
        )

    record = FundingComplianceRecord.open(
        record_id=record_id,
        lead_id=lead.lead_id,
        received_at=at,
        external_file_id=external_file_id,
    )
    signed = lead.transition(
        at=at,
        actor=actor,
        action="FUNDING_FILE_VALIDATED",
        status=LeadStatus.SIGNED,
        sales_stage=SalesStage.ENROLLED,
        details={"compliance_record_id": str(record_id), "external_file_id": external_file_id},
        financing=replace(financing, file_validated=True, compliance_record_id=record_id),
    )
    return signed, record


__all__ = [
    "choose_financing",
    "validate_offer",
    "record_payment",
    "set_funding_account_status",
    "validate_placement_test",
    "validate_funding_file",
]
