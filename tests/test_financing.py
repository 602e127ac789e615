"""
Tests for `domain/financing.py` and `domain/financing_workflow.py`.

Covers contract rules:
- The financing type is chosen once (InvalidArgumentError on a second choice).
- Branch operations reject the other branch (InvalidStateError).
- Deposit >= agreed_total * percent / 100, boundary inclusive.
- Cumulative payments never exceed the agreed total; full payment signs the lead.
- Placement tests below the minimum flag remediation instead of disqualifying.
- Funding-file validation requires an active account and opens a compliance record.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain import financing_workflow, lead_workflow
from domain.errors import InvalidArgumentError, InvalidStateError, ValidationError
from domain.financing import FinancingType, SelfFundedFinancing, ThirdPartyFinancing
from domain.funding_compliance import FundingStage
from domain.lead import HistoryEntryType, Lead, LeadStatus, SalesStage
from domain.lead_workflow import CallOutcome, QualificationDecision, WorkflowPolicy

T0 = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
POLICY = WorkflowPolicy(placement_test_min_score=50)
RECORD_ID = UUID("00000000-0000-0000-0000-0000000000f1")


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def _financing_pending() -> Lead:
    lead = lead_workflow.new_lead(
        lead_id=UUID("00000000-0000-0000-0000-000000000001"),
        organization_id=UUID("00000000-0000-0000-0000-0000000000aa"),
        at=T0,
        actor="intake",
    )
    lead = lead_workflow.record_call_outcome(lead, CallOutcome.APPOINTMENT_SET, at=_at(1), actor="a", policy=POLICY)
    lead = lead_workflow.qualify_meeting(lead, True, None, at=_at(2), actor="a")
    return lead_workflow.decide_qualification(lead, QualificationDecision.PROCEED, at=_at(3), actor="a")


def _self_funded(total: str = "1000") -> Lead:
    return financing_workflow.choose_financing(
        _financing_pending(), FinancingType.SELF_FUNDED, Decimal(total), at=_at(4), actor="a"
    )


def _third_party() -> Lead:
    return financing_workflow.choose_financing(
        _financing_pending(), FinancingType.THIRD_PARTY_FUNDED, None, at=_at(4), actor="a"
    )


def _file_review() -> Lead:
    lead = financing_workflow.set_funding_account_status(_third_party(), True, at=_at(5), actor="a")
    return financing_workflow.validate_placement_test(lead, 80, at=_at(6), actor="a", policy=POLICY)


# --- Financing value objects ---


def test_self_funded_financing_invariants() -> None:
    with pytest.raises(ValueError):
        SelfFundedFinancing(agreed_total=Decimal("0"))
    with pytest.raises(ValueError):
        SelfFundedFinancing(agreed_total=Decimal("100"), amount_paid=Decimal("101"))

    financing = SelfFundedFinancing(agreed_total=Decimal("1000"), amount_paid=Decimal("300"))
    assert financing.remaining == Decimal("700")
    assert financing.required_deposit(Decimal("30")) == Decimal("300")
    assert not financing.is_complete


def test_third_party_validated_file_requires_record() -> None:
    with pytest.raises(ValueError):
        ThirdPartyFinancing(account_active=True, file_validated=True)


# --- Choice ---


def test_choose_self_funded_moves_to_offer_pending() -> None:
    lead = _self_funded()

    assert lead.status == LeadStatus.FINANCING
    assert lead.sales_stage == SalesStage.OFFER_PENDING
    assert isinstance(lead.financing, SelfFundedFinancing)
    assert lead.financing.agreed_total == Decimal("1000")


def test_choose_third_party_moves_to_account_check() -> None:
    lead = _third_party()

    assert lead.sales_stage == SalesStage.ACCOUNT_CHECK
    assert lead.is_third_party_funded


def test_financing_is_write_once() -> None:
    with pytest.raises(InvalidArgumentError):
        financing_workflow.choose_financing(
            _self_funded(), FinancingType.THIRD_PARTY_FUNDED, None, at=_at(5), actor="a"
        )


def test_choose_financing_requires_proceed_decision() -> None:
    lead = lead_workflow.new_lead(
        lead_id=UUID("00000000-0000-0000-0000-000000000002"),
        organization_id=UUID("00000000-0000-0000-0000-0000000000aa"),
        at=T0,
        actor="intake",
    )

    with pytest.raises(InvalidStateError):
        financing_workflow.choose_financing(lead, FinancingType.SELF_FUNDED, Decimal("1000"), at=_at(1), actor="a")


@pytest.mark.parametrize("total", [None, "0", "-5", "abc"])
def test_self_funded_requires_positive_total(total) -> None:
    with pytest.raises(ValidationError):
        financing_workflow.choose_financing(
            _financing_pending(), FinancingType.SELF_FUNDED, total, at=_at(4), actor="a"
        )


# --- Self-funded branch ---


def test_validate_offer_boundary_is_inclusive() -> None:
    lead = financing_workflow.validate_offer(_self_funded(), Decimal("300"), Decimal("30"), at=_at(5), actor="a")

    assert lead.sales_stage == SalesStage.PAYMENT
    assert lead.financing.offer_validated
    assert lead.financing.amount_paid == Decimal("300")
    assert lead.history[-1].entry_type == HistoryEntryType.PAYMENT


def test_validate_offer_rejects_insufficient_deposit_and_leaves_lead_unchanged() -> None:
    lead = _self_funded()

    with pytest.raises(ValidationError, match="Insufficient deposit") as exc_info:
        financing_workflow.validate_offer(lead, Decimal("299"), Decimal("30"), at=_at(5), actor="a")

    assert exc_info.value.current is lead
    assert lead.sales_stage == SalesStage.OFFER_PENDING
    assert not lead.financing.offer_validated


def test_repeated_insufficient_deposit_fails_the_same_way() -> None:
    lead = _self_funded()

    reasons = []
    for _ in range(3):
        with pytest.raises(ValidationError) as exc_info:
            financing_workflow.validate_offer(lead, Decimal("299"), Decimal("30"), at=_at(5), actor="a")
        reasons.append(exc_info.value.reason)
        assert exc_info.value.current == lead

    assert len(set(reasons)) == 1
    assert lead.financing.amount_paid == Decimal("0")
    assert not lead.financing.offer_validated


@pytest.mark.parametrize(("amount", "percent"), [("300", "0"), ("300", "101"), ("0", "30"), ("1200", "30")])
def test_validate_offer_rejects_out_of_range_values(amount, percent) -> None:
    with pytest.raises(ValidationError):
        financing_workflow.validate_offer(_self_funded(), amount, percent, at=_at(5), actor="a")


def test_validate_offer_twice_is_rejected() -> None:
    lead = financing_workflow.validate_offer(_self_funded(), "300", "30", at=_at(5), actor="a")

    with pytest.raises(InvalidStateError):
        financing_workflow.validate_offer(lead, "300", "30", at=_at(6), actor="a")


def test_full_deposit_signs_immediately() -> None:
    lead = financing_workflow.validate_offer(_self_funded(), "1000", "30", at=_at(5), actor="a")

    assert lead.status == LeadStatus.SIGNED
    assert lead.sales_stage == SalesStage.ENROLLED


def test_payment_requires_validated_offer() -> None:
    with pytest.raises(InvalidStateError):
        financing_workflow.record_payment(_self_funded(), "100", at=_at(5), actor="a")


def test_payments_accumulate_until_signed() -> None:
    lead = financing_workflow.validate_offer(_self_funded(), "300", "30", at=_at(5), actor="a")
    lead = financing_workflow.record_payment(lead, "200", at=_at(6), actor="webhook")

    assert lead.status == LeadStatus.FINANCING
    assert lead.financing.amount_paid == Decimal("500")
    assert lead.history[-1].action == "PAYMENT_PARTIAL"

    lead = financing_workflow.record_payment(lead, "500", at=_at(7), actor="webhook")

    assert lead.status == LeadStatus.SIGNED
    assert lead.sales_stage == SalesStage.ENROLLED
    assert lead.financing.is_complete


def test_overpayment_is_rejected() -> None:
    lead = financing_workflow.validate_offer(_self_funded(), "300", "30", at=_at(5), actor="a")

    with pytest.raises(ValidationError, match="exceed"):
        financing_workflow.record_payment(lead, "701", at=_at(6), actor="webhook")


def test_self_funded_operations_reject_third_party_lead() -> None:
    with pytest.raises(InvalidStateError):
        financing_workflow.validate_offer(_third_party(), "300", "30", at=_at(5), actor="a")


# --- Third-party branch ---


def test_inactive_account_blocks_placement_test() -> None:
    lead = financing_workflow.set_funding_account_status(_third_party(), False, at=_at(5), actor="a")

    assert lead.sales_stage == SalesStage.ACCOUNT_INACTIVE
    with pytest.raises(InvalidStateError):
        financing_workflow.validate_placement_test(lead, 80, at=_at(6), actor="a", policy=POLICY)


def test_placement_test_below_minimum_flags_remediation() -> None:
    lead = financing_workflow.set_funding_account_status(_third_party(), True, at=_at(5), actor="a")
    lead = financing_workflow.validate_placement_test(lead, 49, at=_at(6), actor="a", policy=POLICY)

    assert lead.status == LeadStatus.FINANCING
    assert lead.sales_stage == SalesStage.REMEDIATION
    assert lead.financing.needs_remediation

    retested = financing_workflow.validate_placement_test(lead, 50, at=_at(7), actor="a", policy=POLICY)

    assert retested.sales_stage == SalesStage.FUNDING_FILE_REVIEW
    assert not retested.financing.needs_remediation


@pytest.mark.parametrize("score", [-1, 101, True, 75.5])
def test_placement_score_must_be_integer_in_range(score) -> None:
    lead = financing_workflow.set_funding_account_status(_third_party(), True, at=_at(5), actor="a")

    with pytest.raises(ValidationError):
        financing_workflow.validate_placement_test(lead, score, at=_at(6), actor="a", policy=POLICY)


def test_reactivated_account_after_passed_test_returns_to_review() -> None:
    lead = financing_workflow.set_funding_account_status(_file_review(), False, at=_at(7), actor="a")
    lead = financing_workflow.set_funding_account_status(lead, True, at=_at(8), actor="a")

    assert lead.sales_stage == SalesStage.FUNDING_FILE_REVIEW


def test_validate_funding_file_signs_and_opens_record() -> None:
    signed, record = financing_workflow.validate_funding_file(
        _file_review(), record_id=RECORD_ID, external_file_id="EDOF-1", at=_at(7), actor="a"
    )

    assert signed.status == LeadStatus.SIGNED
    assert signed.sales_stage == SalesStage.ENROLLED
    assert signed.financing.compliance_record_id == RECORD_ID
    assert record.record_id == RECORD_ID
    assert record.lead_id == signed.lead_id
    assert record.current_stage == FundingStage.RECEIVED
    assert record.milestone(FundingStage.RECEIVED) == _at(7)


def test_validate_funding_file_requires_file_review() -> None:
    lead = financing_workflow.set_funding_account_status(_third_party(), True, at=_at(5), actor="a")

    with pytest.raises(InvalidStateError):
        financing_workflow.validate_funding_file(
            lead, record_id=RECORD_ID, external_file_id=None, at=_at(6), actor="a"
        )
