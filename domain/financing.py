"""
Domain: Financing decision attached to a lead.

Two mutually exclusive branches, modelled as a tagged union:
- SelfFundedFinancing: the customer pays directly (deposit + cumulative payments).
- ThirdPartyFinancing: an external public funding body finances the training
  and tracks it through a multi-stage approval lifecycle.

Each variant only carries its own fields. Branch-specific operations check the
variant with isinstance and reject the other branch.

Invariants:
- amount_paid never exceeds agreed_total.
- agreed_total is strictly positive.
- A validated funding file always references its compliance record.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID


class FinancingType(str, Enum):
    SELF_FUNDED = "SELF_FUNDED"
    THIRD_PARTY_FUNDED = "THIRD_PARTY_FUNDED"


@dataclass(frozen=True, slots=True)
class SelfFundedFinancing:
    agreed_total: Decimal
    min_deposit_percent: Optional[Decimal] = None
    amount_paid: Decimal = Decimal("0")
    offer_validated: bool = False

    def __post_init__(self) -> None:
        if self.agreed_total <= 0:
            raise ValueError("agreed_total must be > 0")
        if self.amount_paid < 0:
            raise ValueError("amount_paid must be >= 0")
        if self.amount_paid > self.agreed_total:
            raise ValueError("amount_paid must not exceed agreed_total")
        if self.offer_validated and self.min_deposit_percent is None:
            raise ValueError("a validated offer requires min_deposit_percent")

    @property
    def financing_type(self) -> FinancingType:
        return FinancingType.SELF_FUNDED

    @property
    def remaining(self) -> Decimal:
        return self.agreed_total - self.amount_paid

    @property
    def is_complete(self) -> bool:
        return self.offer_validated and self.amount_paid >= self.agreed_total

    def required_deposit(self, min_deposit_percent: Decimal) -> Decimal:
        """Minimum first payment for the given deposit percentage."""
        return self.agreed_total * min_deposit_percent / Decimal(100)


@dataclass(frozen=True, slots=True)
class ThirdPartyFinancing:
    account_active: Optional[bool] = None
    placement_score: Optional[int] = None
    needs_remediation: bool = False
    file_validated: bool = False
    compliance_record_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        if self.file_validated and self.compliance_record_id is None:
            raise ValueError("a validated funding file requires compliance_record_id")
        if self.file_validated and self.account_active is not True:
            raise ValueError("a validated funding file requires an active funding account")

    @property
    def financing_type(self) -> FinancingType:
        return FinancingType.THIRD_PARTY_FUNDED

    @property
    def is_complete(self) -> bool:
        return self.file_validated


Financing = Union[SelfFundedFinancing, ThirdPartyFinancing]


__all__ = [
    "FinancingType",
    "SelfFundedFinancing",
    "ThirdPartyFinancing",
    "Financing",
]
