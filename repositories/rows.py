"""
Row mapping between domain aggregates and Supabase table rows.

Pure conversion only: no queries, no business rules. Timestamps are stored as
ISO-8601 UTC strings; money as decimal strings; the financing union, history
and metadata as JSON columns.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from domain.financing import Financing, FinancingType, SelfFundedFinancing, ThirdPartyFinancing
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from domain.lead import HistoryEntry, HistoryEntryType, Lead, LeadStatus, SalesStage
from domain.time import require_utc_timestamp


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        # Python's fromisoformat doesn't consistently accept 'Z' across versions.
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    # If the backend returns a naive timestamp, interpret it as UTC so that the
    # domain model's UTC invariant is satisfied.
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


# --- Financing ---


def financing_to_json(financing: Optional[Financing]) -> Optional[Dict[str, Any]]:
    if financing is None:
        return None
    if isinstance(financing, SelfFundedFinancing):
        return {
            "type": FinancingType.SELF_FUNDED.value,
            "agreed_total": str(financing.agreed_total),
            "min_deposit_percent": (
                str(financing.min_deposit_percent) if financing.min_deposit_percent is not None else None
            ),
            "amount_paid": str(financing.amount_paid),
            "offer_validated": financing.offer_validated,
        }
    return {
        "type": FinancingType.THIRD_PARTY_FUNDED.value,
        "account_active": financing.account_active,
        "placement_score": financing.placement_score,
        "needs_remediation": financing.needs_remediation,
        "file_validated": financing.file_validated,
        "compliance_record_id": (
            str(financing.compliance_record_id) if financing.compliance_record_id else None
        ),
    }


def financing_from_json(data: Optional[Mapping[str, Any]]) -> Optional[Financing]:
    if not data:
        return None
    financing_type = FinancingType(str(data["type"]))
    if financing_type == FinancingType.SELF_FUNDED:
        percent = data.get("min_deposit_percent")
        return SelfFundedFinancing(
            agreed_total=Decimal(str(data["agreed_total"])),
            min_deposit_percent=Decimal(str(percent)) if percent is not None else None,
            amount_paid=Decimal(str(data.get("amount_paid", "0"))),
            offer_validated=bool(data.get("offer_validated", False)),
        )
    record_id = data.get("compliance_record_id")
    return ThirdPartyFinancing(
        account_active=data.get("account_active"),
        placement_score=data.get("placement_score"),
        needs_remediation=bool(data.get("needs_remediation", False)),
        file_validated=bool(data.get("file_validated", False)),
        compliance_record_id=UUID(str(record_id)) if record_id else None,
    )


# --- Lead ---


def history_entry_to_json(entry: HistoryEntry) -> Dict[str, Any]:
    return {
        "entry_type": entry.entry_type.value,
        "timestamp": to_iso_utc(entry.timestamp, name="timestamp"),
        "actor": entry.actor,
        "action": entry.action,
        "details": dict(entry.details),
    }


def history_entry_from_json(data: Mapping[str, Any]) -> HistoryEntry:
    return HistoryEntry(
        entry_type=HistoryEntryType(str(data["entry_type"])),
        timestamp=parse_utc_datetime(data["timestamp"]),
        actor=str(data["actor"]),
        action=str(data["action"]),
        details=dict(data.get("details") or {}),
    )


def lead_to_row(lead: Lead) -> Dict[str, Any]:
    """Convert a domain Lead to a Supabase row payload."""

    return {
        "lead_id": str(lead.lead_id),
        "organization_id": str(lead.organization_id),
        "status": lead.status.value,
        "sales_stage": lead.sales_stage.value if lead.sales_stage else None,
        "score": lead.score,
        "call_attempts": lead.call_attempts,
        "follow_up_count": lead.follow_up_count,
        "financing": financing_to_json(lead.financing),
        "history": [history_entry_to_json(entry) for entry in lead.history],
        "metadata": dict(lead.metadata),
        "source": lead.source,
        "last_response_at_utc": (
            to_iso_utc(lead.last_response_at, name="last_response_at") if lead.last_response_at else None
        ),
        "created_at_utc": to_iso_utc(lead.created_at, name="created_at"),
        "updated_at_utc": to_iso_utc(lead.updated_at, name="updated_at"),
        "version": lead.version,
    }


def row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    stage = row.get("sales_stage")
    return Lead(
        lead_id=UUID(str(row["lead_id"])),
        organization_id=UUID(str(row["organization_id"])),
        status=LeadStatus(str(row["status"])),
        sales_stage=SalesStage(str(stage)) if stage else None,
        score=int(row.get("score") or 0),
        call_attempts=int(row.get("call_attempts") or 0),
        follow_up_count=int(row.get("follow_up_count") or 0),
        financing=financing_from_json(row.get("financing")),
        history=tuple(history_entry_from_json(item) for item in row.get("history") or []),
        metadata=dict(row.get("metadata") or {}),
        source=row.get("source") or None,
        last_response_at=_optional_datetime(row.get("last_response_at_utc")),
        created_at=parse_utc_datetime(row["created_at_utc"]),
        updated_at=parse_utc_datetime(row["updated_at_utc"]),
        version=int(row.get("version") or 0),
    )


# --- Funding compliance record ---


def milestone_column(stage: FundingStage) -> str:
    """One timestamp column per stage, e.g. ENTRY_DECLARED -> entry_declared_at_utc."""

    return f"{stage.value.lower()}_at_utc"


def compliance_record_to_row(record: FundingComplianceRecord) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "record_id": str(record.record_id),
        "lead_id": str(record.lead_id),
        "external_file_id": record.external_file_id,
        "current_stage": record.current_stage.value,
        "invoiced": record.invoiced,
        "version": record.version,
    }
    for stage in FundingStage:
        stamped_at = record.milestone(stage)
        row[milestone_column(stage)] = (
            to_iso_utc(stamped_at, name=milestone_column(stage)) if stamped_at else None
        )
    return row


def row_to_compliance_record(row: Mapping[str, Any]) -> FundingComplianceRecord:
    milestones = {
        stage: parse_utc_datetime(row[milestone_column(stage)])
        for stage in FundingStage
        if row.get(milestone_column(stage))
    }
    return FundingComplianceRecord(
        record_id=UUID(str(row["record_id"])),
        lead_id=UUID(str(row["lead_id"])),
        current_stage=FundingStage(str(row["current_stage"])),
        milestones=milestones,
        external_file_id=row.get("external_file_id") or None,
        invoiced=bool(row.get("invoiced", False)),
        version=int(row.get("version") or 0),
    )


__all__ = [
    "to_iso_utc",
    "parse_utc_datetime",
    "financing_to_json",
    "financing_from_json",
    "lead_to_row",
    "row_to_lead",
    "milestone_column",
    "compliance_record_to_row",
    "row_to_compliance_record",
]
