"""
Funding-compliance record repository (persistence).

Persistence only. The monotonic-stage invariant is enforced at the point of
write: an update only applies when both `version` and `current_stage` still
hold the values the caller read, so two near-simultaneous advances can never
both succeed past the same boundary.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional, Protocol
from uuid import UUID

from domain.errors import ConcurrencyConflictError, InvalidArgumentError, NotFoundError
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from repositories.client import get_supabase
from repositories.rows import compliance_record_to_row, row_to_compliance_record

logger = logging.getLogger(__name__)

_COMPLIANCE_TABLE: str = "funding_compliance_records"


class ComplianceRecordRepository(Protocol):
    """Persistence collaborator contract for funding-compliance records."""

    def get(self, record_id: UUID) -> Optional[FundingComplianceRecord]:
        ...

    def get_by_external_file_id(self, external_file_id: str) -> Optional[FundingComplianceRecord]:
        ...

    def add(self, record: FundingComplianceRecord) -> FundingComplianceRecord:
        ...

    def remove(self, record_id: UUID) -> None:
        """Delete a record; a missing record is not an error."""
        ...

    def save(
        self,
        record: FundingComplianceRecord,
        *,
        expected_version: int,
        expected_stage: FundingStage,
    ) -> FundingComplianceRecord:
        """Compare-and-swap on (version, current_stage). Raises ConcurrencyConflictError on mismatch."""
        ...


class SupabaseComplianceRecordRepository:
    """ComplianceRecordRepository backed by a Supabase table."""

    def __init__(self, client: Any = None, table: str = _COMPLIANCE_TABLE) -> None:
        self._client = client if client is not None else get_supabase()
        self._table = table

    def _get_one(self, column: str, value: str) -> Optional[FundingComplianceRecord]:
        response = (
            self._client.table(self._table)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get funding compliance record: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return row_to_compliance_record(rows[0])

    def get(self, record_id: UUID) -> Optional[FundingComplianceRecord]:
        return self._get_one("record_id", str(record_id))

    def get_by_external_file_id(self, external_file_id: str) -> Optional[FundingComplianceRecord]:
        return self._get_one("external_file_id", external_file_id)

    def add(self, record: FundingComplianceRecord) -> FundingComplianceRecord:
        if self.get(record.record_id) is not None:
            raise InvalidArgumentError(f"Funding compliance record {record.record_id} already exists")

        stored = replace(record, version=0)
        response = self._client.table(self._table).insert(compliance_record_to_row(stored)).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to insert funding compliance record: {error}")
        return stored

    def remove(self, record_id: UUID) -> None:
        response = self._client.table(self._table).delete().eq("record_id", str(record_id)).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to delete funding compliance record: {error}")

    def save(
        self,
        record: FundingComplianceRecord,
        *,
        expected_version: int,
        expected_stage: FundingStage,
    ) -> FundingComplianceRecord:
        stored = replace(record, version=expected_version + 1)
        response = (
            self._client.table(self._table)
            .update(compliance_record_to_row(stored))
            .eq("record_id", str(record.record_id))
            .eq("version", expected_version)
            .eq("current_stage", expected_stage.value)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update funding compliance record: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            if self.get(record.record_id) is None:
                raise NotFoundError(f"Funding compliance record {record.record_id} not found")
            logger.warning(
                "Stage conflict saving funding record %s (expected %s, version %s)",
                record.record_id,
                expected_stage.value,
                expected_version,
            )
            raise ConcurrencyConflictError(
                f"Funding compliance record {record.record_id} was modified concurrently"
            )
        return stored


__all__ = [
    "ComplianceRecordRepository",
    "SupabaseComplianceRecordRepository",
]
