"""
In-memory repositories.

Same contracts as the Supabase repositories, including the compare-and-swap
semantics, guarded by a lock so concurrent callers in one process behave the
way they would against the database. Used for local runs and tests.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional
from uuid import UUID

from domain.errors import ConcurrencyConflictError, InvalidArgumentError, NotFoundError
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from domain.lead import Lead


class InMemoryLeadRepository:
    def __init__(self) -> None:
        self._leads: Dict[UUID, Lead] = {}
        self._lock = threading.Lock()

    def get(self, lead_id: UUID) -> Optional[Lead]:
        with self._lock:
            return self._leads.get(lead_id)

    def add(self, lead: Lead) -> Lead:
        with self._lock:
            if lead.lead_id in self._leads:
                raise InvalidArgumentError(f"Lead {lead.lead_id} already exists")
            stored = replace(lead, version=0)
            self._leads[lead.lead_id] = stored
            return stored

    def save(self, lead: Lead, *, expected_version: int) -> Lead:
        with self._lock:
            current = self._leads.get(lead.lead_id)
            if current is None:
                raise NotFoundError(f"Lead {lead.lead_id} not found")
            if current.version != expected_version:
                raise ConcurrencyConflictError(
                    f"Lead {lead.lead_id} was modified concurrently (expected version {expected_version}, "
                    f"found {current.version})"
                )
            stored = replace(lead, version=expected_version + 1)
            self._leads[lead.lead_id] = stored
            return stored

    def list_by_organization(self, organization_id: UUID) -> List[Lead]:
        with self._lock:
            leads = [lead for lead in self._leads.values() if lead.organization_id == organization_id]
        return sorted(leads, key=lambda lead: lead.score, reverse=True)


class InMemoryComplianceRecordRepository:
    def __init__(self) -> None:
        self._records: Dict[UUID, FundingComplianceRecord] = {}
        self._lock = threading.Lock()

    def get(self, record_id: UUID) -> Optional[FundingComplianceRecord]:
        with self._lock:
            return self._records.get(record_id)

    def get_by_external_file_id(self, external_file_id: str) -> Optional[FundingComplianceRecord]:
        with self._lock:
            for record in self._records.values():
                if record.external_file_id == external_file_id:
                    return record
        return None

    def add(self, record: FundingComplianceRecord) -> FundingComplianceRecord:
        with self._lock:
            if record.record_id in self._records:
                raise InvalidArgumentError(f"Funding compliance record {record.record_id} already exists")
            stored = replace(record, version=0)
            self._records[record.record_id] = stored
            return stored

    def remove(self, record_id: UUID) -> None:
        with self._lock:
            self._records.pop(record_id, None)

    def save(
        self,
        record: FundingComplianceRecord,
        *,
        expected_version: int,
        expected_stage: FundingStage,
    ) -> FundingComplianceRecord:
        with self._lock:
            current = self._records.get(record.record_id)
            if current is None:
                raise NotFoundError(f"Funding compliance record {record.record_id} not found")
            if current.version != expected_version or current.current_stage != expected_stage:
                raise ConcurrencyConflictError(
                    f"Funding compliance record {record.record_id} was modified concurrently "
                    f"(expected {expected_stage.value}, found {current.current_stage.value})"
                )
            stored = replace(record, version=expected_version + 1)
            self._records[record.record_id] = stored
            return stored


__all__ = [
    "InMemoryLeadRepository",
    "InMemoryComplianceRecordRepository",
]
