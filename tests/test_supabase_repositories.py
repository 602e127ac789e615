"""
Tests for the Supabase-backed repositories.

A small fake of the supabase-py query builder (table/select/eq/order/limit/
insert/update/delete/execute) stands in for the network client, so the row mapping
and the compare-and-swap filters are exercised without a database.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from uuid import UUID

import pytest

from conftest import ORG_ID, T0
from domain import financing_workflow, lead_workflow
from domain.errors import ConcurrencyConflictError, InvalidArgumentError, NotFoundError
from domain.financing import FinancingType
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from domain.lead_workflow import CallOutcome, QualificationDecision, WorkflowPolicy
from domain.scoring import SignalType
from repositories.compliance_repository import SupabaseComplianceRecordRepository
from repositories.lead_repository import SupabaseLeadRepository
from repositories.rows import lead_to_row, milestone_column, parse_utc_datetime, row_to_lead


class FakeQuery:
    def __init__(self, table: "FakeTable", operation: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self._table = table
        self._operation = operation
        self._payload = payload
        self._filters: List[tuple] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    def select(self, _columns: str) -> "FakeQuery":
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def _matches(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self._filters)

    def execute(self) -> SimpleNamespace:
        self._table.queries.append((self._operation, list(self._filters)))

        if self._operation == "insert":
            self._table.rows.append(dict(self._payload))
            return SimpleNamespace(data=[dict(self._payload)], error=None)

        matched = [row for row in self._table.rows if self._matches(row)]
        if self._operation == "delete":
            self._table.rows = [row for row in self._table.rows if not self._matches(row)]
            return SimpleNamespace(data=[dict(row) for row in matched], error=None)
        if self._operation == "update":
            for row in matched:
                row.update(self._payload)
            return SimpleNamespace(data=[dict(row) for row in matched], error=None)

        if self._order is not None:
            column, desc = self._order
            matched.sort(key=lambda row: row[column], reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(data=[dict(row) for row in matched], error=None)


class FakeTable:
    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.queries: List[tuple] = []

    def select(self, columns: str) -> FakeQuery:
        return FakeQuery(self, "select").select(columns)

    def insert(self, payload: Dict[str, Any]) -> FakeQuery:
        return FakeQuery(self, "insert", payload)

    def update(self, payload: Dict[str, Any]) -> FakeQuery:
        return FakeQuery(self, "update", payload)

    def delete(self) -> FakeQuery:
        return FakeQuery(self, "delete")


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, FakeTable] = {}

    def table(self, name: str) -> FakeTable:
        return self.tables.setdefault(name, FakeTable())


@pytest.fixture
def client() -> FakeSupabase:
    return FakeSupabase()


def _lead(lead_id: str = "00000000-0000-0000-0000-000000000001"):
    return lead_workflow.new_lead(
        lead_id=UUID(lead_id),
        organization_id=ORG_ID,
        at=T0,
        actor="intake",
        source="website",
        metadata={"campaign": "spring"},
    )


def _self_funded_in_payment():
    policy = WorkflowPolicy()
    lead = _lead()
    lead = lead_workflow.record_signal(lead, SignalType.PAGE_VIEW, at=T0, actor="tracker")
    lead = lead_workflow.record_call_outcome(lead, CallOutcome.APPOINTMENT_SET, at=T0, actor="a", policy=policy)
    lead = lead_workflow.qualify_meeting(lead, True, None, at=T0, actor="a")
    lead = lead_workflow.decide_qualification(lead, QualificationDecision.PROCEED, at=T0, actor="a")
    lead = financing_workflow.choose_financing(lead, FinancingType.SELF_FUNDED, "1000", at=T0, actor="a")
    return financing_workflow.validate_offer(lead, "300", "30", at=T0, actor="a")


# --- Row mapping ---


def test_lead_row_round_trip_preserves_aggregate() -> None:
    lead = replace(_self_funded_in_payment(), score=27, version=4)

    restored = row_to_lead(lead_to_row(lead))

    assert restored == lead
    assert restored.financing.amount_paid == Decimal("300")
    assert restored.signals()[0].signal_type == SignalType.PAGE_VIEW


def test_parse_utc_datetime_accepts_z_suffix_and_naive() -> None:
    assert parse_utc_datetime("2026-01-01T09:00:00Z") == T0
    assert parse_utc_datetime("2026-01-01T09:00:00") == T0


def test_milestone_column_names() -> None:
    assert milestone_column(FundingStage.ENTRY_DECLARED) == "entry_declared_at_utc"
    assert milestone_column(FundingStage.SERVICE_VALIDATED) == "service_validated_at_utc"


# --- Lead repository ---


def test_lead_add_and_get(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)
    lead = _lead()

    stored = repo.add(lead)

    assert stored.version == 0
    assert repo.get(lead.lead_id) == stored
    assert repo.get(UUID("00000000-0000-0000-0000-0000000000ff")) is None


def test_lead_add_rejects_duplicate(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)
    repo.add(_lead())

    with pytest.raises(InvalidArgumentError):
        repo.add(_lead())


def test_lead_save_filters_on_expected_version(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)
    stored = repo.add(_lead())
    moved = lead_workflow.start_prospection(stored, at=T0 + timedelta(minutes=1), actor="a")

    saved = repo.save(moved, expected_version=0)

    assert saved.version == 1
    assert repo.get(stored.lead_id) == saved
    operation, filters = client.table("pipeline_leads").queries[-2]
    assert operation == "update"
    assert filters == [("lead_id", str(stored.lead_id)), ("version", 0)]


def test_lead_save_with_stale_version_conflicts(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)
    stored = repo.add(_lead())
    repo.save(lead_workflow.start_prospection(stored, at=T0, actor="a"), expected_version=0)

    stale = lead_workflow.record_signal(stored, SignalType.EMAIL_OPEN, at=T0, actor="tracker")

    with pytest.raises(ConcurrencyConflictError):
        repo.save(stale, expected_version=0)
    assert repo.get(stored.lead_id).status.value == "PROSPECTION"


def test_lead_save_missing_row_is_not_found(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)

    with pytest.raises(NotFoundError):
        repo.save(_lead(), expected_version=0)


def test_list_by_organization_orders_by_score(client: FakeSupabase) -> None:
    repo = SupabaseLeadRepository(client=client)
    repo.add(replace(_lead("00000000-0000-0000-0000-000000000001"), score=10))
    repo.add(replace(_lead("00000000-0000-0000-0000-000000000002"), score=40))

    leads = repo.list_by_organization(ORG_ID)

    assert [lead.score for lead in leads] == [40, 10]


def test_repository_surfaces_response_errors() -> None:
    class ErrorClient:
        def table(self, _name):
            return self

        def select(self, _columns):
            return self

        def eq(self, _column, _value):
            return self

        def limit(self, _count):
            return self

        def execute(self):
            return SimpleNamespace(data=None, error="permission denied")

    repo = SupabaseLeadRepository(client=ErrorClient())

    with pytest.raises(RuntimeError, match="permission denied"):
        repo.get(UUID("00000000-0000-0000-0000-000000000001"))


# --- Compliance record repository ---


def _record() -> FundingComplianceRecord:
    return FundingComplianceRecord.open(
        record_id=UUID("00000000-0000-0000-0000-0000000000f1"),
        lead_id=UUID("00000000-0000-0000-0000-000000000001"),
        received_at=T0,
        external_file_id="EDOF-1",
    )


def test_compliance_record_add_and_lookup(client: FakeSupabase) -> None:
    repo = SupabaseComplianceRecordRepository(client=client)
    stored = repo.add(_record())

    assert repo.get(stored.record_id) == stored
    assert repo.get_by_external_file_id("EDOF-1") == stored
    row = client.table("funding_compliance_records").rows[0]
    assert row["received_at_utc"] == T0.isoformat()
    assert row["pending_at_utc"] is None


def test_compliance_save_compares_version_and_stage(client: FakeSupabase) -> None:
    repo = SupabaseComplianceRecordRepository(client=client)
    stored = repo.add(_record())
    pending = stored.advance(FundingStage.PENDING, T0 + timedelta(days=1))

    saved = repo.save(pending, expected_version=0, expected_stage=FundingStage.RECEIVED)

    assert saved.version == 1
    assert repo.get(stored.record_id).milestone(FundingStage.PENDING) == T0 + timedelta(days=1)
    operation, filters = client.table("funding_compliance_records").queries[-2]
    assert operation == "update"
    assert ("current_stage", "RECEIVED") in filters
    assert ("version", 0) in filters


def test_compliance_concurrent_advance_loses(client: FakeSupabase) -> None:
    repo = SupabaseComplianceRecordRepository(client=client)
    stored = repo.add(_record())
    pending = stored.advance(FundingStage.PENDING, T0 + timedelta(days=1))
    repo.save(pending, expected_version=0, expected_stage=FundingStage.RECEIVED)

    with pytest.raises(ConcurrencyConflictError):
        repo.save(pending, expected_version=0, expected_stage=FundingStage.RECEIVED)


def test_compliance_record_remove_deletes_row(client: FakeSupabase) -> None:
    repo = SupabaseComplianceRecordRepository(client=client)
    stored = repo.add(_record())

    repo.remove(stored.record_id)

    assert repo.get(stored.record_id) is None
    assert client.table("funding_compliance_records").rows == []
    repo.remove(stored.record_id)
