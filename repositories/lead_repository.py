"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead aggregate:
load by id, insert, and a compare-and-swap save keyed on `version`.
No business rules (transitions, financing, scoring) belong here.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, List, Optional, Protocol
from uuid import UUID

from domain.errors import ConcurrencyConflictError, InvalidArgumentError, NotFoundError
from domain.lead import Lead
from repositories.client import get_supabase
from repositories.rows import lead_to_row, row_to_lead

logger = logging.getLogger(__name__)

# Supabase table name for Lead records.
# Keep this aligned with your database schema.
_LEADS_TABLE: str = "pipeline_leads"


class LeadRepository(Protocol):
    """Persistence collaborator contract for leads."""

    def get(self, lead_id: UUID) -> Optional[Lead]:
        ...

    def add(self, lead: Lead) -> Lead:
        """Insert a new lead (version 0). Raises InvalidArgumentError if the id exists."""
        ...

    def save(self, lead: Lead, *, expected_version: int) -> Lead:
        """
        Persist `lead` iff the stored version still equals expected_version.

        Returns the stored lead with version = expected_version + 1.
        Raises ConcurrencyConflictError when the stored version moved on.
        """
        ...

    def list_by_organization(self, organization_id: UUID) -> List[Lead]:
        ...


class SupabaseLeadRepository:
    """LeadRepository backed by a Supabase table."""

    def __init__(self, client: Any = None, table: str = _LEADS_TABLE) -> None:
        self._client = client if client is not None else get_supabase()
        self._table = table

    def get(self, lead_id: UUID) -> Optional[Lead]:
        response = (
            self._client.table(self._table)
            .select("*")
            .eq("lead_id", str(lead_id))
            .limit(1)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to get lead: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            return None
        return row_to_lead(rows[0])

    def add(self, lead: Lead) -> Lead:
        if self.get(lead.lead_id) is not None:
            raise InvalidArgumentError(f"Lead {lead.lead_id} already exists")

        stored = replace(lead, version=0)
        response = self._client.table(self._table).insert(lead_to_row(stored)).execute()
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to insert lead: {error}")
        return stored

    def save(self, lead: Lead, *, expected_version: int) -> Lead:
        stored = replace(lead, version=expected_version + 1)
        response = (
            self._client.table(self._table)
            .update(lead_to_row(stored))
            .eq("lead_id", str(lead.lead_id))
            .eq("version", expected_version)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to update lead: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            if self.get(lead.lead_id) is None:
                raise NotFoundError(f"Lead {lead.lead_id} not found")
            logger.warning("Version conflict saving lead %s (expected version %s)", lead.lead_id, expected_version)
            raise ConcurrencyConflictError(
                f"Lead {lead.lead_id} was modified concurrently (expected version {expected_version})"
            )
        return stored

    def list_by_organization(self, organization_id: UUID) -> List[Lead]:
        """All leads of an organization, highest score first (call-queue order)."""

        response = (
            self._client.table(self._table)
            .select("*")
            .eq("organization_id", str(organization_id))
            .order("score", desc=True)
            .execute()
        )
        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to list leads: {error}")

        rows = getattr(response, "data", None) or []
        return [row_to_lead(row) for row in rows]


__all__ = [
    "LeadRepository",
    "SupabaseLeadRepository",
]
