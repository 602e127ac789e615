"""
Pipeline orchestrator.

One method per business event. Each mutating call:
1. Loads the current aggregate snapshot (NotFoundError if missing)
2. Validates and applies the pure domain transition against that snapshot
3. Recomputes the triage score
4. Saves with a compare-and-swap on the snapshot's version
5. On a concurrency conflict, re-reads and re-validates (bounded retries),
   because preconditions may no longer hold on the fresh snapshot
6. After commit, informs the notification collaborator; a notifier failure
   is logged and never undoes or re-runs the transition

Rejections are raised as PipelineError subclasses carrying the unchanged
current aggregate (see domain/errors.py).
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Tuple
from uuid import UUID, uuid4

from domain import financing_workflow, lead_workflow
from domain.errors import ConcurrencyConflictError, NotFoundError, PipelineError
from domain.financing import FinancingType, SelfFundedFinancing, ThirdPartyFinancing
from domain.funding_compliance import FundingComplianceRecord, FundingStage
from domain.lead import Lead, LeadStatus
from domain.lead_workflow import CallOutcome, QualificationDecision, WorkflowPolicy
from domain.scoring import ScoreBreakdown, ScoringConfig, SignalType, explain_score
from domain.time import require_utc_timestamp, utc_now
from repositories.compliance_repository import ComplianceRecordRepository
from repositories.lead_repository import LeadRepository
from repositories.memory import InMemoryComplianceRecordRepository, InMemoryLeadRepository
from services.notification_service import LoggingNotifier, TransitionEvent, TransitionNotifier
from services.settings import PipelineSettings

logger = logging.getLogger(__name__)

SYSTEM_ACTOR: str = "system"


class PipelineOrchestrator:
    """Facade over the lead state machine, financing workflow and compliance tracker."""

    def __init__(
        self,
        leads: LeadRepository,
        compliance_records: ComplianceRecordRepository,
        *,
        policy: Optional[WorkflowPolicy] = None,
        scoring: Optional[ScoringConfig] = None,
        notifier: Optional[TransitionNotifier] = None,
        conflict_retries: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if conflict_retries < 0:
            raise ValueError("conflict_retries must be >= 0")
        self.leads = leads
        self.compliance_records = compliance_records
        self.policy = policy or WorkflowPolicy()
        self.scoring = scoring or ScoringConfig()
        self.notifier = notifier or LoggingNotifier()
        self.conflict_retries = conflict_retries
        self._clock = clock

    # --- Core helpers ---

    def _now(self) -> datetime:
        now = self._clock()
        require_utc_timestamp("now", now)
        return now

    def _rescore(self, lead: Lead, now: datetime) -> Lead:
        score = explain_score(
            lead.signals(),
            lead.last_response_at,
            now,
            self.scoring,
            call_attempts=lead.call_attempts,
        ).score
        return lead if score == lead.score else replace(lead, score=score)

    def _load_lead(self, lead_id: UUID) -> Lead:
        lead = self.leads.get(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found")
        return lead

    def _load_record(self, record_id: UUID) -> FundingComplianceRecord:
        record = self.compliance_records.get(record_id)
        if record is None:
            raise NotFoundError(f"Funding compliance record {record_id} not found")
        return record

    def _notify(self, before: Lead, after: Lead, now: datetime) -> None:
        if before.status == after.status:
            return
        event = TransitionEvent(
            lead_id=after.lead_id,
            from_status=before.status,
            to_status=after.status,
            occurred_at=now,
            action=after.history[-1].action if after.history else "",
        )
        try:
            self.notifier.notify(event)
        except Exception:
            logger.exception("Notifier failed for lead %s (%s -> %s)", after.lead_id, before.status.value, after.status.value)

    def _mutate_lead(
        self,
        lead_id: UUID,
        operation: str,
        apply: Callable[[Lead, datetime], Lead],
    ) -> Lead:
        """Read / validate / write loop with bounded retries on version conflicts."""

        for attempt in range(self.conflict_retries + 1):
            current = self._load_lead(lead_id)
            now = self._now()
            try:
                updated = apply(current, now)
            except PipelineError as exc:
                raise exc.with_current(current)

            updated = self._rescore(updated, now)
            try:
                saved = self.leads.save(updated, expected_version=current.version)
            except ConcurrencyConflictError:
                logger.warning(
                    "Conflict on lead %s during %s (attempt %d/%d), retrying from a fresh read",
                    lead_id,
                    operation,
                    attempt + 1,
                    self.conflict_retries + 1,
                )
                continue

            logger.info(
                "Lead %s %s: %s/%s -> %s/%s (score %d)",
                lead_id,
                operation,
                current.status.value,
                current.sales_stage.value if current.sales_stage else None,
                saved.status.value,
                saved.sales_stage.value if saved.sales_stage else None,
                saved.score,
            )
            self._notify(current, saved, now)
            return saved

        raise ConcurrencyConflictError(
            f"Lead {lead_id} kept changing during {operation}; gave up after "
            f"{self.conflict_retries + 1} attempts",
            current=self.leads.get(lead_id),
        )

    # --- Intake and calling loop ---

    def register_lead(
        self,
        organization_id: UUID,
        *,
        source: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        responded_at: Optional[datetime] = None,
        lead_id: Optional[UUID] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> Lead:
        now = self._now()
        lead = lead_workflow.new_lead(
            lead_id=lead_id or uuid4(),
            organization_id=organization_id,
            at=now,
            actor=actor,
            source=source,
            metadata=metadata,
            responded_at=responded_at,
        )
        stored = self.leads.add(self._rescore(lead, now))
        logger.info("Lead %s registered for organization %s (score %d)", stored.lead_id, organization_id, stored.score)
        return stored

    def get_lead(self, lead_id: UUID) -> Lead:
        return self._load_lead(lead_id)

    def start_prospection(self, lead_id: UUID, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "start_prospection",
            lambda lead, now: lead_workflow.start_prospection(lead, at=now, actor=actor),
        )

    def record_call_outcome(self, lead_id: UUID, outcome: CallOutcome, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "record_call_outcome",
            lambda lead, now: lead_workflow.record_call_outcome(
                lead, outcome, at=now, actor=actor, policy=self.policy
            ),
        )

    def record_signal(
        self,
        lead_id: UUID,
        signal_type: SignalType,
        occurred_at: Optional[datetime] = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> Lead:
        """Append a behavioral signal (observed at occurred_at, default now) and rescore."""

        return self._mutate_lead(
            lead_id,
            "record_signal",
            lambda lead, now: lead_workflow.record_signal(
                lead, signal_type, at=occurred_at or now, actor=actor
            ),
        )

    def list_leads(self, organization_id: UUID) -> List[Lead]:
        """Call queue: every lead of the organization, highest score first."""

        return self.leads.list_by_organization(organization_id)

    def explain_score(self, lead_id: UUID) -> ScoreBreakdown:
        """Read-only: itemised score of the lead as of now."""

        lead = self._load_lead(lead_id)
        return explain_score(
            lead.signals(), lead.last_response_at, self._now(), self.scoring, call_attempts=lead.call_attempts
        )

    # --- Lead state machine ---

    def qualify_meeting(
        self,
        lead_id: UUID,
        honored: bool,
        absence_reason: Optional[str] = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> Lead:
        return self._mutate_lead(
            lead_id,
            "qualify_meeting",
            lambda lead, now: lead_workflow.qualify_meeting(lead, honored, absence_reason, at=now, actor=actor),
        )

    def decide_qualification(
        self, lead_id: UUID, decision: QualificationDecision, *, actor: str = SYSTEM_ACTOR
    ) -> Lead:
        return self._mutate_lead(
            lead_id,
            "decide_qualification",
            lambda lead, now: lead_workflow.decide_qualification(lead, decision, at=now, actor=actor),
        )

    def process_follow_up(self, lead_id: UUID, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "process_follow_up",
            lambda lead, now: lead_workflow.process_follow_up(lead, at=now, actor=actor, policy=self.policy),
        )

    def disqualify_lead(self, lead_id: UUID, reason: str, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "disqualify_lead",
            lambda lead, now: lead_workflow.disqualify(lead, reason, at=now, actor=actor),
        )

    def reopen_lead(self, lead_id: UUID, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "reopen_lead",
            lambda lead, now: lead_workflow.reopen(lead, at=now, actor=actor),
        )

    # --- Financing sub-workflow ---

    def choose_financing(
        self,
        lead_id: UUID,
        financing_type: FinancingType,
        agreed_total: Optional[Any] = None,
        *,
        actor: str = SYSTEM_ACTOR,
    ) -> Lead:
        return self._mutate_lead(
            lead_id,
            "choose_financing",
            lambda lead, now: financing_workflow.choose_financing(
                lead, financing_type, agreed_total, at=now, actor=actor
            ),
        )

    def validate_offer(
        self, lead_id: UUID, amount: Any, min_deposit_percent: Any, *, actor: str = SYSTEM_ACTOR
    ) -> Lead:
        return self._mutate_lead(
            lead_id,
            "validate_offer",
            lambda lead, now: financing_workflow.validate_offer(
                lead, amount, min_deposit_percent, at=now, actor=actor
            ),
        )

    def record_payment(self, lead_id: UUID, amount_paid: Any, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "record_payment",
            lambda lead, now: financing_workflow.record_payment(lead, amount_paid, at=now, actor=actor),
        )

    def set_funding_account_status(self, lead_id: UUID, is_active: bool, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "set_funding_account_status",
            lambda lead, now: financing_workflow.set_funding_account_status(lead, is_active, at=now, actor=actor),
        )

    def validate_placement_test(self, lead_id: UUID, score: int, *, actor: str = SYSTEM_ACTOR) -> Lead:
        return self._mutate_lead(
            lead_id,
            "validate_placement_test",
            lambda lead, now: financing_workflow.validate_placement_test(
                lead, score, at=now, actor=actor, policy=self.policy
            ),
        )

    def validate_funding_file(
        self,
        lead_id: UUID,
        *,
        external_file_id: Optional[str] = None,
        actor: str = SYSTEM_ACTOR,
    ) -> Tuple[Lead, FundingComplianceRecord]:
        """
        Accept the funding-body dossier, sign the lead and open its compliance record.

        The record is inserted at RECEIVED before the lead's compare-and-swap;
        nothing references it until the signed lead commits. If the lead
        write fails the record is removed again, so a signed lead always
        points at an existing record.
        """

        current = self._load_lead(lead_id)
        now = self._now()
        try:
            _, record = financing_workflow.validate_funding_file(
                current,
                record_id=uuid4(),
                external_file_id=external_file_id,
                at=now,
                actor=actor,
            )
        except PipelineError as exc:
            raise exc.with_current(current)

        record = self.compliance_records.add(record)

        def apply(lead: Lead, at: datetime) -> Lead:
            signed, _ = financing_workflow.validate_funding_file(
                lead,
                record_id=record.record_id,
                external_file_id=external_file_id,
                at=at,
                actor=actor,
            )
            return signed

        try:
            lead = self._mutate_lead(lead_id, "validate_funding_file", apply)
        except Exception:
            self._discard_record(record)
            raise

        logger.info(
            "Funding compliance record %s opened for lead %s at %s",
            record.record_id,
            lead.lead_id,
            record.current_stage.value,
        )
        return lead, record

    def _discard_record(self, record: FundingComplianceRecord) -> None:
        try:
            self.compliance_records.remove(record.record_id)
        except Exception:
            logger.exception(
                "Could not remove unreferenced funding record %s for lead %s", record.record_id, record.lead_id
            )

    # --- Funding-compliance tracker ---

    def get_compliance_record(self, record_id: UUID) -> FundingComplianceRecord:
        return self._load_record(record_id)

    def find_compliance_record(self, external_file_id: str) -> Optional[FundingComplianceRecord]:
        return self.compliance_records.get_by_external_file_id(external_file_id)

    def advance_stage(
        self, record_id: UUID, target_stage: FundingStage, *, actor: str = SYSTEM_ACTOR
    ) -> FundingComplianceRecord:
        """
        Move a compliance record to exactly its next stage.

        The write is a compare-and-swap on current_stage: if another writer
        advanced the record first, the retry re-reads it and the now-stale
        request is rejected with IllegalTransitionError.
        """

        for attempt in range(self.conflict_retries + 1):
            current = self._load_record(record_id)
            now = self._now()
            try:
                updated = current.advance(target_stage, now)
            except PipelineError as exc:
                logger.warning(
                    "Rejected stage change on record %s: %s -> %s",
                    record_id,
                    current.current_stage.value,
                    target_stage.value,
                )
                raise exc.with_current(current)

            try:
                saved = self.compliance_records.save(
                    updated, expected_version=current.version, expected_stage=current.current_stage
                )
            except ConcurrencyConflictError:
                logger.warning(
                    "Conflict on funding record %s advancing to %s (attempt %d/%d)",
                    record_id,
                    target_stage.value,
                    attempt + 1,
                    self.conflict_retries + 1,
                )
                continue

            logger.info(
                "Funding record %s advanced %s -> %s by %s",
                record_id,
                current.current_stage.value,
                saved.current_stage.value,
                actor,
            )
            return saved

        raise ConcurrencyConflictError(
            f"Funding compliance record {record_id} kept changing; gave up after "
            f"{self.conflict_retries + 1} attempts",
            current=self.compliance_records.get(record_id),
        )

    # --- Billing gate ---

    def is_billable(self, record_id: UUID) -> bool:
        """True iff the record reached SERVICE_VALIDATED or INVOICED."""

        return self._load_record(record_id).is_billable

    def is_lead_billable(self, lead_id: UUID) -> bool:
        """
        Billing eligibility for a lead's engagement.

        Only SIGNED leads are billable. Self-funded engagements have no
        compliance record and are billable once signed; third-party-funded
        ones defer to their record's stage.
        """

        lead = self._load_lead(lead_id)
        if lead.status != LeadStatus.SIGNED:
            return False
        if isinstance(lead.financing, SelfFundedFinancing):
            return True
        if isinstance(lead.financing, ThirdPartyFinancing) and lead.financing.compliance_record_id is not None:
            return self.is_billable(lead.financing.compliance_record_id)
        return False


def build_orchestrator(
    settings: PipelineSettings, *, notifier: Optional[TransitionNotifier] = None
) -> PipelineOrchestrator:
    """Wire an orchestrator with the storage backend selected in settings."""

    if settings.storage == "supabase":
        from repositories.compliance_repository import SupabaseComplianceRecordRepository
        from repositories.lead_repository import SupabaseLeadRepository

        leads: LeadRepository = SupabaseLeadRepository()
        records: ComplianceRecordRepository = SupabaseComplianceRecordRepository()
    else:
        leads = InMemoryLeadRepository()
        records = InMemoryComplianceRecordRepository()

    return PipelineOrchestrator(
        leads,
        records,
        policy=settings.policy,
        scoring=settings.scoring,
        notifier=notifier,
        conflict_retries=settings.conflict_retries,
    )


__all__ = [
    "SYSTEM_ACTOR",
    "PipelineOrchestrator",
    "build_orchestrator",
]
