"""
Transcript-to-ticket pipeline coordinator.

Sequences the stages:
1. Normalize the raw event into a transcript
2. Summarize the transcript
3. Classify against the tenant's request type catalog
4. Update the known issue, if the conversation already has one, or:
5. Synthesize field values and priority (concurrently)
6. Check the tenant quota, create the ticket and consume quota

Summarization, classification, field synthesis and priority degrade to
safe defaults. Malformed input, an empty catalog, catalog fetch failures,
an exhausted quota and ticketing failures end the run with a structured
failure result. Once a ticket exists, ledger and quota write failures are
logged and the run still succeeds.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional

from .classifier import RequestTypeClassifier
from .committer import IssueLedger, TicketCommitter
from .errors import PipelineError, QuotaExceededError, QuotaRaceError, StorageError
from .fields import SUMMARY_PREFIX, FieldValueSynthesizer
from .llm_client import CompletionClient
from .models import (
    PipelineResult,
    RequestType,
    RequestTypeCatalog,
    TenantContext,
    Ticket,
    Transcript,
)
from .priority import PriorityClassifier
from .quota import QuotaGuard, QuotaStore
from .summarizer import Summarizer
from .ticketing import TicketingClient
from .transcript import normalize_transcript


logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """States of a pipeline run."""
    
    NORMALIZING = "normalizing"
    SUMMARIZING = "summarizing"
    CLASSIFYING = "classifying"
    SYNTHESIZING = "synthesizing"
    QUOTA_CHECK = "quota_check"
    COMMITTING = "committing"


class PipelineCoordinator:
    """
    Run the voicemail pipeline for one tenant's service desk.
    
    Collaborators are injected; the coordinator holds no per-run state, so
    one instance can serve concurrent runs.
    """
    
    def __init__(
        self,
        completion: CompletionClient,
        ticketing: TicketingClient,
        quota_store: QuotaStore,
        ledger: Optional[IssueLedger] = None,
    ):
        self._ticketing = ticketing
        self._quota_store = quota_store
        self._ledger = ledger or IssueLedger()
        
        self._summarizer = Summarizer(completion)
        self._classifier = RequestTypeClassifier(completion)
        self._fields = FieldValueSynthesizer(completion)
        self._priority = PriorityClassifier(completion)
    
    async def _load_catalog(self, tenant: TenantContext) -> RequestTypeCatalog:
        request_types = await self._ticketing.list_request_types(tenant.service_desk_id)
        return RequestTypeCatalog(request_types=request_types)
    
    async def _load_fields(self, tenant: TenantContext, request_type: RequestType) -> RequestType:
        if request_type.field_specs:
            return request_type
        specs = await self._ticketing.list_fields(tenant.service_desk_id, request_type.id)
        return request_type.model_copy(update={"field_specs": specs})
    
    def _remember(self, tenant: TenantContext, transcript: Transcript, issue_key: str) -> None:
        try:
            self._ledger.record(tenant.tenant_id, transcript.conversation_id, issue_key)
        except StorageError as e:
            logger.error(
                f"Ticket {issue_key} committed but not recorded for conversation "
                f"{transcript.conversation_id}: {e}"
            )
    
    async def process_transcript(
        self,
        raw_event: Any,
        tenant: TenantContext,
        issue_key: Optional[str] = None,
    ) -> PipelineResult:
        """
        Turn one voicemail event into a ticket.
        
        Args:
            raw_event: Verified event payload or raw transcript string.
            tenant: Tenant the voicemail belongs to.
            issue_key: Existing issue to update instead of creating one.
        
        Returns:
            PipelineResult, successful or carrying the terminal error kind.
        """
        stage = PipelineStage.NORMALIZING
        logger.info(f"Processing voicemail for tenant {tenant.tenant_id}")
        
        try:
            transcript = normalize_transcript(raw_event)
            
            stage = PipelineStage.SUMMARIZING
            summary = await self._summarizer.summarize(transcript)
            
            stage = PipelineStage.CLASSIFYING
            catalog = await self._load_catalog(tenant)
            request_type = await self._classifier.classify(summary, catalog)
            request_type = await self._load_fields(tenant, request_type)
            
            ticket_summary = f"{SUMMARY_PREFIX}{summary}"
            committer = TicketCommitter(self._ticketing, tenant.service_desk_id)
            known_key = issue_key or self._ledger.lookup(
                tenant.tenant_id, transcript.conversation_id
            )
            
            if known_key:
                # Updates carry summary and description only and never consume quota
                stage = PipelineStage.COMMITTING
                committed_key = await committer.update(known_key, ticket_summary, transcript.text)
                field_values, priority, created = {}, None, False
                self._remember(tenant, transcript, committed_key)
            else:
                stage = PipelineStage.SYNTHESIZING
                field_values, priority = await asyncio.gather(
                    self._fields.synthesize(transcript, summary, request_type.field_specs),
                    self._priority.classify(transcript, summary),
                )
                
                stage = PipelineStage.QUOTA_CHECK
                guard = QuotaGuard(self._quota_store, tenant.tenant_id)
                async with guard.hold():
                    quota = await guard.load()
                    if not guard.can_create():
                        raise QuotaExceededError(
                            f"Tenant {tenant.tenant_id} has reached its ticket limit "
                            f"({quota.tickets_used}/{quota.max_tickets})"
                        )
                    
                    stage = PipelineStage.COMMITTING
                    committed_key = await committer.create(request_type, field_values, priority)
                    created = True
                    self._remember(tenant, transcript, committed_key)
                    
                    try:
                        await guard.increment()
                    except (QuotaRaceError, StorageError) as e:
                        logger.error(f"Ticket {committed_key} created but quota not consumed: {e}")
        
        except PipelineError as e:
            logger.error(f"Pipeline failed during {stage.value}: {e.kind}: {e}")
            return PipelineResult.failed(e.kind, str(e), stage=stage.value)
        
        ticket = Ticket(
            issue_key=committed_key,
            summary=ticket_summary,
            description=transcript.text,
            request_type=request_type,
            priority=priority,
            field_values=field_values,
            created=created,
        )
        if created:
            logger.info(
                f"Created ticket {ticket.issue_key} ({request_type.name}, "
                f"priority {priority.value}) for tenant {tenant.tenant_id}"
            )
        else:
            logger.info(f"Updated ticket {ticket.issue_key} for tenant {tenant.tenant_id}")
        return PipelineResult.succeeded(ticket)
