"""Shared fakes for the completion and service desk collaborators."""

from typing import Any, Optional, Union

import pytest

from voicemail_triage import fields, priority, summarizer
from voicemail_triage.models import (
    FieldSpec,
    FieldType,
    RequestType,
    RequestTypeCatalog,
    TenantContext,
    TenantQuota,
)
from voicemail_triage.quota import InMemoryQuotaStore


Reply = Union[str, Exception]


class ScriptedCompletion:
    """
    Completion fake answering per pipeline stage.
    
    Each reply is a string or an exception to raise. Stages without a
    scripted reply fail the test when called.
    """
    
    def __init__(
        self,
        summary: Optional[Reply] = None,
        classification: Optional[Reply] = None,
        fields: Optional[Reply] = None,
        priority: Optional[Reply] = None,
    ):
        self._replies = {
            "summary": summary,
            "classification": classification,
            "fields": fields,
            "priority": priority,
        }
        self.calls: list[dict[str, Any]] = []
    
    @staticmethod
    def _stage(user_prompt: str, system_prompt: Optional[str]) -> str:
        if system_prompt == summarizer.SYSTEM_PROMPT:
            return "summary"
        if system_prompt == fields.SYSTEM_PROMPT:
            return "fields"
        if system_prompt == priority.SYSTEM_PROMPT:
            return "priority"
        return "classification"
    
    def calls_for(self, stage: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["stage"] == stage]
    
    async def complete(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        stage = self._stage(user_prompt, system_prompt)
        self.calls.append({
            "stage": stage,
            "user_prompt": user_prompt,
            "system_prompt": system_prompt,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        reply = self._replies[stage]
        if reply is None:
            raise AssertionError(f"Unexpected completion call for stage '{stage}'")
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeTicketing:
    """In-memory service desk recording every call."""
    
    def __init__(
        self,
        request_types: list[RequestType],
        fields_by_type: Optional[dict[str, list[FieldSpec]]] = None,
        issue_key: str = "SD-101",
        catalog_error: Optional[Exception] = None,
        create_error: Optional[Exception] = None,
        update_error: Optional[Exception] = None,
    ):
        self.request_types = request_types
        self.fields_by_type = fields_by_type or {}
        self.issue_key = issue_key
        self.catalog_error = catalog_error
        self.create_error = create_error
        self.update_error = update_error
        self.created: list[dict[str, Any]] = []
        self.updated: list[dict[str, Any]] = []
    
    async def list_request_types(self, service_desk_id: str) -> list[RequestType]:
        if self.catalog_error:
            raise self.catalog_error
        return list(self.request_types)
    
    async def list_fields(self, service_desk_id: str, request_type_id: str) -> list[FieldSpec]:
        return list(self.fields_by_type.get(request_type_id, []))
    
    async def create_request(
        self,
        service_desk_id: str,
        request_type_id: str,
        field_values: dict[str, Any],
    ) -> str:
        if self.create_error:
            raise self.create_error
        self.created.append({
            "service_desk_id": service_desk_id,
            "request_type_id": request_type_id,
            "field_values": field_values,
        })
        return self.issue_key
    
    async def update_request(self, issue_key: str, summary: str, description: str) -> None:
        if self.update_error:
            raise self.update_error
        self.updated.append({
            "issue_key": issue_key,
            "summary": summary,
            "description": description,
        })


class CountingQuotaStore(InMemoryQuotaStore):
    """In-memory quota store counting increment calls."""
    
    def __init__(self, quotas: dict[str, TenantQuota]):
        super().__init__(quotas)
        self.increment_calls = 0
    
    async def increment_atomically(self, tenant_id: str) -> TenantQuota:
        self.increment_calls += 1
        return await super().increment_atomically(tenant_id)


@pytest.fixture
def billing_fraud_catalog() -> RequestTypeCatalog:
    return RequestTypeCatalog(request_types=[
        RequestType(id="1", name="Billing", category="Payments"),
        RequestType(id="2", name="Fraud", category="Security"),
    ])


@pytest.fixture
def tenant() -> TenantContext:
    return TenantContext(tenant_id="acme", name="Acme Corp", service_desk_id="2")


@pytest.fixture
def basic_fields() -> list[FieldSpec]:
    return [
        FieldSpec(field_id="summary", display_name="Summary", required=True),
        FieldSpec(
            field_id="description",
            display_name="Description",
            required=True,
            type=FieldType.TEXT_AREA,
        ),
        FieldSpec(
            field_id="components",
            display_name="Components",
            type=FieldType.MULTI_VALUE,
            options=["Cards", "Online banking"],
        ),
    ]

