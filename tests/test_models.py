"""Tests for data models."""

import pytest
from pydantic import ValidationError

from voicemail_triage.models import (
    FieldSpec,
    FieldType,
    PipelineResult,
    Priority,
    RequestType,
    RequestTypeCatalog,
    TenantContext,
    TenantQuota,
    Ticket,
    Transcript,
)


class TestTranscript:
    """Tests for Transcript model."""
    
    def test_empty_text_rejected(self):
        with pytest.raises(ValidationError):
            Transcript(text="")
    
    def test_immutable(self):
        transcript = Transcript(text="user: hi")
        with pytest.raises(ValidationError):
            transcript.text = "changed"


class TestFieldType:
    """Tests for service desk schema mapping."""
    
    @pytest.mark.parametrize("schema,field_id,expected", [
        ({"type": "array", "items": "option"}, "customfield_1", FieldType.MULTI_VALUE),
        ({"type": "number"}, "customfield_2", FieldType.NUMBER),
        ({"type": "datetime"}, "duedate", FieldType.DATE),
        ({"type": "option"}, "customfield_3", FieldType.SELECT),
        ({"type": "priority"}, "priority", FieldType.SELECT),
        ({"type": "string"}, "description", FieldType.TEXT_AREA),
        (
            {"type": "string", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:textarea"},
            "customfield_4",
            FieldType.TEXT_AREA,
        ),
        ({"type": "string"}, "summary", FieldType.TEXT),
        (None, "summary", FieldType.TEXT),
    ])
    def test_from_jira_schema(self, schema, field_id, expected):
        assert FieldType.from_jira_schema(schema, field_id) is expected


class TestFieldSpec:
    """Tests for FieldSpec model."""
    
    def test_mentions_id_or_name(self):
        spec = FieldSpec(field_id="customfield_10", display_name="Issue Summary")
        assert spec.mentions("summary") is True
        assert spec.mentions("description") is False


class TestRequestTypeCatalog:
    """Tests for RequestTypeCatalog model."""
    
    @pytest.fixture
    def catalog(self):
        return RequestTypeCatalog(request_types=[
            RequestType(id=1, name="Billing", category="Payments"),
            RequestType(id="2", name="Fraud"),
        ])
    
    def test_ids_coerced_to_str(self, catalog):
        assert catalog.ids() == ["1", "2"]
    
    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate"):
            RequestTypeCatalog(request_types=[
                RequestType(id="1", name="Billing"),
                RequestType(id=1, name="Payments"),
            ])
    
    def test_find_by_id(self, catalog):
        assert catalog.find(2).name == "Fraud"
        assert catalog.find("3") is None
    
    def test_find_by_name_is_exact(self, catalog):
        assert catalog.find_by_name("Fraud").id == "2"
        assert catalog.find_by_name("fraud") is None
    
    def test_first_and_len(self, catalog):
        assert catalog.first().name == "Billing"
        assert len(catalog) == 2
        assert catalog.is_empty() is False
        assert RequestTypeCatalog().is_empty() is True
    
    def test_classification_context(self, catalog):
        """Test catalog context generation for LLM."""
        assert catalog.to_classification_context() == (
            "- Billing (id: 1, category: Payments)\n"
            "- Fraud (id: 2)"
        )


class TestRequestType:
    """Tests for RequestType model."""
    
    def test_find_field(self):
        rt = RequestType(
            id="7",
            name="Fraud",
            field_specs=[FieldSpec(field_id="priority", type=FieldType.SELECT)],
        )
        assert rt.find_field("priority").type is FieldType.SELECT
        assert rt.find_field("labels") is None


class TestTenantQuota:
    """Tests for TenantQuota model."""
    
    def test_can_create(self):
        assert TenantQuota(tickets_used=99, max_tickets=100).can_create() is True
        assert TenantQuota(tickets_used=100, max_tickets=100).can_create() is False
    
    def test_remaining_never_negative(self):
        assert TenantQuota(tickets_used=7, max_tickets=5).remaining == 0
        assert TenantQuota(tickets_used=2, max_tickets=5).remaining == 3
    
    def test_negative_usage_rejected(self):
        with pytest.raises(ValidationError):
            TenantQuota(tickets_used=-1)


class TestTenantContext:
    """Tests for TenantContext model."""
    
    def test_ids_coerced(self):
        tenant = TenantContext(tenant_id=42, service_desk_id=None)
        assert tenant.tenant_id == "42"
        assert tenant.service_desk_id == ""


class TestPipelineResult:
    """Tests for PipelineResult model."""
    
    def test_succeeded(self):
        ticket = Ticket(
            issue_key="SD-1",
            summary="AI Voicemail: lost card",
            description="user: lost card",
            request_type=RequestType(id="2", name="Fraud"),
            priority=Priority.HIGH,
            field_values={"summary": "AI Voicemail: lost card"},
        )
        
        result = PipelineResult.succeeded(ticket)
        
        assert result.success is True
        assert result.issue_key == "SD-1"
        assert result.request_type == "Fraud"
        assert result.priority is Priority.HIGH
        assert result.created is True
        assert result.error_kind is None
    
    def test_failed(self):
        result = PipelineResult.failed("QuotaExceededError", "limit reached", stage="quota_check")
        
        assert result.success is False
        assert result.issue_key is None
        assert result.error_kind == "QuotaExceededError"
        assert result.stage == "quota_check"
    
    def test_json_output(self):
        result = PipelineResult.failed("MalformedInputError", "empty transcript")
        
        dumped = result.model_dump(mode="json", exclude_none=True)
        
        assert dumped == {
            "success": False,
            "field_values": {},
            "error_kind": "MalformedInputError",
            "message": "empty transcript",
        }
