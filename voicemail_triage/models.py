"""
Data models for the voicemail triage pipeline.

Uses Pydantic for robust data validation and serialization.
Per-run entities are immutable once produced.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Utterance(BaseModel):
    """A single speaker turn in a voicemail conversation."""
    
    role: str = Field(..., description="Speaker role (e.g. 'user', 'agent')")
    message: str = Field(..., description="What the speaker said")
    
    model_config = {"frozen": True}


class Transcript(BaseModel):
    """
    Full text of a voicemail, turn-annotated by speaker role.
    
    Attributes:
        utterances: Ordered speaker turns (empty when built from raw text)
        text: Joined form, one "role: message" line per turn
        conversation_id: External conversation identifier, when known
    """
    
    utterances: tuple[Utterance, ...] = Field(default=())
    text: str = Field(..., min_length=1)
    conversation_id: Optional[str] = Field(default=None)
    
    model_config = {"frozen": True}
    
    def __str__(self) -> str:
        return self.text


class FieldType(str, Enum):
    """Closed set of value types a request field can declare."""
    
    TEXT = "text"
    TEXT_AREA = "textarea"
    SELECT = "select"
    NUMBER = "number"
    DATE = "date"
    MULTI_VALUE = "multi_value"
    
    @classmethod
    def from_jira_schema(cls, schema: Optional[dict], field_id: str = "") -> "FieldType":
        """Map a service desk field schema onto a FieldType."""
        schema_type = (schema or {}).get("type", "")
        if schema_type == "array":
            return cls.MULTI_VALUE
        if schema_type == "number":
            return cls.NUMBER
        if schema_type in ("date", "datetime"):
            return cls.DATE
        if schema_type in ("option", "priority"):
            return cls.SELECT
        if field_id == "description" or "textarea" in (schema or {}).get("custom", ""):
            return cls.TEXT_AREA
        return cls.TEXT


class FieldSpec(BaseModel):
    """Declaration of one ticket attribute for a request type."""
    
    field_id: str = Field(..., description="Service desk field identifier")
    display_name: str = Field(default="", description="Human readable name")
    required: bool = Field(default=False)
    type: FieldType = Field(default=FieldType.TEXT)
    options: list[str] = Field(default_factory=list, description="Allowed values")
    
    model_config = {"frozen": True}
    
    def mentions(self, keyword: str) -> bool:
        """Check if the field id or display name contains a keyword."""
        keyword = keyword.lower()
        return keyword in self.field_id.lower() or keyword in self.display_name.lower()


class RequestType(BaseModel):
    """A tenant-defined classification bucket with its own field schema."""
    
    id: str = Field(..., description="Request type identifier")
    name: str = Field(..., description="Request type name")
    category: str = Field(default="", description="Grouping shown to the model")
    field_specs: list[FieldSpec] = Field(default_factory=list)
    
    model_config = {"frozen": True}
    
    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Service desk ids arrive as numbers or strings."""
        return str(v)
    
    def find_field(self, field_id: str) -> Optional[FieldSpec]:
        for spec in self.field_specs:
            if spec.field_id == field_id:
                return spec
        return None


class RequestTypeCatalog(BaseModel):
    """
    Ordered request types for one tenant, unique by identifier.
    
    Loaded once per pipeline run and treated as read-only.
    """
    
    request_types: list[RequestType] = Field(default_factory=list)
    
    model_config = {"frozen": True}
    
    @model_validator(mode="after")
    def check_unique_ids(self) -> "RequestTypeCatalog":
        ids = [rt.id for rt in self.request_types]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate request type ids: {duplicates}")
        return self
    
    def __len__(self) -> int:
        return len(self.request_types)
    
    def is_empty(self) -> bool:
        return not self.request_types
    
    def first(self) -> RequestType:
        """Deterministic fallback entry."""
        return self.request_types[0]
    
    def find(self, request_type_id: Any) -> Optional[RequestType]:
        """Find a request type by exact identifier."""
        wanted = str(request_type_id)
        for rt in self.request_types:
            if rt.id == wanted:
                return rt
        return None
    
    def find_by_name(self, name: str) -> Optional[RequestType]:
        """Find a request type by exact name."""
        for rt in self.request_types:
            if rt.name == name:
                return rt
        return None
    
    def ids(self) -> list[str]:
        return [rt.id for rt in self.request_types]
    
    def to_classification_context(self) -> str:
        """
        Generate a text representation of the catalog for LLM context.
        
        Returns:
            One line per request type with its id and category.
        """
        lines = []
        for rt in self.request_types:
            if rt.category:
                lines.append(f"- {rt.name} (id: {rt.id}, category: {rt.category})")
            else:
                lines.append(f"- {rt.name} (id: {rt.id})")
        return "\n".join(lines)


class Priority(str, Enum):
    """Ticket urgency."""
    
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TenantQuota(BaseModel):
    """Per-tenant ticket ceiling for the current subscription period."""
    
    tickets_used: int = Field(default=0, ge=0)
    max_tickets: int = Field(default=100, ge=0)
    
    model_config = {"frozen": True}
    
    def can_create(self) -> bool:
        """Check if one more ticket fits under the ceiling."""
        return self.tickets_used < self.max_tickets
    
    @property
    def remaining(self) -> int:
        return max(self.max_tickets - self.tickets_used, 0)


class TenantContext(BaseModel):
    """
    Everything the pipeline needs to know about the tenant it runs for.
    
    The ticketing fields override the environment connection settings
    when set.
    """
    
    tenant_id: str = Field(..., description="Tenant identifier")
    name: str = Field(default="")
    service_desk_id: str = Field(default="")
    base_url: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None)
    api_token: Optional[str] = Field(default=None)
    
    model_config = {"frozen": True}
    
    @field_validator("tenant_id", "service_desk_id", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str:
        return "" if v is None else str(v)


class Ticket(BaseModel):
    """The record committed to the service desk."""
    
    issue_key: str
    summary: str
    description: str
    request_type: RequestType
    priority: Optional[Priority] = Field(default=None, description="Unset when an existing issue was updated")
    field_values: dict[str, Any] = Field(default_factory=dict)
    created: bool = Field(default=True, description="False when an existing issue was updated")
    
    model_config = {"frozen": True}


class PipelineResult(BaseModel):
    """Outcome of one pipeline run, as reported to the caller."""
    
    success: bool
    issue_key: Optional[str] = None
    summary: Optional[str] = None
    priority: Optional[Priority] = None
    request_type: Optional[str] = None
    field_values: dict[str, Any] = Field(default_factory=dict)
    created: Optional[bool] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    stage: Optional[str] = None
    
    @classmethod
    def succeeded(cls, ticket: Ticket) -> "PipelineResult":
        return cls(
            success=True,
            issue_key=ticket.issue_key,
            summary=ticket.summary,
            priority=ticket.priority,
            request_type=ticket.request_type.name,
            field_values=ticket.field_values,
            created=ticket.created,
        )
    
    @classmethod
    def failed(cls, error_kind: str, message: str, stage: Optional[str] = None) -> "PipelineResult":
        return cls(success=False, error_kind=error_kind, message=message, stage=stage)
