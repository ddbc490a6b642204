"""Core domain models for API policies."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field


class PolicyContentFormat(str, Enum):
    """Format of the policy content sent to or returned by the API."""

    XML = "xml"
    XML_LINK = "xml-link"
    RAWXML = "rawxml"
    RAWXML_LINK = "rawxml-link"


class PolicyExportFormat(str, Enum):
    """Format requested when reading a policy back."""

    XML = "xml"
    RAWXML = "rawxml"


class InlineContent(BaseModel):
    """Policy supplied as an inline XML document."""

    kind: Literal["content"] = "content"
    value: str = Field(..., description="Raw policy XML")

    @property
    def format(self) -> PolicyContentFormat:
        return PolicyContentFormat.RAWXML


class LinkReference(BaseModel):
    """Policy supplied as a URI the service downloads."""

    kind: Literal["link"] = "link"
    uri: str = Field(..., description="Publicly reachable URL of the policy XML")

    @property
    def format(self) -> PolicyContentFormat:
        return PolicyContentFormat.RAWXML_LINK


PolicyBody = Union[InlineContent, LinkReference]


class PolicyContractProperties(BaseModel):
    """Properties block of a policy contract."""

    format: PolicyContentFormat | None = Field(None, description="Content format")
    value: str | None = Field(None, description="Policy content or link")


class PolicyContract(BaseModel):
    """ARM representation of an API policy."""

    id: str | None = Field(None, description="Fully qualified resource ID")
    name: str | None = Field(None, description="Policy name (always 'policy')")
    type: str | None = Field(None, description="ARM resource type")
    properties: PolicyContractProperties | None = Field(
        None, description="Policy content, absent on partial responses"
    )

    @classmethod
    def from_body(cls, body: PolicyBody) -> "PolicyContract":
        """Build the request contract for a write."""
        value = body.uri if isinstance(body, LinkReference) else body.value
        return cls(properties=PolicyContractProperties(format=body.format, value=value))

    def to_payload(self) -> dict[str, Any]:
        """Render the PUT request body."""
        payload: dict[str, Any] = {}
        if self.properties is not None:
            payload["properties"] = self.properties.model_dump(
                mode="json", exclude_none=True
            )
        return payload


class AuditRecord(BaseModel):
    """Audit log entry for a reconciliation operation."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    operation: str = Field(..., description="create, read, update, delete or import")
    address: str = Field(..., description="Resource address in configuration")
    resource_id: str | None = Field(None, description="Remote identifier, once known")
    outcome: str = Field(..., description="ok, removed or error")
    latency_ms: float = Field(..., description="Operation latency in milliseconds")
    error: str | None = Field(None, description="Error message for failed operations")
