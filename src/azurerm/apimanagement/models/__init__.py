"""Domain models."""

from .config import ApiPolicyConfig, TimeoutsConfig, WorkspaceConfig
from .core import (
    AuditRecord,
    InlineContent,
    LinkReference,
    PolicyBody,
    PolicyContentFormat,
    PolicyContract,
    PolicyContractProperties,
    PolicyExportFormat,
)

__all__ = [
    "ApiPolicyConfig",
    "AuditRecord",
    "InlineContent",
    "LinkReference",
    "PolicyBody",
    "PolicyContentFormat",
    "PolicyContract",
    "PolicyContractProperties",
    "PolicyExportFormat",
    "TimeoutsConfig",
    "WorkspaceConfig",
]
