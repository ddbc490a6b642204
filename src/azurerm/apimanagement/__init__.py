"""Azure API Management API policy resource."""

from azurerm.apimanagement.parse import ApiPolicyId, parse_api_policy_id
from azurerm.apimanagement.resource import (
    RESOURCE_TYPE,
    resource_api_management_api_policy,
)

__all__ = [
    "ApiPolicyId",
    "RESOURCE_TYPE",
    "parse_api_policy_id",
    "resource_api_management_api_policy",
]
