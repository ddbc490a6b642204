"""Azure Resource Manager connection settings.

Settings can be provided via:
1. Environment variables (ARM_*), the same names the azurerm provider reads
2. CLI arguments (--subscription-id, --client-secret, etc.)
"""

from __future__ import annotations

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_RESOURCE_MANAGER_ENDPOINT = "https://management.azure.com"
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_API_VERSION = "2021-08-01"


class AzureSettings(BaseSettings):
    """Azure connection and authentication settings."""

    model_config = SettingsConfigDict(
        env_prefix="ARM_",
        extra="ignore",
    )

    # Target
    subscription_id: str = Field(
        default="",
        description="Subscription holding the API Management services",
    )

    # Endpoints
    resource_manager_endpoint: str = Field(
        default=DEFAULT_RESOURCE_MANAGER_ENDPOINT,
        description="Azure Resource Manager base URL",
    )
    authority_host: str = Field(
        default=DEFAULT_AUTHORITY_HOST,
        description="Azure Active Directory authority host",
    )
    api_version: str = Field(
        default=DEFAULT_API_VERSION,
        description="API Management REST API version",
    )
    timeout: float = Field(
        default=60.0,
        description="HTTP request timeout in seconds",
    )

    # Service principal (client credentials)
    tenant_id: str | None = Field(
        default=None,
        description="Azure AD tenant ID",
    )
    client_id: str | None = Field(
        default=None,
        description="Service principal application (client) ID",
    )
    client_secret: str | None = Field(
        default=None,
        description="Service principal client secret",
    )

    # Pre-acquired token, e.g. from `az account get-access-token`
    access_token: str | None = Field(
        default=None,
        description="Bearer token used as-is instead of client credentials",
    )

    @property
    def token_url(self) -> str:
        """Get the OAuth2 token endpoint for the tenant."""
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"

    @property
    def token_scope(self) -> str:
        """Get the OAuth2 scope for Resource Manager."""
        return f"{self.resource_manager_endpoint.rstrip('/')}/.default"

    @property
    def has_client_credentials(self) -> bool:
        """Check if service principal credentials are available."""
        return bool(self.tenant_id and self.client_id and self.client_secret)

    @property
    def has_access_token(self) -> bool:
        """Check if a static access token was provided."""
        return bool(self.access_token)

    def with_overrides(
        self,
        *,
        subscription_id: str | None = None,
        tenant_id: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        resource_manager_endpoint: str | None = None,
    ) -> "AzureSettings":
        """Create a new settings instance with CLI overrides applied."""
        return AzureSettings(
            subscription_id=subscription_id or self.subscription_id,
            resource_manager_endpoint=resource_manager_endpoint
            or self.resource_manager_endpoint,
            authority_host=self.authority_host,
            api_version=self.api_version,
            timeout=self.timeout,
            tenant_id=tenant_id or self.tenant_id,
            client_id=client_id or self.client_id,
            client_secret=client_secret or self.client_secret,
            access_token=self.access_token,
        )
