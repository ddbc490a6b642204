"""Azure Resource Manager client for API Management API policies.

Wraps the ARM REST endpoints under
``/service/{service}/apis/{api}/policies/policy``:
- GET (with export format)
- PUT (create or update)
- DELETE
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from azurerm.apimanagement.models import PolicyContract, PolicyExportFormat
from azurerm.apimanagement.parse import DEFAULT_POLICY_NAME, PROVIDER_NAMESPACE
from azurerm.apimanagement.settings import AzureSettings

logger = logging.getLogger(__name__)


class ManagementError(Exception):
    """Base exception for Resource Manager API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        response: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.response = response


class AuthError(ManagementError):
    """Authentication or authorization failed."""

    pass


class NotFoundError(ManagementError):
    """Resource not found."""

    pass


class ConflictError(ManagementError):
    """Resource is in a conflicting state."""

    pass


def response_was_not_found(error: BaseException | None) -> bool:
    """Check whether an error represents a 404 from the API."""
    return isinstance(error, NotFoundError)


@dataclass
class TokenInfo:
    """OAuth token information."""

    access_token: str
    expires_at: float

    def is_valid(self, leeway: int = 30) -> bool:
        """Check if token is still valid."""
        return time.time() < (self.expires_at - leeway)


class ApiPoliciesClient:
    """Async client for the API Management API policy endpoints."""

    def __init__(
        self,
        settings: AzureSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._token: TokenInfo | None = None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ApiPoliciesClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self._settings.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def settings(self) -> AzureSettings:
        """Get settings."""
        return self._settings

    @property
    def subscription_id(self) -> str:
        return self._settings.subscription_id

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def authenticate(self) -> None:
        """Obtain an access token for Resource Manager.

        A static access token takes precedence over client credentials.
        """
        if self._settings.has_access_token:
            self._token = TokenInfo(
                access_token=self._settings.access_token or "",
                expires_at=float("inf"),
            )
        elif self._settings.has_client_credentials:
            await self._authenticate_client_credentials()
        else:
            raise AuthError(
                "No credentials provided. Set ARM_TENANT_ID/ARM_CLIENT_ID/"
                "ARM_CLIENT_SECRET or ARM_ACCESS_TOKEN"
            )

    async def _authenticate_client_credentials(self) -> None:
        """Authenticate using the client credentials flow."""
        data = {
            "grant_type": "client_credentials",
            "client_id": self._settings.client_id,
            "client_secret": self._settings.client_secret,
            "scope": self._settings.token_scope,
        }

        logger.debug(
            "Authenticating with client credentials: %s", self._settings.client_id
        )

        response = await self._request("POST", self._settings.token_url, data=data)

        if response.status_code != 200:
            raise AuthError(
                f"Client credentials authentication failed: {response.text}",
                status_code=response.status_code,
            )

        payload = response.json()
        self._token = TokenInfo(
            access_token=payload["access_token"],
            expires_at=time.time() + float(payload.get("expires_in", 3600)),
        )
        logger.info("Authenticated as service principal: %s", self._settings.client_id)

    async def _ensure_token(self) -> str:
        """Ensure we have a valid token."""
        if not self._token or not self._token.is_valid():
            await self.authenticate()
        return self._token.access_token

    async def _headers(self, if_match: str | None = None) -> dict[str, str]:
        """Get request headers with auth token."""
        token = await self._ensure_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if if_match:
            headers["If-Match"] = if_match
        return headers

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("ApiPoliciesClient must be used as an async context manager")
        return self._client

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request; transport failures surface as ManagementError."""
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ManagementError(f"{method} {url} failed: {type(e).__name__}: {e}") from e

    def _policy_url(self, resource_group: str, service_name: str, api_name: str) -> str:
        return (
            f"{self._settings.resource_manager_endpoint.rstrip('/')}"
            f"/subscriptions/{_segment(self.subscription_id)}"
            f"/resourceGroups/{_segment(resource_group)}"
            f"/providers/{PROVIDER_NAMESPACE}"
            f"/service/{_segment(service_name)}"
            f"/apis/{_segment(api_name)}"
            f"/policies/{DEFAULT_POLICY_NAME}"
        )

    def _handle_response(
        self,
        response: httpx.Response,
        expected_status: list[int] | None = None,
    ) -> Any:
        """Handle API response."""
        expected = expected_status or [200]

        if response.status_code in expected:
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        code, message = _error_details(response)
        body = _json_or_none(response)

        if response.status_code == 404:
            raise NotFoundError(
                f"Resource not found: {message}",
                status_code=404,
                code=code,
                response=body,
            )

        if response.status_code == 409:
            raise ConflictError(
                f"Conflict: {message}",
                status_code=409,
                code=code,
                response=body,
            )

        if response.status_code in (401, 403):
            raise AuthError(
                f"Authentication expired or not authorized: {message}",
                status_code=response.status_code,
                code=code,
                response=body,
            )

        raise ManagementError(
            f"Unexpected response {response.status_code}: {message}",
            status_code=response.status_code,
            code=code,
            response=body,
        )

    # -------------------------------------------------------------------------
    # API Policies
    # -------------------------------------------------------------------------

    async def get(
        self,
        resource_group: str,
        service_name: str,
        api_name: str,
        export_format: PolicyExportFormat = PolicyExportFormat.XML,
    ) -> PolicyContract:
        """Get the policy of an API."""
        url = self._policy_url(resource_group, service_name, api_name)
        params = {
            "api-version": self._settings.api_version,
            "format": export_format.value,
        }
        response = await self._request(
            "GET", url, headers=await self._headers(), params=params
        )
        data = self._handle_response(response)
        return PolicyContract.model_validate(data or {})

    async def create_or_update(
        self,
        resource_group: str,
        service_name: str,
        api_name: str,
        parameters: PolicyContract,
        if_match: str = "",
    ) -> PolicyContract:
        """Create or replace the policy of an API."""
        url = self._policy_url(resource_group, service_name, api_name)
        params = {"api-version": self._settings.api_version}

        logger.debug(
            "Putting API policy: %s/%s/%s", resource_group, service_name, api_name
        )
        response = await self._request(
            "PUT",
            url,
            headers=await self._headers(if_match=if_match or None),
            params=params,
            json=parameters.to_payload(),
        )
        data = self._handle_response(response, expected_status=[200, 201])
        logger.info(
            "Put API policy: %s/%s/%s", resource_group, service_name, api_name
        )
        return PolicyContract.model_validate(data or {})

    async def delete(
        self,
        resource_group: str,
        service_name: str,
        api_name: str,
        if_match: str = "",
    ) -> None:
        """Delete the policy of an API.

        The API requires an If-Match header; an empty etag means any version.
        """
        url = self._policy_url(resource_group, service_name, api_name)
        params = {"api-version": self._settings.api_version}

        logger.debug(
            "Deleting API policy: %s/%s/%s", resource_group, service_name, api_name
        )
        response = await self._request(
            "DELETE",
            url,
            headers=await self._headers(if_match=if_match or "*"),
            params=params,
        )
        self._handle_response(response, expected_status=[200, 204])
        logger.info(
            "Deleted API policy: %s/%s/%s", resource_group, service_name, api_name
        )


def _segment(value: str) -> str:
    return quote(value, safe="")


def _json_or_none(response: httpx.Response) -> dict | None:
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _error_details(response: httpx.Response) -> tuple[str | None, str]:
    """Extract (code, message) from an ARM error body."""
    body = _json_or_none(response)
    if body and isinstance(body.get("error"), dict):
        error = body["error"]
        return error.get("code"), error.get("message") or response.text
    return None, response.text or response.reason_phrase
