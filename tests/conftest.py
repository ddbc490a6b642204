"""Pytest configuration and fixtures."""

import json
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from azurerm.apimanagement.client import ApiPoliciesClient
from azurerm.apimanagement.sdk import ProviderClients
from azurerm.apimanagement.settings import AzureSettings

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"
ENDPOINT = "https://management.example.test"

_POLICY_PATH = re.compile(
    r"^/subscriptions/(?P<sub>[^/]+)/resourceGroups/(?P<rg>[^/]+)"
    r"/providers/Microsoft\.ApiManagement/service/(?P<svc>[^/]+)"
    r"/apis/(?P<api>[^/]+)/policies/policy$"
)


def policy_id(rg: str, svc: str, api: str) -> str:
    return (
        f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{rg}"
        f"/providers/Microsoft.ApiManagement/service/{svc}/apis/{api}/policies/policy"
    )


def _arm_error(status: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(status, json={"error": {"code": code, "message": message}})


@dataclass
class FakeApiManagement:
    """In-memory stand-in for the ARM API policy endpoints."""

    # (rg, svc, api) -> stored value as returned by GET
    policies: dict[tuple[str, str, str], str] = field(default_factory=dict)
    # URL -> document the service downloads for rawxml-link
    links: dict[str, str] = field(default_factory=dict)
    # method -> (status, code, message), served once per entry
    failures: dict[str, list[tuple[int, str, str]]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)
    omit_id: bool = False

    def fail_next(self, method: str, status: int, code: str = "Error", message: str = "boom") -> None:
        self.failures.setdefault(method, []).append((status, code, message))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def calls(self, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method) and "/oauth2/" not in r.url.path
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.path.endswith("/oauth2/v2.0/token"):
            return httpx.Response(200, json={"access_token": "token-1", "expires_in": 3600})

        if self.failures.get(request.method):
            status, code, message = self.failures[request.method].pop(0)
            return _arm_error(status, code, message)

        match = _POLICY_PATH.match(request.url.path)
        if not match:
            return _arm_error(404, "NotFound", f"no route for {request.url.path}")
        key = (match["rg"], match["svc"], match["api"])

        if request.method == "GET":
            if key not in self.policies:
                return _arm_error(404, "ResourceNotFound", "Api policy not found.")
            return httpx.Response(200, json=self._contract(key, request.url.params.get("format", "xml")))

        if request.method == "PUT":
            props = json.loads(request.content)["properties"]
            if props["format"] == "rawxml-link":
                self.policies[key] = self.links.get(props["value"], "<policies />")
            else:
                self.policies[key] = props["value"]
            return httpx.Response(200, json=self._contract(key, "xml"))

        if request.method == "DELETE":
            if "If-Match" not in request.headers:
                return _arm_error(400, "InvalidRequest", "If-Match header is required")
            if key not in self.policies:
                return _arm_error(404, "ResourceNotFound", "Api policy not found.")
            del self.policies[key]
            return httpx.Response(200)

        return _arm_error(405, "MethodNotAllowed", request.method)

    def _contract(self, key: tuple[str, str, str], fmt: str) -> dict[str, Any]:
        body: dict[str, Any] = {
            "name": "policy",
            "type": "Microsoft.ApiManagement/service/apis/policies",
            "properties": {"format": fmt, "value": self.policies[key]},
        }
        if not self.omit_id:
            body["id"] = policy_id(*key)
        return body


@pytest.fixture
def fake_arm() -> FakeApiManagement:
    return FakeApiManagement()


@pytest.fixture
def azure_settings() -> AzureSettings:
    return AzureSettings(
        subscription_id=SUBSCRIPTION_ID,
        resource_manager_endpoint=ENDPOINT,
        tenant_id="tenant-1",
        client_id="client-1",
        client_secret="secret-1",
    )


@pytest.fixture
def open_meta(fake_arm, azure_settings):
    """Factory for ProviderClients wired to the fake API."""

    @asynccontextmanager
    async def _open():
        async with ApiPoliciesClient(azure_settings, transport=fake_arm.transport()) as client:
            yield ProviderClients(api_policies=client)

    return _open


@pytest.fixture
def policy_config() -> dict:
    """Configuration block for rg1/svc1/api1."""
    return {
        "resource_group_name": "rg1",
        "api_management_name": "svc1",
        "api_name": "api1",
        "xml_content": "<policies><inbound/></policies>",
    }


@pytest.fixture
def make_id():
    """Build the canonical policy ID the fake API returns."""
    return policy_id
