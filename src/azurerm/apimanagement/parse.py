"""Identifier codec for API Management API policies.

IDs follow the Azure Resource Manager layout:

    /subscriptions/{sub}/resourceGroups/{rg}/providers/Microsoft.ApiManagement
        /service/{service}/apis/{api}/policies/{policy}
"""

from __future__ import annotations

from dataclasses import dataclass

from azurerm.apimanagement.errors import IdParseError

PROVIDER_NAMESPACE = "Microsoft.ApiManagement"
DEFAULT_POLICY_NAME = "policy"


@dataclass(frozen=True)
class ApiPolicyId:
    """Parsed identifier of an API policy."""

    subscription_id: str
    resource_group: str
    service_name: str
    api_name: str
    policy_name: str = DEFAULT_POLICY_NAME

    def id(self) -> str:
        """Format the ARM resource ID."""
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/{PROVIDER_NAMESPACE}"
            f"/service/{self.service_name}"
            f"/apis/{self.api_name}"
            f"/policies/{self.policy_name}"
        )

    def __str__(self) -> str:
        segments = [
            f'Policy Name "{self.policy_name}"',
            f'Api Name "{self.api_name}"',
            f'Service Name "{self.service_name}"',
            f'Resource Group "{self.resource_group}"',
        ]
        return f"Api Policy: ({' / '.join(segments)})"


class _ResourceIdPath:
    """Key/value view over an ARM resource ID path."""

    def __init__(self, path: dict[str, str], subscription_id: str, resource_group: str):
        self.path = path
        self.subscription_id = subscription_id
        self.resource_group = resource_group

    @classmethod
    def parse(cls, value: str) -> "_ResourceIdPath":
        path = value.strip("/")
        components = path.split("/") if path else []
        if len(components) % 2 != 0:
            raise IdParseError(
                f"The number of path segments is not divisible by 2 in {path!r}"
            )

        pairs: dict[str, str] = {}
        for i in range(0, len(components), 2):
            key, val = components[i], components[i + 1]
            # ARM keys are unique within a path; keep the first occurrence
            pairs.setdefault(key, val)

        subscription_id = pairs.pop("subscriptions", "")
        resource_group = pairs.pop("resourceGroups", "")
        return cls(pairs, subscription_id, resource_group)

    def pop_segment(self, name: str) -> str:
        value = self.path.pop(name, "")
        if not value:
            raise IdParseError(f"ID was missing the `{name}` element")
        return value

    def validate_no_empty_segments(self, source: str) -> None:
        # `providers` is consumed implicitly by the namespace
        self.path.pop("providers", None)
        if self.path:
            raise IdParseError(f"ID contained more segments than required: {source!r}")


def parse_api_policy_id(value: str) -> ApiPolicyId:
    """Parse an API policy resource ID.

    Raises:
        IdParseError: when the ID is malformed.
    """
    try:
        raw = _ResourceIdPath.parse(value)
    except IdParseError as e:
        raise IdParseError(f"parsing {value!r} as an ApiPolicy ID: {e}") from e

    if not raw.subscription_id:
        raise IdParseError("ID was missing the `subscriptions` element")
    if not raw.resource_group:
        raise IdParseError("ID was missing the `resourceGroups` element")

    service_name = raw.pop_segment("service")
    api_name = raw.pop_segment("apis")
    policy_name = raw.pop_segment("policies")
    raw.validate_no_empty_segments(value)

    return ApiPolicyId(
        subscription_id=raw.subscription_id,
        resource_group=raw.resource_group,
        service_name=service_name,
        api_name=api_name,
        policy_name=policy_name,
    )


def validate_api_policy_id(value: object, key: str = "id") -> tuple[list[str], list[str]]:
    """Validate that a value is an API policy ID, returning (warnings, errors)."""
    if not isinstance(value, str):
        return [], [f"expected {key!r} to be a string"]
    try:
        parse_api_policy_id(value)
    except IdParseError as e:
        return [], [str(e)]
    return [], []
