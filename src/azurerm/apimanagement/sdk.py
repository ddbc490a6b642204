"""Declarative resource building blocks.

A ``Resource`` bundles a field schema, operation timeouts, an importer and the
four entry points. Entry points receive a ``ResourceData`` (configuration
merged over prior state) and the ``ProviderClients`` used to reach Azure.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from azurerm.apimanagement.errors import IdParseError
from azurerm.apimanagement.state import ResourceState

if TYPE_CHECKING:
    from azurerm.apimanagement.client import ApiPoliciesClient

ValidateFunc = Callable[[Any, str], tuple[list[str], list[str]]]
DiffSuppressFunc = Callable[[str, str, str, "ResourceData"], bool]
EntryPoint = Callable[["ResourceData", "ProviderClients"], Awaitable[None]]

_DURATION_RE = re.compile(r"^(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as '30m', '1h30m' or '90s'."""
    match = _DURATION_RE.match(value.strip())
    if not value.strip() or not match:
        raise ValueError(f"invalid duration {value!r}, expected e.g. '30m' or '1h30m'")
    hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return timedelta(hours=hours, minutes=minutes, seconds=seconds)


def default_timeout(minutes: int) -> timedelta:
    return timedelta(minutes=minutes)


@dataclass
class Schema:
    """Declaration of one string configuration field."""

    required: bool = False
    optional: bool = False
    computed: bool = False
    force_new: bool = False
    conflicts_with: list[str] = field(default_factory=list)
    validate_func: ValidateFunc | None = None
    diff_suppress_func: DiffSuppressFunc | None = None

    def zero_value(self) -> str:
        return ""


@dataclass
class ResourceTimeout:
    """Default operation deadlines."""

    create: timedelta = field(default_factory=lambda: default_timeout(20))
    read: timedelta = field(default_factory=lambda: default_timeout(5))
    update: timedelta = field(default_factory=lambda: default_timeout(20))
    delete: timedelta = field(default_factory=lambda: default_timeout(20))

    def get(self, operation: str) -> timedelta:
        return getattr(self, operation)


@dataclass
class ResourceImporter:
    """Accepts an externally supplied ID before it is read."""

    state: Callable[[str], str]


def importer_validating_resource_id(validate: ValidateFunc) -> ResourceImporter:
    """Build an importer that rejects IDs `validate` reports errors for.

    The ID is passed through unchanged; Read populates everything else.

    Raises:
        IdParseError: joining the validation errors.
    """

    def state(resource_id: str) -> str:
        _, errors = validate(resource_id, "id")
        if errors:
            raise IdParseError("; ".join(errors))
        return resource_id

    return ResourceImporter(state=state)


@dataclass
class ProviderClients:
    """Clients and provider-level values handed to every entry point."""

    api_policies: "ApiPoliciesClient"

    @property
    def subscription_id(self) -> str:
        return self.api_policies.subscription_id


@dataclass
class Resource:
    """A managed resource type."""

    type_name: str
    schema: dict[str, Schema]
    create: EntryPoint
    read: EntryPoint
    update: EntryPoint
    delete: EntryPoint
    importer: ResourceImporter | None = None
    timeouts: ResourceTimeout = field(default_factory=ResourceTimeout)

    def validate(self, raw: dict[str, Any]) -> list[str]:
        """Validate a configuration block against the schema.

        Returns the list of error messages (empty when valid).
        """
        errors: list[str] = []

        for key in sorted(set(raw) - set(self.schema)):
            errors.append(f"An argument named {key!r} is not expected here.")

        for key, spec in self.schema.items():
            value = raw.get(key)
            if value is None:
                if spec.required:
                    errors.append(f"The argument {key!r} is required, but no definition was found.")
                continue

            if not isinstance(value, str):
                errors.append(f"{key}: expected type string, got {type(value).__name__}")
                continue

            for other in spec.conflicts_with:
                if raw.get(other) not in (None, ""):
                    errors.append(f"{key!r}: conflicts with {other}")

            if spec.validate_func is not None:
                _, field_errors = spec.validate_func(value, key)
                errors.extend(field_errors)

        return errors

    def force_new_fields(self) -> list[str]:
        return [key for key, spec in self.schema.items() if spec.force_new]

    def data(
        self,
        config: dict[str, Any] | None = None,
        state: ResourceState | None = None,
        timeouts: dict[str, str] | None = None,
    ) -> "ResourceData":
        return ResourceData(self, config=config, state=state, timeouts=timeouts)


class ResourceData:
    """Per-invocation view of one resource: configuration merged over state.

    Configured values win. Computed fields absent from configuration keep
    their prior state value; other absent fields take their zero value.
    """

    def __init__(
        self,
        resource: Resource,
        config: dict[str, Any] | None = None,
        state: ResourceState | None = None,
        timeouts: dict[str, str] | None = None,
    ):
        self._resource = resource
        self._id = state.id if state else ""
        self._is_new = state is None or not state.id
        self._timeouts = {op: parse_duration(v) for op, v in (timeouts or {}).items()}

        prior = dict(state.attributes) if state else {}
        self._values: dict[str, Any] = {}
        for key, spec in resource.schema.items():
            if config is not None and config.get(key) is not None:
                self._values[key] = config[key]
            elif config is None or spec.computed:
                self._values[key] = prior.get(key, spec.zero_value())
            else:
                self._values[key] = spec.zero_value()

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, value: str) -> None:
        self._id = value

    def is_new_resource(self) -> bool:
        return self._is_new

    def get(self, key: str) -> Any:
        if key not in self._resource.schema:
            raise KeyError(f"Invalid address to get: {key!r}")
        return self._values[key]

    def set(self, key: str, value: Any) -> None:
        if key not in self._resource.schema:
            raise KeyError(f"Invalid address to set: {key!r}")
        self._values[key] = value

    def timeout(self, operation: str) -> float:
        """Deadline in seconds for an operation ('create', 'read', ...)."""
        if operation in self._timeouts:
            return self._timeouts[operation].total_seconds()
        return self._resource.timeouts.get(operation).total_seconds()

    def attributes(self) -> dict[str, Any]:
        return dict(self._values)

    def state(self) -> ResourceState | None:
        """Snapshot for persistence; None once the resource is gone."""
        if not self._id:
            return None
        return ResourceState(id=self._id, attributes=self.attributes())
