"""Pydantic models for the YAML configuration file.

Example YAML structure:
    api_policies:
      example:
        resource_group_name: rg1
        api_management_name: svc1
        api_name: api1
        xml_content: |
          <policies><inbound><base /></inbound></policies>
        timeouts:
          create: 45m

      linked:
        resource_group_name: rg1
        api_management_name: svc1
        api_name: api2
        xml_link: ${POLICY_BASE_URL}/api2.xml   # supports env vars
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


# Pattern for ${VAR} and ${VAR:-default} interpolation
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}")


def _resolve_env_str(s: str) -> str:
    """Resolve environment variable placeholders in a string."""
    def repl(m: re.Match[str]) -> str:
        var = m.group(1)
        default = m.group(3)
        val = os.getenv(var)
        if val is None or val == "":
            return default if default is not None else ""
        return val

    # Resolve repeatedly until stable (handles nested defaults)
    prev = None
    cur = s
    for _ in range(5):
        if cur == prev:
            break
        prev = cur
        cur = _ENV_PATTERN.sub(repl, cur)
    return cur


def _resolve_env(value: Any) -> Any:
    """Recursively resolve environment variables in a data structure."""
    if isinstance(value, str):
        return _resolve_env_str(value)
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    return value


class TimeoutsConfig(BaseModel):
    """Per-resource operation timeout overrides (e.g. '30m', '1h30m')."""

    model_config = ConfigDict(extra="forbid")

    create: str | None = None
    read: str | None = None
    update: str | None = None
    delete: str | None = None

    def as_dict(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class ApiPolicyConfig(BaseModel):
    """Configuration block of a single API policy."""

    model_config = ConfigDict(extra="forbid")

    resource_group_name: str = Field(..., description="Resource group of the service")
    api_management_name: str = Field(..., description="API Management service name")
    api_name: str = Field(..., description="API the policy is attached to")
    xml_content: str | None = Field(
        default=None,
        description="Inline policy XML (conflicts with xml_link)",
    )
    xml_link: str | None = Field(
        default=None,
        description="URL of the policy XML (conflicts with xml_content)",
    )
    timeouts: TimeoutsConfig | None = Field(
        default=None,
        description="Operation timeout overrides",
    )

    def attributes(self) -> dict[str, Any]:
        """Return the schema fields that were set in configuration."""
        return self.model_dump(exclude_none=True, exclude={"timeouts"})


class WorkspaceConfig(BaseModel):
    """Top-level configuration: every API policy managed from one file."""

    api_policies: dict[str, ApiPolicyConfig] = Field(
        default_factory=dict,
        description="API policies keyed by address",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "WorkspaceConfig":
        """Load configuration from a YAML file with env var interpolation."""
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        raw = yaml.safe_load(p.read_text())
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must be a YAML mapping: {path}")

        # Resolve environment variables
        resolved = _resolve_env(raw)

        return cls.model_validate(resolved)

    def get_addresses(self) -> set[str]:
        """Get all resource addresses defined in config."""
        return set(self.api_policies)
