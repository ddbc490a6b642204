"""Persisted resource state.

The state file records, per configuration address, the remote identifier and
the last known attributes. It is the only handle kept between invocations.

Example:
    version: 1
    serial: 3
    resources:
      example:
        id: /subscriptions/.../service/svc1/apis/api1/policies/policy
        attributes:
          resource_group_name: rg1
          api_management_name: svc1
          api_name: api1
          xml_content: <policies><inbound/></policies>
          xml_link: ''
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class ResourceState(BaseModel):
    """Recorded state of one resource."""

    id: str = Field(..., description="Remote identifier")
    attributes: dict[str, Any] = Field(default_factory=dict)


class StateFile(BaseModel):
    """All tracked resources."""

    version: int = STATE_VERSION
    serial: int = 0
    resources: dict[str, ResourceState] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path) -> "StateFile":
        """Load state from disk; a missing file means nothing is tracked yet."""
        p = Path(path)
        if not p.exists():
            logger.debug("No state file at %s, starting empty", p)
            return cls()

        raw = yaml.safe_load(p.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"State file must be a YAML mapping: {path}")

        state = cls.model_validate(raw)
        if state.version != STATE_VERSION:
            raise ValueError(
                f"Unsupported state version {state.version} in {path} "
                f"(expected {STATE_VERSION})"
            )
        return state

    def save(self, path: str | Path) -> None:
        """Write state to disk, bumping the serial."""
        self.serial += 1
        Path(path).write_text(
            yaml.safe_dump(
                self.model_dump(mode="json"),
                default_flow_style=False,
                sort_keys=False,
            )
        )
        logger.debug("Wrote state serial=%d to %s", self.serial, path)

    def get(self, address: str) -> ResourceState | None:
        return self.resources.get(address)

    def put(self, address: str, state: ResourceState | None) -> None:
        """Record a resource; None drops it."""
        if state is None:
            self.remove(address)
        else:
            self.resources[address] = state

    def remove(self, address: str) -> None:
        self.resources.pop(address, None)

    def addresses(self) -> set[str]:
        return set(self.resources)
