"""Plan/apply engine.

Refreshes recorded state against Azure, computes a plan by diffing the
desired configuration against that state, then drives the resource entry
points to converge.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from azurerm.apimanagement.audit import AuditLogger
from azurerm.apimanagement.errors import ApiPolicyError, ValidationError
from azurerm.apimanagement.models import WorkspaceConfig
from azurerm.apimanagement.sdk import ProviderClients, Resource, ResourceData
from azurerm.apimanagement.state import ResourceState, StateFile

logger = logging.getLogger(__name__)


@dataclass
class ResourceAction:
    """Action to perform on one resource address."""

    address: str
    action: str  # "create", "update", "replace", "delete"
    config: dict[str, Any] | None = None
    current: ResourceState | None = None
    changed: list[str] = field(default_factory=list)
    timeouts: dict[str, str] = field(default_factory=dict)


@dataclass
class Plan:
    """Plan of actions to converge Azure to the desired configuration."""

    to_create: list[ResourceAction] = field(default_factory=list)
    to_update: list[ResourceAction] = field(default_factory=list)
    to_replace: list[ResourceAction] = field(default_factory=list)
    to_delete: list[ResourceAction] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        """Check if there are any changes to apply."""
        return bool(self.to_create or self.to_update or self.to_replace or self.to_delete)

    def summary(self) -> str:
        """Get a human-readable summary of the plan."""
        lines = []

        if self.to_create:
            lines.append(f"API policies to create: {len(self.to_create)}")
            for action in self.to_create:
                lines.append(f"  + {action.address}")

        if self.to_update:
            lines.append(f"API policies to update in-place: {len(self.to_update)}")
            for action in self.to_update:
                lines.append(f"  ~ {action.address} ({', '.join(action.changed)})")

        if self.to_replace:
            lines.append(f"API policies to replace: {len(self.to_replace)}")
            for action in self.to_replace:
                lines.append(
                    f"  -/+ {action.address} (forces replacement: {', '.join(action.changed)})"
                )

        if self.to_delete:
            lines.append(f"API policies to destroy: {len(self.to_delete)}")
            for action in self.to_delete:
                lines.append(f"  - {action.address}")

        if not lines:
            lines.append("No changes. Infrastructure matches the configuration.")

        return "\n".join(lines)


@dataclass
class ApplyResult:
    """Result of applying a plan."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Check if apply completed without errors."""
        return len(self.errors) == 0

    def summary(self) -> str:
        """Get a human-readable summary of the result."""
        lines = []

        if self.created:
            lines.append(f"Created {len(self.created)}: {', '.join(self.created)}")
        if self.updated:
            lines.append(f"Updated {len(self.updated)}: {', '.join(self.updated)}")
        if self.replaced:
            lines.append(f"Replaced {len(self.replaced)}: {', '.join(self.replaced)}")
        if self.deleted:
            lines.append(f"Destroyed {len(self.deleted)}: {', '.join(self.deleted)}")

        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
            for err in self.errors:
                lines.append(f"  ! {err}")

        if not lines:
            lines.append("No changes applied")

        return "\n".join(lines)


def validate_config(resource: Resource, config: WorkspaceConfig) -> None:
    """Validate every configured block against the schema.

    Raises:
        ValidationError: listing every problem, before any network call.
    """
    errors: list[str] = []
    for address, block in sorted(config.api_policies.items()):
        errors.extend(f"{address}: {err}" for err in resource.validate(block.attributes()))
    if errors:
        raise ValidationError("invalid configuration: " + "; ".join(errors), errors=errors)


def _diff(resource: Resource, desired: dict[str, Any], current: ResourceState) -> list[str]:
    """Return the fields whose desired value differs from recorded state."""
    changed = []
    for key, spec in resource.schema.items():
        want = desired.get(key)
        if want is None:
            if spec.computed:
                continue
            want = spec.zero_value()
        have = current.attributes.get(key, spec.zero_value())
        if want == have:
            continue
        if spec.diff_suppress_func is not None and spec.diff_suppress_func(
            key, have, want, None
        ):
            continue
        changed.append(key)
    return changed


def compute_plan(resource: Resource, config: WorkspaceConfig, state: StateFile) -> Plan:
    """Compute the plan by diffing desired config against recorded state.

    Args:
        resource: Resource type being managed
        config: Desired configuration
        state: Recorded (ideally freshly refreshed) state

    Returns:
        Plan describing all changes needed
    """
    validate_config(resource, config)

    plan = Plan()
    force_new = set(resource.force_new_fields())

    for address, block in sorted(config.api_policies.items()):
        desired = block.attributes()
        timeouts = block.timeouts.as_dict() if block.timeouts else {}
        current = state.get(address)

        if current is None:
            plan.to_create.append(ResourceAction(
                address=address,
                action="create",
                config=desired,
                timeouts=timeouts,
            ))
            continue

        changed = _diff(resource, desired, current)
        replacing = [key for key in changed if key in force_new]
        if replacing:
            plan.to_replace.append(ResourceAction(
                address=address,
                action="replace",
                config=desired,
                current=current,
                changed=replacing,
                timeouts=timeouts,
            ))
        elif changed:
            plan.to_update.append(ResourceAction(
                address=address,
                action="update",
                config=desired,
                current=current,
                changed=changed,
                timeouts=timeouts,
            ))
        else:
            plan.unchanged.append(address)

    # Tracked but no longer configured
    for address in sorted(state.addresses() - config.get_addresses()):
        plan.to_delete.append(ResourceAction(
            address=address,
            action="delete",
            current=state.get(address),
        ))

    return plan


async def _audited(
    audit: AuditLogger,
    operation: str,
    address: str,
    d: ResourceData,
    call: Callable[[], Awaitable[None]],
) -> None:
    started = time.perf_counter()
    try:
        await call()
    except Exception as e:
        audit.log_error(
            operation=operation,
            address=address,
            error=str(e),
            latency_ms=(time.perf_counter() - started) * 1000,
            resource_id=d.id,
        )
        raise
    audit.log_operation(
        operation=operation,
        address=address,
        resource_id=d.id,
        outcome="ok" if d.id or operation == "delete" else "removed",
        latency_ms=(time.perf_counter() - started) * 1000,
        attributes=d.attributes(),
    )


async def refresh(
    resource: Resource,
    state: StateFile,
    meta: ProviderClients,
    audit: AuditLogger,
    config: WorkspaceConfig | None = None,
) -> list[str]:
    """Read every tracked resource, dropping those removed upstream.

    Returns:
        Addresses that were dropped from state.
    """
    dropped = []
    for address in sorted(state.addresses()):
        block = config.api_policies.get(address) if config else None
        timeouts = block.timeouts.as_dict() if block and block.timeouts else None
        d = resource.data(state=state.get(address), timeouts=timeouts)

        await _audited(audit, "read", address, d, lambda: resource.read(d, meta))

        snapshot = d.state()
        if snapshot is None:
            logger.info("%s no longer exists upstream, dropping from state", address)
            dropped.append(address)
        state.put(address, snapshot)
    return dropped


async def _create(
    resource: Resource,
    action: ResourceAction,
    state: StateFile,
    meta: ProviderClients,
    audit: AuditLogger,
) -> None:
    d = resource.data(config=action.config, timeouts=action.timeouts)
    try:
        await _audited(audit, "create", action.address, d, lambda: resource.create(d, meta))
    finally:
        # A failed read after a successful write still leaves a real resource
        if d.id:
            state.put(action.address, d.state())


async def _delete(
    resource: Resource,
    action: ResourceAction,
    state: StateFile,
    meta: ProviderClients,
    audit: AuditLogger,
) -> None:
    d = resource.data(state=action.current, timeouts=action.timeouts)
    await _audited(audit, "delete", action.address, d, lambda: resource.delete(d, meta))
    state.remove(action.address)


async def apply_plan(
    resource: Resource,
    plan: Plan,
    state: StateFile,
    meta: ProviderClients,
    audit: AuditLogger,
    dry_run: bool = False,
) -> ApplyResult:
    """Apply a plan, recording every outcome in state.

    Failures are collected per address and do not stop the remaining actions.
    """
    result = ApplyResult()

    # -------------------------------------------------------------------------
    # 1. Destroy resources no longer configured
    # -------------------------------------------------------------------------

    for action in plan.to_delete:
        if dry_run:
            logger.info("[DRY RUN] Would destroy: %s", action.address)
            result.deleted.append(action.address)
            continue

        try:
            await _delete(resource, action, state, meta, audit)
            result.deleted.append(action.address)
        except Exception as e:
            result.errors.append(f"Failed to destroy {action.address}: {e}")

    # -------------------------------------------------------------------------
    # 2. Replace resources whose key changed
    # -------------------------------------------------------------------------

    for action in plan.to_replace:
        if dry_run:
            logger.info("[DRY RUN] Would replace: %s", action.address)
            result.replaced.append(action.address)
            continue

        try:
            await _delete(resource, action, state, meta, audit)
            await _create(resource, action, state, meta, audit)
            result.replaced.append(action.address)
        except Exception as e:
            result.errors.append(f"Failed to replace {action.address}: {e}")

    # -------------------------------------------------------------------------
    # 3. Create new resources
    # -------------------------------------------------------------------------

    for action in plan.to_create:
        if dry_run:
            logger.info("[DRY RUN] Would create: %s", action.address)
            result.created.append(action.address)
            continue

        try:
            await _create(resource, action, state, meta, audit)
            result.created.append(action.address)
        except Exception as e:
            result.errors.append(f"Failed to create {action.address}: {e}")

    # -------------------------------------------------------------------------
    # 4. Update in place
    # -------------------------------------------------------------------------

    for action in plan.to_update:
        if dry_run:
            logger.info("[DRY RUN] Would update: %s", action.address)
            result.updated.append(action.address)
            continue

        d = resource.data(config=action.config, state=action.current, timeouts=action.timeouts)
        try:
            await _audited(audit, "update", action.address, d, lambda: resource.update(d, meta))
        except Exception as e:
            # prior state stays recorded so the change is planned again
            result.errors.append(f"Failed to update {action.address}: {e}")
            continue
        state.put(action.address, d.state())
        result.updated.append(action.address)

    return result


def destroy_plan(state: StateFile) -> Plan:
    """Plan the removal of everything tracked in state."""
    plan = Plan()
    for address in sorted(state.addresses()):
        plan.to_delete.append(ResourceAction(
            address=address,
            action="delete",
            current=state.get(address),
        ))
    return plan


async def import_resource(
    resource: Resource,
    state: StateFile,
    address: str,
    resource_id: str,
    meta: ProviderClients,
    audit: AuditLogger,
) -> ResourceState:
    """Adopt an existing remote resource under a configuration address.

    Raises:
        ApiPolicyError: when the address is already tracked or the object
            does not exist.
        IdParseError: when the ID is malformed (before any network call).
    """
    if state.get(address) is not None:
        raise ApiPolicyError(
            f"Resource already managed: {address} is already tracked in state"
        )
    if resource.importer is None:
        raise ApiPolicyError(f"{resource.type_name} does not support import")

    accepted = resource.importer.state(resource_id)

    d = resource.data(state=ResourceState(id=accepted))
    await _audited(audit, "import", address, d, lambda: resource.read(d, meta))

    snapshot = d.state()
    if snapshot is None:
        raise ApiPolicyError(
            f"Cannot import non-existent remote object: {resource_id} was not found"
        )
    state.put(address, snapshot)
    return snapshot
