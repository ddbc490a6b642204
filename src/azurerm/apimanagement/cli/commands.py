"""API policy CLI commands.

Commands:
    apim-policy plan <config.yaml>
    apim-policy apply <config.yaml>
    apim-policy refresh
    apim-policy import <address> <id>
    apim-policy destroy
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from azurerm.apimanagement.audit import AuditLogger, configure_audit_logging
from azurerm.apimanagement.client import ApiPoliciesClient, AuthError, ManagementError
from azurerm.apimanagement.config import get_settings
from azurerm.apimanagement.engine import (
    ApplyResult,
    Plan,
    apply_plan,
    compute_plan,
    destroy_plan,
    import_resource,
    refresh,
)
from azurerm.apimanagement.errors import ApiPolicyError, IdParseError, ValidationError
from azurerm.apimanagement.models import WorkspaceConfig
from azurerm.apimanagement.resource import resource_api_management_api_policy
from azurerm.apimanagement.sdk import ProviderClients
from azurerm.apimanagement.settings import AzureSettings
from azurerm.apimanagement.state import ResourceState, StateFile

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="apim-policy",
    help="Manage Azure API Management API policies declaratively",
    add_completion=False,
)

ConfigArg = Annotated[
    Path,
    typer.Argument(
        help="Path to the API policy configuration YAML file",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
]
StateOpt = Annotated[
    Optional[Path],
    typer.Option("--state", "-s", help="State file path"),
]
SubscriptionOpt = Annotated[
    Optional[str],
    typer.Option("--subscription-id", help="Azure subscription ID"),
]
TenantOpt = Annotated[
    Optional[str],
    typer.Option("--tenant-id", help="Azure AD tenant ID"),
]
ClientIdOpt = Annotated[
    Optional[str],
    typer.Option("--client-id", help="Service principal client ID"),
]
ClientSecretOpt = Annotated[
    Optional[str],
    typer.Option("--client-secret", help="Service principal client secret"),
]
VerboseOpt = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def _configure_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    settings = get_settings()
    configure_audit_logging(
        log_level=logging.DEBUG if verbose else settings.log_level,
        json_format=settings.environment != "development",
        service_name=settings.service_name,
    )
    # Quiet down httpx
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _build_settings(
    subscription_id: str | None,
    tenant_id: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> AzureSettings:
    """Build settings from environment and CLI overrides."""
    settings = AzureSettings().with_overrides(
        subscription_id=subscription_id,
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
    )
    if not settings.subscription_id:
        typer.secho(
            "Error: no subscription. Use --subscription-id or ARM_SUBSCRIPTION_ID.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(1)
    return settings


def _open_client(settings: AzureSettings) -> ApiPoliciesClient:
    return ApiPoliciesClient(settings)


def _audit_logger() -> AuditLogger:
    settings = get_settings()
    return AuditLogger(
        enabled=settings.audit_enabled,
        log_attributes=settings.audit_log_attributes,
    )


def _state_path(state: Path | None) -> Path:
    return state or get_settings().state_path


def _load_config(config_path: Path) -> WorkspaceConfig:
    try:
        return WorkspaceConfig.from_yaml(config_path)
    except Exception as e:
        typer.secho(f"Error loading config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _load_state(path: Path) -> StateFile:
    try:
        return StateFile.load(path)
    except Exception as e:
        typer.secho(f"Error loading state: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _run(coro, verbose: bool):
    """Run an async operation, mapping failures to exit code 1."""
    try:
        return asyncio.run(coro)
    except AuthError as e:
        typer.secho(f"Authentication failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValidationError as e:
        typer.secho("Invalid configuration:", fg=typer.colors.RED, err=True)
        for err in e.errors:
            typer.secho(f"  ! {err}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except (ApiPolicyError, IdParseError, ManagementError) as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except TimeoutError:
        typer.secho("Error: operation timed out", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except Exception as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        if verbose:
            import traceback

            traceback.print_exc()
        raise typer.Exit(1)


async def _async_plan(
    settings: AzureSettings,
    config: WorkspaceConfig,
    state: StateFile,
) -> Plan:
    resource = resource_api_management_api_policy()
    async with _open_client(settings) as client:
        meta = ProviderClients(api_policies=client)
        await refresh(resource, state, meta, _audit_logger(), config=config)
        return compute_plan(resource, config, state)


async def _async_apply(
    settings: AzureSettings,
    config: WorkspaceConfig | None,
    state: StateFile,
    dry_run: bool,
) -> tuple[Plan, ApplyResult]:
    resource = resource_api_management_api_policy()
    audit = _audit_logger()
    async with _open_client(settings) as client:
        meta = ProviderClients(api_policies=client)

        typer.echo("Refreshing state...")
        await refresh(resource, state, meta, audit, config=config)

        if config is None:
            plan = destroy_plan(state)
        else:
            plan = compute_plan(resource, config, state)
        typer.echo("\n" + plan.summary())

        if not plan.has_changes:
            return plan, ApplyResult()

        if dry_run:
            typer.secho("\n[DRY RUN] No changes applied", fg=typer.colors.YELLOW)

        result = await apply_plan(resource, plan, state, meta, audit, dry_run=dry_run)
        return plan, result


@app.command("plan")
def plan(
    config_path: ConfigArg,
    state: StateOpt = None,
    subscription_id: SubscriptionOpt = None,
    tenant_id: TenantOpt = None,
    client_id: ClientIdOpt = None,
    client_secret: ClientSecretOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Show the changes apply would make.

    Recorded state is refreshed first so resources removed outside this tool
    are planned for re-creation. The state file is not written.

    Example:
        apim-policy plan policies.yaml
    """
    _configure_logging(verbose)

    settings = _build_settings(subscription_id, tenant_id, client_id, client_secret)
    config = _load_config(config_path)
    current = _load_state(_state_path(state))

    typer.echo(f"Planning {len(config.api_policies)} API policies "
               f"in subscription {settings.subscription_id}")

    result = _run(_async_plan(settings, config, current), verbose)
    typer.echo("\n" + result.summary())


@app.command("apply")
def apply(
    config_path: ConfigArg,
    state: StateOpt = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run", "-n", help="Show what would be done without making changes"
        ),
    ] = False,
    subscription_id: SubscriptionOpt = None,
    tenant_id: TenantOpt = None,
    client_id: ClientIdOpt = None,
    client_secret: ClientSecretOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Create, update or destroy API policies to match configuration.

    This command is idempotent - running it multiple times has the same effect.

    Example:
        apim-policy apply policies.yaml --dry-run
        apim-policy apply policies.yaml --state prod.state.yaml
    """
    _configure_logging(verbose)

    settings = _build_settings(subscription_id, tenant_id, client_id, client_secret)
    config = _load_config(config_path)
    state_path = _state_path(state)
    current = _load_state(state_path)

    typer.echo(f"Applying {len(config.api_policies)} API policies "
               f"in subscription {settings.subscription_id}")

    _, result = _run(_async_apply(settings, config, current, dry_run), verbose)

    # Partial progress is still recorded
    if not dry_run:
        current.save(state_path)

    typer.echo("\n" + result.summary())

    if not result.success:
        raise typer.Exit(1)


@app.command("destroy")
def destroy(
    state: StateOpt = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Show what would be destroyed"),
    ] = False,
    subscription_id: SubscriptionOpt = None,
    tenant_id: TenantOpt = None,
    client_id: ClientIdOpt = None,
    client_secret: ClientSecretOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Destroy every API policy tracked in state.

    Example:
        apim-policy destroy --state prod.state.yaml
    """
    _configure_logging(verbose)

    settings = _build_settings(subscription_id, tenant_id, client_id, client_secret)
    state_path = _state_path(state)
    current = _load_state(state_path)

    _, result = _run(_async_apply(settings, None, current, dry_run), verbose)

    if not dry_run:
        current.save(state_path)

    typer.echo("\n" + result.summary())

    if not result.success:
        raise typer.Exit(1)


@app.command("refresh")
def refresh_state(
    state: StateOpt = None,
    subscription_id: SubscriptionOpt = None,
    tenant_id: TenantOpt = None,
    client_id: ClientIdOpt = None,
    client_secret: ClientSecretOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Update recorded state from Azure without changing anything remotely."""
    _configure_logging(verbose)

    settings = _build_settings(subscription_id, tenant_id, client_id, client_secret)
    state_path = _state_path(state)
    current = _load_state(state_path)

    async def _async_refresh() -> list[str]:
        async with _open_client(settings) as client:
            meta = ProviderClients(api_policies=client)
            return await refresh(
                resource_api_management_api_policy(), current, meta, _audit_logger()
            )

    dropped = _run(_async_refresh(), verbose)
    current.save(state_path)

    typer.echo(f"Refreshed {len(current.resources)} API policies")
    for address in dropped:
        typer.secho(
            f"  - {address} no longer exists and was removed from state",
            fg=typer.colors.YELLOW,
        )


@app.command("import")
def import_(
    address: Annotated[str, typer.Argument(help="Configuration address to record under")],
    resource_id: Annotated[str, typer.Argument(help="Azure resource ID of the API policy")],
    state: StateOpt = None,
    subscription_id: SubscriptionOpt = None,
    tenant_id: TenantOpt = None,
    client_id: ClientIdOpt = None,
    client_secret: ClientSecretOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Adopt an existing API policy into state.

    Example:
        apim-policy import example \\
            /subscriptions/0000/resourceGroups/rg1/providers/Microsoft.ApiManagement/service/svc1/apis/api1/policies/policy
    """
    _configure_logging(verbose)

    settings = _build_settings(subscription_id, tenant_id, client_id, client_secret)
    state_path = _state_path(state)
    current = _load_state(state_path)

    async def _async_import() -> ResourceState:
        async with _open_client(settings) as client:
            meta = ProviderClients(api_policies=client)
            return await import_resource(
                resource_api_management_api_policy(),
                current,
                address,
                resource_id,
                meta,
                _audit_logger(),
            )

    imported = _run(_async_import(), verbose)
    current.save(state_path)

    typer.secho(f"\n✓ Imported {address}", fg=typer.colors.GREEN)
    typer.echo(f"  ID: {imported.id}")
