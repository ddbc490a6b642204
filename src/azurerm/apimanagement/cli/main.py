"""API policy CLI - Main entrypoint.

Usage:
    apim-policy plan policies.yaml
    apim-policy apply policies.yaml --state apim-policy.state.yaml
    apim-policy import example /subscriptions/.../apis/api1/policies/policy
"""

from __future__ import annotations

from azurerm.apimanagement.cli.commands import app


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
