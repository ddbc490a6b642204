"""Tests for the apim-policy CLI."""

import pytest
import yaml
from typer.testing import CliRunner

from azurerm.apimanagement.cli import commands
from azurerm.apimanagement.client import ApiPoliciesClient
from azurerm.apimanagement.state import StateFile

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, fake_arm, azure_settings):
    monkeypatch.setenv("ARM_SUBSCRIPTION_ID", azure_settings.subscription_id)
    monkeypatch.setenv("ARM_RESOURCE_MANAGER_ENDPOINT", azure_settings.resource_manager_endpoint)
    monkeypatch.setenv("ARM_TENANT_ID", "tenant-1")
    monkeypatch.setenv("ARM_CLIENT_ID", "client-1")
    monkeypatch.setenv("ARM_CLIENT_SECRET", "secret-1")
    monkeypatch.delenv("ARM_ACCESS_TOKEN", raising=False)

    monkeypatch.setattr(commands, "_configure_logging", lambda verbose: None)
    monkeypatch.setattr(
        commands,
        "_open_client",
        lambda settings: ApiPoliciesClient(settings, transport=fake_arm.transport()),
    )


@pytest.fixture
def config_file(tmp_path, policy_config):
    path = tmp_path / "policies.yaml"
    path.write_text(yaml.safe_dump({"api_policies": {"example": policy_config}}))
    return path


@pytest.fixture
def state_file(tmp_path):
    return tmp_path / "state.yaml"


def test_apply_creates_and_records_state(config_file, state_file, fake_arm, make_id):
    result = runner.invoke(commands.app, ["apply", str(config_file), "--state", str(state_file)])

    assert result.exit_code == 0, result.output
    assert "+ example" in result.output
    assert "Created 1: example" in result.output
    assert ("rg1", "svc1", "api1") in fake_arm.policies
    assert StateFile.load(state_file).get("example").id == make_id("rg1", "svc1", "api1")

    again = runner.invoke(commands.app, ["apply", str(config_file), "--state", str(state_file)])
    assert again.exit_code == 0, again.output
    assert "No changes" in again.output


def test_plan_does_not_write_state(config_file, state_file, fake_arm):
    result = runner.invoke(commands.app, ["plan", str(config_file), "--state", str(state_file)])

    assert result.exit_code == 0, result.output
    assert "API policies to create: 1" in result.output
    assert not state_file.exists()
    assert fake_arm.calls("PUT") == []


def test_dry_run_changes_nothing(config_file, state_file, fake_arm):
    result = runner.invoke(
        commands.app, ["apply", str(config_file), "--state", str(state_file), "--dry-run"]
    )

    assert result.exit_code == 0, result.output
    assert "[DRY RUN]" in result.output
    assert fake_arm.policies == {}
    assert not state_file.exists()


def test_invalid_config_fails_before_network(tmp_path, state_file, policy_config, fake_arm):
    path = tmp_path / "policies.yaml"
    block = {**policy_config, "xml_link": "https://policies.example.test/p.xml"}
    path.write_text(yaml.safe_dump({"api_policies": {"example": block}}))

    result = runner.invoke(commands.app, ["plan", str(path), "--state", str(state_file)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert "conflicts with" in result.output
    assert fake_arm.calls() == []


def test_missing_subscription(config_file, monkeypatch):
    monkeypatch.delenv("ARM_SUBSCRIPTION_ID")

    result = runner.invoke(commands.app, ["plan", str(config_file)])

    assert result.exit_code == 1
    assert "no subscription" in result.output


def test_failed_apply_exits_nonzero_but_saves_state(config_file, state_file, fake_arm):
    fake_arm.fail_next("PUT", 500, "InternalError", "boom")

    result = runner.invoke(commands.app, ["apply", str(config_file), "--state", str(state_file)])

    assert result.exit_code == 1
    assert "Failed to create example" in result.output
    assert state_file.exists()
    assert StateFile.load(state_file).addresses() == set()


def test_import_then_destroy(state_file, fake_arm, make_id):
    fake_arm.policies[("rg1", "svc1", "api1")] = "<policies/>"
    resource_id = make_id("rg1", "svc1", "api1")

    result = runner.invoke(
        commands.app, ["import", "example", resource_id, "--state", str(state_file)]
    )
    assert result.exit_code == 0, result.output
    assert "Imported example" in result.output
    assert StateFile.load(state_file).get("example").attributes["xml_content"] == "<policies/>"

    result = runner.invoke(commands.app, ["destroy", "--state", str(state_file)])
    assert result.exit_code == 0, result.output
    assert "Destroyed 1: example" in result.output
    assert fake_arm.policies == {}
    assert StateFile.load(state_file).addresses() == set()


def test_import_malformed_id(state_file, fake_arm):
    result = runner.invoke(
        commands.app,
        ["import", "example", "/subscriptions/sub1/resourceGroups/rg1", "--state", str(state_file)],
    )

    assert result.exit_code == 1
    assert "ID was missing the `service` element" in result.output
    assert fake_arm.requests == []


def test_refresh_reports_dropped(state_file, policy_config, make_id):
    state = StateFile()
    state.put("example", commands.ResourceState(id=make_id("rg1", "svc1", "api1"), attributes=policy_config))
    state.save(state_file)

    result = runner.invoke(commands.app, ["refresh", "--state", str(state_file)])

    assert result.exit_code == 0, result.output
    assert "example no longer exists" in result.output
    assert StateFile.load(state_file).addresses() == set()
