import logging

import pytest
import structlog

from azurerm.apimanagement.audit.logger import configure_audit_logging


@pytest.fixture
def captured(monkeypatch):
    """Capture the levels handed to stdlib logging and structlog."""
    levels = {}
    orig_make = structlog.make_filtering_bound_logger

    def fake_basicConfig(*, level=None, **kwargs):
        levels["stdlib"] = level

    def fake_make_filtering_bound_logger(level):
        levels["structlog"] = level
        return orig_make(level)

    monkeypatch.setattr(logging, "basicConfig", fake_basicConfig)
    monkeypatch.setattr(structlog, "make_filtering_bound_logger", fake_make_filtering_bound_logger)

    yield levels

    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.mark.parametrize(
    "log_level, expected",
    [
        ("INFO", logging.INFO),
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        (20, logging.INFO),
        ("nonsense", logging.INFO),
    ],
)
def test_levels_resolve_through_stdlib(captured, log_level, expected):
    configure_audit_logging(log_level=log_level, json_format=True, service_name="apim-policy")

    assert captured["stdlib"] == expected
    assert captured["structlog"] == expected


def test_service_name_is_bound_to_every_event(captured):
    configure_audit_logging(log_level="INFO", json_format=False, service_name="apim-policy-prod")

    assert structlog.contextvars.get_contextvars() == {"service": "apim-policy-prod"}

    processors = structlog.get_config()["processors"]
    assert processors[0] is structlog.contextvars.merge_contextvars


@pytest.mark.parametrize(
    "json_format, renderer",
    [(True, structlog.processors.JSONRenderer), (False, structlog.dev.ConsoleRenderer)],
)
def test_renderer_follows_json_format(captured, json_format, renderer):
    configure_audit_logging(log_level="INFO", json_format=json_format, service_name="apim-policy")

    assert isinstance(structlog.get_config()["processors"][-1], renderer)
