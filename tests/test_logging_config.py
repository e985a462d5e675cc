import json
import logging

import pytest
import structlog

from sportline.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_json_logs_carry_service_and_fields(caplog):
    configure_logging(log_level="DEBUG", json_logs=True, service_name="sportline-test")
    caplog.set_level(logging.INFO)

    structlog.get_logger("sportline.test").info("run_saved", market="spread")

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "run_saved"
    assert payload["market"] == "spread"
    assert payload["service"] == "sportline-test"
    assert payload["level"] == "info"
    assert payload["logger"] == "sportline.test"
    assert "timestamp" in payload


def test_console_logs(caplog):
    configure_logging(json_logs=False)
    caplog.set_level(logging.INFO)

    structlog.get_logger("sportline.test").warning("market_skipped", market="underdog")

    message = caplog.records[-1].getMessage()
    assert "market_skipped" in message
    assert "market=underdog" in message
