"""Tests for configuration loading and logging setup."""

import logging
from pathlib import Path

import pytest

from compliance_lens.utils.config import Config
from compliance_lens.utils.errors import ConfigurationError, ErrorType
from compliance_lens.utils.logging import (
    clear_context,
    get_context,
    log_context,
    set_context,
    setup_logging,
    with_context,
)

ENV_KEYS = (
    "AWS_REGION",
    "BEDROCK_MODEL_ID",
    "BEDROCK_TIMEOUT",
    "IMAGE_MAX_DIMENSION",
    "IMAGE_QUALITY",
    "HISTORY_PATH",
    "HISTORY_CAPACITY",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_missing_file_yields_defaults(tmp_path):
    config = Config.load(str(tmp_path / "absent.yaml"))

    assert config.aws_region == "us-east-1"
    assert config.bedrock.timeout == 120
    assert config.bedrock.temperature == 0.2
    assert config.image.max_dimension == 1280
    assert config.image.quality == 0.8
    assert config.history.capacity == 20
    assert config.analysis.strict_validation is True


def test_repository_config_loads():
    config = Config.load(str(Path(__file__).parent / "config.yaml"))
    assert config.bedrock.model_id == "amazon.nova-pro-v1:0"
    assert config.history.path == "data/history"


def test_file_values_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "aws:\n"
        "  region: eu-west-1\n"
        "  bedrock:\n"
        "    model_id: file-model\n"
        "    timeout: 30\n"
        "history:\n"
        "  capacity: 5\n"
        "analysis:\n"
        "  strict_validation: false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("BEDROCK_MODEL_ID", "env-model")
    monkeypatch.setenv("IMAGE_MAX_DIMENSION", "1024")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")

    config = Config.load(str(path))

    assert config.aws_region == "eu-west-1"
    assert config.bedrock.model_id == "env-model"
    assert config.bedrock.timeout == 30
    assert config.image.max_dimension == 1024
    assert config.history.capacity == 5
    assert config.analysis.strict_validation is False
    assert config.logging.level == "DEBUG"


@pytest.mark.parametrize(
    "env, value",
    [
        ("BEDROCK_TIMEOUT", "soon"),
        ("BEDROCK_TIMEOUT", "0"),
        ("IMAGE_QUALITY", "1.5"),
        ("HISTORY_CAPACITY", "-1"),
    ],
)
def test_invalid_values_raise_config_invalid(tmp_path, monkeypatch, env, value):
    monkeypatch.setenv(env, value)
    with pytest.raises(ConfigurationError) as excinfo:
        Config.load(str(tmp_path / "absent.yaml"))
    assert excinfo.value.error_type == ErrorType.CONFIG_INVALID


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("aws: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Config.load(str(path))


def test_setup_logging_writes_scan_context(tmp_path):
    log_file = tmp_path / "logs" / "scan.log"
    setup_logging(level="INFO", log_format="%(scan_id)s %(message)s", log_file=str(log_file))
    logger = logging.getLogger("compliance_lens.test")

    clear_context()
    try:
        logger.info("outside")
        set_context(scan_id="abc-123")
        logger.info("inside")
    finally:
        clear_context()
        root = logging.getLogger()
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert lines[-2:] == ["- outside", "abc-123 inside"]


@pytest.mark.asyncio
async def test_with_context_restores_previous_context():
    set_context(scan_id="outer")

    @with_context(step="analyzing")
    async def run():
        return get_context()

    try:
        inner = await run()
        assert inner == {"scan_id": "outer", "step": "analyzing"}
        assert get_context() == {"scan_id": "outer"}
    finally:
        clear_context()


def test_log_context_scopes_fields():
    clear_context()
    with log_context(scan_id="scoped"):
        assert get_context() == {"scan_id": "scoped"}
    assert get_context() == {}
