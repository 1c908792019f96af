from __future__ import annotations

from datetime import time
from pathlib import Path

import pytest

from invest_loader.contexts.ingestion.adapters.outbound.config import (
    load_ingestion_runtime_config,
    resolve_ingestion_config_path,
)

_REPO_ROOT = Path(__file__).resolve().parents[5]


def _write_ingestion_config(tmp_path: Path, *, body: str) -> Path:
    """
    Write temporary ingestion runtime YAML used by config-loader tests.

    Args:
        tmp_path: pytest temporary path fixture.
        body: Full YAML content.
    Returns:
        Path: Written config path.
    """
    config_path = tmp_path / "ingestion.yaml"
    config_path.write_text(body, encoding="utf-8")
    return config_path


def test_load_shipped_test_config_reads_all_triggers() -> None:
    config = load_ingestion_runtime_config(_REPO_ROOT / "configs" / "test" / "ingestion.yaml")

    assert config.version == 1
    assert config.calendar_mode == "weekends"
    assert config.timezone == "Europe/Moscow"
    assert [trigger.name for trigger in config.triggers] == [
        "candles",
        "morning_session",
        "main_session",
        "evening_session",
        "last_trades",
        "aggregation_today",
        "aggregation_full",
    ]
    candles = config.trigger_by_name("candles")
    assert candles.stages == ("minute_candles", "daily_candles")
    assert candles.day_offset == -1
    assert dict(candles.cron) == {"hour": 1, "minute": 10}
    assert config.trigger_by_name("main_session").after == "candles"
    assert config.session_prices.cutoffs["morning_open"]["future"] == time(8, 59, 59)
    assert config.tinvest.retries == 0


@pytest.mark.parametrize("env_name", ["dev", "prod"])
def test_shipped_environment_configs_are_valid(env_name: str) -> None:
    config = load_ingestion_runtime_config(_REPO_ROOT / "configs" / env_name / "ingestion.yaml")

    assert config.triggers


def test_load_applies_defaults_for_optional_sections(tmp_path: Path) -> None:
    config_path = _write_ingestion_config(
        tmp_path,
        body="""
version: 1
ingestion:
  triggers:
    - name: adhoc
      stages: [last_trades]
""",
    )

    config = load_ingestion_runtime_config(config_path)

    assert config.calendar_mode == "exchange"
    assert config.gate.max_permits == 5
    assert config.tinvest.retries == 2
    assert config.storage.candles_table == "invest.candles"
    adhoc = config.triggers[0]
    assert adhoc.task_prefix == "ADHOC"
    assert dict(adhoc.cron) == {}


@pytest.mark.parametrize(
    ("ingestion_body", "message"),
    [
        ("  calendar: lunar\n  triggers: []\n", "ingestion.calendar"),
        ("  gate: {max_permits: 0}\n  triggers: []\n", "gate.max_permits"),
        (
            "  triggers:\n    - {name: a, stages: [unknown_stage]}\n",
            "unknown stages",
        ),
        (
            "  triggers:\n    - {name: a, stages: [last_trades], cron: {hours: 1}}\n",
            "unknown fields",
        ),
        (
            "  triggers:\n    - {name: a, stages: [last_trades], after: b}\n",
            "unknown trigger",
        ),
        (
            "  triggers:\n"
            "    - {name: a, stages: [last_trades]}\n"
            "    - {name: a, stages: [refresh_full]}\n",
            "duplicate trigger name",
        ),
        (
            "  session_prices:\n    cutoffs: {main_close: {share: '7pm'}}\n  triggers: []\n",
            "HH:MM:SS",
        ),
    ],
)
def test_load_rejects_invalid_values(tmp_path: Path, ingestion_body: str, message: str) -> None:
    config_path = _write_ingestion_config(
        tmp_path,
        body=f"version: 1\ningestion:\n{ingestion_body}",
    )

    with pytest.raises(ValueError, match=message):
        load_ingestion_runtime_config(config_path)


def test_load_requires_existing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_ingestion_runtime_config(tmp_path / "missing.yaml")


def test_resolve_config_path_precedence() -> None:
    environ = {"INVEST_LOADER_ENV": "prod", "INVEST_LOADER_CONFIG": "/etc/invest/ingestion.yaml"}

    assert resolve_ingestion_config_path(environ=environ, cli_path="local.yaml") == Path(
        "local.yaml"
    )
    assert resolve_ingestion_config_path(environ=environ) == Path("/etc/invest/ingestion.yaml")
    assert resolve_ingestion_config_path(environ={"INVEST_LOADER_ENV": " PROD "}) == Path(
        "configs/prod/ingestion.yaml"
    )
    assert resolve_ingestion_config_path(environ={}) == Path("configs/dev/ingestion.yaml")


def test_resolve_config_path_rejects_unknown_env() -> None:
    with pytest.raises(ValueError, match="INVEST_LOADER_ENV"):
        resolve_ingestion_config_path(environ={"INVEST_LOADER_ENV": "staging"})
