from __future__ import annotations

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Collection, Mapping, Sequence

import pytest

import apps.cli.commands.preview_session_prices as preview_module
import apps.cli.commands.run_trigger as run_trigger_module
from apps.cli.commands.preview_session_prices import PreviewSessionPricesCli
from apps.cli.commands.run_trigger import RunTriggerCli
from apps.cli.main.main import main as cli_main
from apps.scheduler.ingestion_scheduler.wiring.modules import (
    IngestionRuntime,
    IngestionStorage,
    build_ingestion_runtime,
)
from invest_loader.contexts.ingestion.adapters.outbound.config import IngestionRuntimeConfig
from invest_loader.contexts.ingestion.adapters.outbound.persistence import (
    InMemoryAggregationRefresher,
    InMemoryCandleStore,
    InMemoryInstrumentReader,
    InMemorySessionPriceStore,
    InMemoryTaskRegistry,
    InMemoryTradeStore,
)
from invest_loader.contexts.ingestion.domain import (
    Candle,
    Instrument,
    InstrumentClass,
    Trade,
    TradingDay,
)
from invest_loader.shared_kernel.primitives import CandleInterval, InstrumentId, UtcTimestamp

_TEST_CONFIG = Path(__file__).resolve().parents[5] / "configs" / "test" / "ingestion.yaml"


class _EmptySource:
    def fetch_candles(
        self,
        instrument_id: InstrumentId,
        day: date,
        interval: CandleInterval,
    ) -> Sequence[Candle]:
        return ()

    def fetch_trading_schedule(self, exchange: str, start: date, end: date) -> Sequence[TradingDay]:
        return ()

    def fetch_last_trades(self, instrument_id: InstrumentId, day: date) -> Sequence[Trade]:
        return ()


class _BrokenInstrumentReader:
    def list_instruments(
        self,
        classes: Collection[InstrumentClass] | None = None,
        currencies: Collection[str] | None = None,
    ) -> Sequence[Instrument]:
        raise RuntimeError("instruments table is unavailable")


def _storage(*, instruments: Any = None) -> IngestionStorage:
    candles = InMemoryCandleStore()
    candles.put_if_absent(
        Candle(
            instrument_id=InstrumentId("SBER"),
            ts=UtcTimestamp(datetime(2024, 5, 10, 15, 59, tzinfo=timezone.utc)),
            interval=CandleInterval.minute(),
            open=306.0,
            high=306.0,
            low=306.0,
            close=306.0,
            volume=1,
            is_complete=True,
        )
    )
    return IngestionStorage(
        candles=candles,
        session_prices=InMemorySessionPriceStore(),
        trades=InMemoryTradeStore(),
        instruments=instruments
        if instruments is not None
        else InMemoryInstrumentReader(
            [Instrument(InstrumentId("SBER"), "SBER", "share", "RUB", "MOEX")]
        ),
        registry=InMemoryTaskRegistry(),
        refresher=InMemoryAggregationRefresher(),
    )


def _patch_runtime(monkeypatch: pytest.MonkeyPatch, module: Any, storage: IngestionStorage) -> None:
    """
    Route CLI wiring through in-memory storage and an empty provider.

    Parameters:
    - monkeypatch: pytest fixture for monkeypatching module attributes.
    - module: CLI command module whose `build_ingestion_runtime` is replaced.
    - storage: storage adapters used by the runtime.
    """

    def _build(*, config: IngestionRuntimeConfig, environ: Mapping[str, str]) -> IngestionRuntime:
        return build_ingestion_runtime(
            config=config,
            environ=environ,
            source=_EmptySource(),
            storage=storage,
        )

    monkeypatch.setattr(module, "build_ingestion_runtime", _build)
    monkeypatch.setenv("INVEST_LOADER_CONFIG", str(_TEST_CONFIG))


def test_run_trigger_prints_json_report(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _patch_runtime(monkeypatch, run_trigger_module, _storage())

    exit_code = RunTriggerCli().run(
        ["aggregation_today", "--date", "2024-05-10", "--report-format", "json"]
    )

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["trigger"] == "aggregation_today"
    assert report["run_date"] == "2024-05-10"
    assert report["status"] == "COMPLETED"
    assert report["reports"] == ["volume aggregation refreshed: today"]
    assert report["task_id"].startswith("AGG_TODAY_")


def test_run_trigger_returns_one_for_failed_run(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _patch_runtime(
        monkeypatch,
        run_trigger_module,
        _storage(instruments=_BrokenInstrumentReader()),
    )

    exit_code = RunTriggerCli().run(["candles", "--date", "2024-05-10"])

    assert exit_code == 1
    out = capsys.readouterr().out
    assert "- status: FAILED" in out
    assert "instruments table is unavailable" in out


def test_run_trigger_rejects_unknown_trigger(monkeypatch: pytest.MonkeyPatch) -> None:
    _patch_runtime(monkeypatch, run_trigger_module, _storage())

    with pytest.raises(SystemExit) as excinfo:
        RunTriggerCli().run(["nightly"])

    assert excinfo.value.code == 2


def test_preview_session_prices_prints_text_report(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    storage = _storage()
    _patch_runtime(monkeypatch, preview_module, storage)

    exit_code = PreviewSessionPricesCli().run(["main_close", "--date", "2024-05-10"])

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines() == [
        "main_close 2024-05-10: 1 prices",
        "- SBER 306 RUB",
    ]
    assert storage.session_prices.list_session_prices(date(2024, 5, 10), "main_close") == ()


def test_cli_main_without_command_prints_usage(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_main([]) == 2
    assert "run-trigger <trigger>" in capsys.readouterr().out
    assert cli_main(["backfill"]) == 2
