from __future__ import annotations

from datetime import datetime, timezone

import pytest

from invest_loader.contexts.ingestion.adapters.outbound.persistence import (
    InMemoryInstrumentReader,
    InMemoryTaskRegistry,
)
from invest_loader.contexts.ingestion.domain import Instrument, TaskRegistryError
from invest_loader.shared_kernel.primitives import InstrumentId

_STARTED_AT = datetime(2024, 5, 10, 21, 0, tzinfo=timezone.utc)
_ENDED_AT = datetime(2024, 5, 10, 21, 0, 5, tzinfo=timezone.utc)


def test_in_memory_registry_records_lifecycle_once() -> None:
    registry = InMemoryTaskRegistry()

    registry.record_start("LAST_TRADES_1", "last_trades", _STARTED_AT)
    registry.record_end("LAST_TRADES_1", "COMPLETED", "saved=3", 5000, _ENDED_AT)

    task = registry.get("LAST_TRADES_1")
    assert task is not None
    assert (task.status, task.message, task.duration_ms) == ("COMPLETED", "saved=3", 5000)
    with pytest.raises(TaskRegistryError, match="already started"):
        registry.record_start("LAST_TRADES_1", "last_trades", _STARTED_AT)
    with pytest.raises(TaskRegistryError, match="already ended"):
        registry.record_end("LAST_TRADES_1", "FAILED", "late", 1, _ENDED_AT)
    with pytest.raises(TaskRegistryError, match="never started"):
        registry.record_end("MISSING", "FAILED", "late", 1, _ENDED_AT)
    assert registry.get("MISSING") is None


def test_in_memory_reader_filters_by_class_and_currency() -> None:
    reader = InMemoryInstrumentReader(
        [
            Instrument(InstrumentId("SiM4"), "SiM4", "future", "rub", "FORTS"),
            Instrument(InstrumentId("AAPL"), "AAPL", "share", "usd", "SPB"),
            Instrument(InstrumentId("SBER"), "SBER", "share", "rub", "MOEX"),
        ]
    )

    rub_shares = reader.list_instruments(classes=("share",), currencies=("RUB",))

    assert [item.instrument_id.value for item in rub_shares] == ["SBER"]
    assert [item.instrument_id.value for item in reader.list_instruments()] == [
        "SiM4",
        "AAPL",
        "SBER",
    ]
