from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Mapping

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

from invest_loader.contexts.ingestion.adapters.outbound.clients.common_http import (
    RequestsHttpClient,
)
from invest_loader.contexts.ingestion.adapters.outbound.clients.tinvest import (
    TInvestMarketDataSource,
)
from invest_loader.contexts.ingestion.adapters.outbound.config import (
    IngestionRuntimeConfig,
    TriggerConfig,
)
from invest_loader.contexts.ingestion.adapters.outbound.persistence import (
    InMemoryAggregationRefresher,
    InMemoryCandleStore,
    InMemoryInstrumentReader,
    InMemorySessionPriceStore,
    InMemoryTaskRegistry,
    InMemoryTradeStore,
    PostgresAggregationRefresher,
    PostgresCandleStore,
    PostgresInstrumentReader,
    PostgresSessionPriceStore,
    PostgresTaskRegistry,
    PostgresTradeStore,
    PsycopgIngestionPostgresGateway,
)
from invest_loader.contexts.ingestion.application.dto import InstrumentReport, TriggerRun
from invest_loader.contexts.ingestion.application.ports.clock import Clock
from invest_loader.contexts.ingestion.application.ports.sources import MarketDataSource
from invest_loader.contexts.ingestion.application.ports.stores import (
    AggregationRefresher,
    CandleStore,
    InstrumentReader,
    SessionPriceStore,
    TaskRegistry,
    TradeStore,
)
from invest_loader.contexts.ingestion.application.services import (
    ConcurrencyGate,
    ExchangeTradingCalendar,
    FetchOrchestrator,
    PipelineStage,
    ScheduleCoordinator,
    SessionPriceDeriver,
    TradingCalendar,
    TriggerDefinition,
    WeekendTradingCalendar,
)
from invest_loader.contexts.ingestion.application.use_cases import (
    DEFAULT_SESSION_CUTOFFS,
    DeriveSessionPricesUseCase,
    LoadCandlesUseCase,
    LoadLastTradesUseCase,
    RefreshVolumeAggregationUseCase,
)
from invest_loader.platform.time.system_clock import SystemClock
from invest_loader.shared_kernel.primitives import CandleInterval

log = logging.getLogger(__name__)

_ENV_NAME_KEY = "INVEST_LOADER_ENV"
_PG_DSN_KEY = "INVEST_LOADER_PG_DSN"
_TOKEN_KEY = "T_INVEST_TOKEN"
_ALLOWED_ENVS = ("dev", "prod", "test")


class IngestionMetrics:
    """
    Prometheus metrics bundle shared by the scheduler and the API process.
    """

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        """
        Create ingestion metric objects.

        Parameters:
        - registry: optional explicit Prometheus registry (tests can pass isolated one).

        Returns:
        - None.

        Assumptions/Invariants:
        - Metrics are instantiated once per process and registry.

        Errors/Exceptions:
        - May raise registration errors on duplicate metric names.

        Side effects:
        - Registers metrics in the selected Prometheus registry.
        """
        effective_registry = registry if registry is not None else REGISTRY

        self.trigger_runs_total = Counter(
            "ingestion_trigger_runs_total",
            "Finished trigger runs grouped by terminal status",
            labelnames=("trigger", "status"),
            registry=effective_registry,
        )
        self.trigger_duration_seconds = Histogram(
            "ingestion_trigger_duration_seconds",
            "Trigger pipeline duration in seconds",
            labelnames=("trigger",),
            buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 180.0, 600.0, 1800.0),
            registry=effective_registry,
        )
        self.instrument_outcomes_total = Counter(
            "ingestion_instrument_outcomes_total",
            "Per-instrument batch outcomes grouped by stage",
            labelnames=("stage", "outcome"),
            registry=effective_registry,
        )

    def observe_run(self, run: TriggerRun) -> None:
        self.trigger_runs_total.labels(trigger=run.trigger_name, status=run.status).inc()
        self.trigger_duration_seconds.labels(trigger=run.trigger_name).observe(
            run.duration_ms / 1000.0
        )

    def observe_report(self, stage_name: str, report: InstrumentReport) -> None:
        self.instrument_outcomes_total.labels(stage=stage_name, outcome=report.outcome_label).inc()


@dataclass(frozen=True, slots=True)
class IngestionStorage:
    """Storage adapters selected by runtime settings."""

    candles: CandleStore
    session_prices: SessionPriceStore
    trades: TradeStore
    instruments: InstrumentReader
    registry: TaskRegistry
    refresher: AggregationRefresher


@dataclass(frozen=True, slots=True)
class IngestionRuntime:
    """
    Fully wired ingestion object graph.

    Parameters:
    - config: parsed runtime config.
    - gate: process-wide concurrency gate.
    - coordinator: trigger coordinator with every configured trigger.
    - registry: task registry behind the coordinator.
    - derive_use_case: session price use case (also serves previews).
    """

    config: IngestionRuntimeConfig
    gate: ConcurrencyGate
    coordinator: ScheduleCoordinator
    registry: TaskRegistry
    derive_use_case: DeriveSessionPricesUseCase


def build_ingestion_runtime(
    *,
    config: IngestionRuntimeConfig,
    environ: Mapping[str, str],
    metrics: IngestionMetrics | None = None,
    source: MarketDataSource | None = None,
    storage: IngestionStorage | None = None,
    clock: Clock | None = None,
    calendar: TradingCalendar | None = None,
) -> IngestionRuntime:
    """
    Build the ingestion object graph from config and environment.

    Parameters:
    - config: parsed `ingestion.yaml`.
    - environ: environment mapping with `INVEST_LOADER_PG_DSN` and `T_INVEST_TOKEN`.
    - metrics: optional metrics bundle; hooks are skipped when omitted.
    - source: optional prebuilt market-data source (tests, alternative providers).
    - storage: optional prebuilt storage adapters.
    - clock: optional clock, system clock when omitted.
    - calendar: optional trading calendar, built from `config.calendar_mode` when omitted.

    Returns:
    - Ready-to-use runtime.

    Assumptions/Invariants:
    - One gate per process: every upstream call of every trigger shares it.
    - A calendar-gated trigger consults the calendar once, in the coordinator; its session
      stages skip the use case check.

    Errors/Exceptions:
    - Raises `ValueError` when the token is missing or when `prod` runs without a DSN.

    Side effects:
    - None; adapters connect lazily.
    """
    effective_clock: Clock = clock if clock is not None else SystemClock()
    effective_storage = storage if storage is not None else build_ingestion_storage(
        config=config,
        environ=environ,
    )
    effective_source = source if source is not None else _build_source(
        config=config,
        environ=environ,
        clock=effective_clock,
    )

    gate = ConcurrencyGate(
        max_permits=config.gate.max_permits,
        acquire_timeout_s=config.gate.acquire_timeout_s,
        min_interval_s=config.gate.min_interval_s,
    )
    orchestrator = FetchOrchestrator(
        gate=gate,
        rate_limit_retries=config.gate.rate_limit_retries,
        on_report=metrics.observe_report if metrics is not None else None,
    )
    effective_calendar = calendar if calendar is not None else _build_calendar(
        config=config,
        source=effective_source,
        gate=gate,
    )

    load_candles = LoadCandlesUseCase(
        source=effective_source,
        instruments=effective_storage.instruments,
        store=effective_storage.candles,
        orchestrator=orchestrator,
        classes=config.instrument_classes,
    )
    derive_use_case = DeriveSessionPricesUseCase(
        instruments=effective_storage.instruments,
        deriver=SessionPriceDeriver(candle_store=effective_storage.candles),
        store=effective_storage.session_prices,
        orchestrator=orchestrator,
        calendar=effective_calendar,
        tz_name=config.timezone,
        classes=config.session_prices.classes,
        currencies=config.session_prices.currencies,
        cutoffs=config.session_prices.cutoffs or DEFAULT_SESSION_CUTOFFS,
    )
    load_trades = LoadLastTradesUseCase(
        source=effective_source,
        instruments=effective_storage.instruments,
        store=effective_storage.trades,
        orchestrator=orchestrator,
        classes=config.session_prices.classes,
    )
    refresh = RefreshVolumeAggregationUseCase(refresher=effective_storage.refresher)

    def _stage_runners(*, check_calendar: bool) -> dict[str, Callable[[date], Awaitable[Any]]]:
        return {
            "minute_candles": lambda day: load_candles.run(day, CandleInterval.minute()),
            "daily_candles": lambda day: load_candles.run(day, CandleInterval.day()),
            "morning_open": lambda day: derive_use_case.run(
                day, "morning_open", check_calendar=check_calendar
            ),
            "main_close": lambda day: derive_use_case.run(
                day, "main_close", check_calendar=check_calendar
            ),
            "evening_close": lambda day: derive_use_case.run(
                day, "evening_close", check_calendar=check_calendar
            ),
            "last_trades": lambda day: load_trades.run(day),
            "refresh_today": lambda day: refresh.refresh_today(),
            "refresh_full": lambda day: refresh.refresh_full(),
        }

    gated_runners = _stage_runners(check_calendar=False)
    ungated_runners = _stage_runners(check_calendar=True)
    triggers = tuple(
        build_trigger_definition(
            trigger=trigger,
            stage_runners=gated_runners if trigger.calendar else ungated_runners,
            calendar=effective_calendar,
        )
        for trigger in config.triggers
    )

    coordinator = ScheduleCoordinator(
        triggers=triggers,
        registry=effective_storage.registry,
        clock=effective_clock,
        tz_name=config.timezone,
        on_run=metrics.observe_run if metrics is not None else None,
    )
    return IngestionRuntime(
        config=config,
        gate=gate,
        coordinator=coordinator,
        registry=effective_storage.registry,
        derive_use_case=derive_use_case,
    )


def build_trigger_definition(
    *,
    trigger: TriggerConfig,
    stage_runners: Mapping[str, Callable[[date], Awaitable[Any]]],
    calendar: TradingCalendar,
) -> TriggerDefinition:
    """
    Map one configured trigger onto coordinator stages.

    Parameters:
    - trigger: trigger config entry.
    - stage_runners: stage key -> coroutine function taking the business date.
    - calendar: calendar attached when the trigger requests one.

    Returns:
    - Trigger definition in configured stage order.

    Errors/Exceptions:
    - Raises `KeyError` for stage keys without runner.
    """
    return TriggerDefinition(
        name=trigger.name,
        task_prefix=trigger.task_prefix,
        stages=tuple(PipelineStage(name=stage, run=stage_runners[stage]) for stage in trigger.stages),  # noqa: E501
        calendar=calendar if trigger.calendar else None,
        day_offset=trigger.day_offset,
        after=trigger.after,
    )


def build_ingestion_storage(
    *,
    config: IngestionRuntimeConfig,
    environ: Mapping[str, str],
) -> IngestionStorage:
    """
    Build storage adapters using Postgres when configured or in-memory fallback.

    Args:
        config: Parsed runtime config with table names.
        environ: Runtime environment mapping.
    Returns:
        IngestionStorage: Storage adapters.
    Assumptions:
        In-memory fallback is allowed only outside `prod`.
    Raises:
        ValueError: If `prod` runs without `INVEST_LOADER_PG_DSN`.
    Side Effects:
        None.
    """
    dsn = environ.get(_PG_DSN_KEY, "").strip()
    if dsn:
        gateway = PsycopgIngestionPostgresGateway(dsn=dsn)
        tables = config.storage
        return IngestionStorage(
            candles=PostgresCandleStore(gateway=gateway, candles_table=tables.candles_table),
            session_prices=PostgresSessionPriceStore(
                gateway=gateway,
                session_prices_table=tables.session_prices_table,
            ),
            trades=PostgresTradeStore(gateway=gateway, trades_table=tables.trades_table),
            instruments=PostgresInstrumentReader(
                gateway=gateway,
                instruments_table=tables.instruments_table,
            ),
            registry=PostgresTaskRegistry(gateway=gateway, events_table=tables.task_events_table),
            refresher=PostgresAggregationRefresher(
                gateway=PsycopgIngestionPostgresGateway(dsn=dsn, autocommit=True),
                today_view=tables.today_aggregation_view,
                full_view=tables.full_aggregation_view,
            ),
        )

    if _resolve_env_name(environ=environ) == "prod":
        raise ValueError(f"{_PG_DSN_KEY} is required in prod")

    log.warning("%s is not set, using in-memory ingestion storage", _PG_DSN_KEY)
    return IngestionStorage(
        candles=InMemoryCandleStore(),
        session_prices=InMemorySessionPriceStore(),
        trades=InMemoryTradeStore(),
        instruments=InMemoryInstrumentReader(),
        registry=InMemoryTaskRegistry(),
        refresher=InMemoryAggregationRefresher(),
    )


def _build_source(
    *,
    config: IngestionRuntimeConfig,
    environ: Mapping[str, str],
    clock: Clock,
) -> MarketDataSource:
    token = environ.get(_TOKEN_KEY, "").strip()
    if not token:
        raise ValueError(f"{_TOKEN_KEY} is required")
    return TInvestMarketDataSource(
        cfg=config.tinvest,
        token=token,
        http=RequestsHttpClient(),
        clock=clock,
        exchange=config.exchange,
        tz_name=config.timezone,
    )


def _build_calendar(
    *,
    config: IngestionRuntimeConfig,
    source: MarketDataSource,
    gate: ConcurrencyGate,
) -> TradingCalendar:
    if config.calendar_mode == "weekends":
        return WeekendTradingCalendar()
    return ExchangeTradingCalendar(source=source, gate=gate, exchange=config.exchange)


def _resolve_env_name(*, environ: Mapping[str, str]) -> str:
    raw_env = environ.get(_ENV_NAME_KEY, "dev").strip().lower()
    if raw_env not in _ALLOWED_ENVS:
        raise ValueError(
            f"{_ENV_NAME_KEY} must be one of {_ALLOWED_ENVS}, got {raw_env!r}"
        )
    return raw_env
