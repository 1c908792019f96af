from __future__ import annotations

from dataclasses import dataclass, field
from datetime import time
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from invest_loader.contexts.ingestion.domain import (
    INSTRUMENT_CLASSES,
    SESSION_KINDS,
    InstrumentClass,
    SessionKind,
)

_ENV_NAME_KEY = "INVEST_LOADER_ENV"
_CONFIG_PATH_KEY = "INVEST_LOADER_CONFIG"
_ALLOWED_ENVS = ("dev", "prod", "test")

_ALLOWED_CALENDAR_MODES = ("exchange", "weekends")
_ALLOWED_CRON_FIELDS = (
    "year",
    "month",
    "day",
    "week",
    "day_of_week",
    "hour",
    "minute",
    "second",
)

TRIGGER_STAGES = (
    "minute_candles",
    "daily_candles",
    "morning_open",
    "main_close",
    "evening_close",
    "last_trades",
    "refresh_today",
    "refresh_full",
)

_DEFAULT_TINVEST_BASE_URL = "https://invest-public-api.tinkoff.ru/rest"


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    base_s: float = 2.0
    max_s: float = 16.0
    jitter_s: float = 0.5

    def __post_init__(self) -> None:
        _require_positive("backoff.base_s", self.base_s)
        _require_positive("backoff.max_s", self.max_s)
        _require_non_negative("backoff.jitter_s", self.jitter_s)
        if self.base_s > self.max_s:
            raise ValueError(f"backoff.base_s must be <= backoff.max_s, got {self.base_s} > {self.max_s}")  # noqa: E501


@dataclass(frozen=True, slots=True)
class TInvestConfig:
    """
    Provider REST settings loaded from `ingestion.tinvest`.

    `retries` counts extra attempts: `retries=2` means three attempts in total.
    """

    base_url: str = _DEFAULT_TINVEST_BASE_URL
    timeout_s: float = 30.0
    retries: int = 2
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    trade_source: str = "TRADE_SOURCE_ALL"

    def __post_init__(self) -> None:
        _require_non_empty("tinvest.base_url", self.base_url)
        _require_positive("tinvest.timeout_s", self.timeout_s)
        if self.retries < 0:
            raise ValueError(f"tinvest.retries must be >= 0, got {self.retries}")
        _require_non_empty("tinvest.trade_source", self.trade_source)


@dataclass(frozen=True, slots=True)
class GateConfig:
    max_permits: int = 5
    acquire_timeout_s: float = 30.0
    min_interval_s: float = 0.1
    rate_limit_retries: int = 1

    def __post_init__(self) -> None:
        if self.max_permits <= 0:
            raise ValueError(f"gate.max_permits must be > 0, got {self.max_permits}")
        _require_positive("gate.acquire_timeout_s", self.acquire_timeout_s)
        _require_non_negative("gate.min_interval_s", self.min_interval_s)
        if self.rate_limit_retries < 0:
            raise ValueError(f"gate.rate_limit_retries must be >= 0, got {self.rate_limit_retries}")  # noqa: E501


@dataclass(frozen=True, slots=True)
class SessionPricesConfig:
    classes: tuple[InstrumentClass, ...] = ("share", "future")
    currencies: tuple[str, ...] = ("RUB",)
    cutoffs: Mapping[SessionKind, Mapping[InstrumentClass, time]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self) -> None:
        _require_instrument_classes("session_prices.classes", self.classes)
        if not self.currencies:
            raise ValueError("session_prices.currencies must be non-empty")
        unknown = set(self.cutoffs) - set(SESSION_KINDS)
        if unknown:
            raise ValueError(f"session_prices.cutoffs has unknown session kinds: {sorted(unknown)}")  # noqa: E501


@dataclass(frozen=True, slots=True)
class StorageConfig:
    candles_table: str = "invest.candles"
    session_prices_table: str = "invest.session_prices"
    trades_table: str = "invest.last_trades"
    instruments_table: str = "invest.instruments"
    task_events_table: str = "invest.ingestion_task_events"
    today_aggregation_view: str = "invest.today_volume_aggregation"
    full_aggregation_view: str = "invest.daily_volume_aggregation"


@dataclass(frozen=True, slots=True)
class TriggerConfig:
    """
    One scheduled trigger loaded from `ingestion.triggers[]`.

    `cron` holds APScheduler `CronTrigger` field arguments (`hour`, `minute`, ...);
    an empty `cron` means the trigger runs only on demand.
    """

    name: str
    task_prefix: str
    stages: tuple[str, ...]
    cron: Mapping[str, str | int]
    day_offset: int = 0
    calendar: bool = False
    after: str | None = None

    def __post_init__(self) -> None:
        _require_non_empty("trigger.name", self.name)
        _require_non_empty(f"triggers.{self.name}.task_prefix", self.task_prefix)
        if not self.stages:
            raise ValueError(f"triggers.{self.name}.stages must be non-empty")
        unknown_stages = [stage for stage in self.stages if stage not in TRIGGER_STAGES]
        if unknown_stages:
            raise ValueError(f"triggers.{self.name}.stages has unknown stages: {unknown_stages}")
        unknown_fields = set(self.cron) - set(_ALLOWED_CRON_FIELDS)
        if unknown_fields:
            raise ValueError(f"triggers.{self.name}.cron has unknown fields: {sorted(unknown_fields)}")  # noqa: E501


@dataclass(frozen=True, slots=True)
class IngestionRuntimeConfig:
    version: int
    timezone: str
    exchange: str
    calendar_mode: str
    gate: GateConfig
    tinvest: TInvestConfig
    instrument_classes: tuple[InstrumentClass, ...]
    session_prices: SessionPricesConfig
    storage: StorageConfig
    triggers: tuple[TriggerConfig, ...]

    def __post_init__(self) -> None:
        _require_non_empty("ingestion.timezone", self.timezone)
        _require_non_empty("ingestion.exchange", self.exchange)
        if self.calendar_mode not in _ALLOWED_CALENDAR_MODES:
            raise ValueError(
                f"ingestion.calendar must be one of {_ALLOWED_CALENDAR_MODES}, got {self.calendar_mode!r}"  # noqa: E501
            )
        _require_instrument_classes("ingestion.instrument_classes", self.instrument_classes)
        names = [trigger.name for trigger in self.triggers]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate trigger name in config: {names}")
        for trigger in self.triggers:
            if trigger.after is not None and trigger.after not in names:
                raise ValueError(f"triggers.{trigger.name}.after references unknown trigger {trigger.after!r}")  # noqa: E501

    def trigger_by_name(self, name: str) -> TriggerConfig:
        for trigger in self.triggers:
            if trigger.name == name:
                return trigger
        raise KeyError(f"trigger not found in config: {name}")


def resolve_ingestion_config_path(
    *,
    environ: Mapping[str, str],
    cli_path: str | None = None,
) -> Path:
    """
    Resolve runtime config path using override precedence contract.

    Related:
      - configs/dev/ingestion.yaml
      - configs/test/ingestion.yaml
      - configs/prod/ingestion.yaml

    Args:
        environ: Runtime environment mapping.
        cli_path: Optional explicit `--config` value.
    Returns:
        Path: Resolved `ingestion.yaml` path.
    Assumptions:
        Precedence is `--config` > `INVEST_LOADER_CONFIG` >
        `configs/<INVEST_LOADER_ENV>/ingestion.yaml`.
    Raises:
        ValueError: If `INVEST_LOADER_ENV` value is unsupported.
    Side Effects:
        None.
    """
    if cli_path is not None and cli_path.strip():
        return Path(cli_path.strip())

    override_path = environ.get(_CONFIG_PATH_KEY, "").strip()
    if override_path:
        return Path(override_path)

    env_name = _resolve_env_name(environ=environ)
    return Path("configs") / env_name / "ingestion.yaml"


def load_ingestion_runtime_config(path: str | Path) -> IngestionRuntimeConfig:
    """
    Load and validate ingestion runtime YAML configuration.

    Args:
        path: Path to `ingestion.yaml`.
    Returns:
        IngestionRuntimeConfig: Parsed validated config object.
    Assumptions:
        Missing optional sections fall back to dataclass defaults.
    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: On malformed YAML shape or invalid values.
    Side Effects:
        Reads one file from disk.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"ingestion config not found: {p}")

    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("ingestion config must be a YAML mapping at top-level")

    version = _get_int(data, "version", required=True)
    ingestion = _get_mapping(data, "ingestion", required=True)

    gate_map = _get_mapping(ingestion, "gate", required=False)
    gate_defaults = GateConfig()
    gate = GateConfig(
        max_permits=_get_int_with_default(gate_map, "max_permits", default=gate_defaults.max_permits),  # noqa: E501
        acquire_timeout_s=_get_float_with_default(
            gate_map, "acquire_timeout_s", default=gate_defaults.acquire_timeout_s
        ),
        min_interval_s=_get_float_with_default(
            gate_map, "min_interval_s", default=gate_defaults.min_interval_s
        ),
        rate_limit_retries=_get_int_with_default(
            gate_map, "rate_limit_retries", default=gate_defaults.rate_limit_retries
        ),
    )

    tinvest_map = _get_mapping(ingestion, "tinvest", required=False)
    backoff_map = _get_mapping(tinvest_map, "backoff", required=False)
    tinvest_defaults = TInvestConfig()
    backoff_defaults = tinvest_defaults.backoff
    tinvest = TInvestConfig(
        base_url=_get_str_with_default(tinvest_map, "base_url", default=tinvest_defaults.base_url),  # noqa: E501
        timeout_s=_get_float_with_default(tinvest_map, "timeout_s", default=tinvest_defaults.timeout_s),  # noqa: E501
        retries=_get_int_with_default(tinvest_map, "retries", default=tinvest_defaults.retries),
        backoff=BackoffConfig(
            base_s=_get_float_with_default(backoff_map, "base_s", default=backoff_defaults.base_s),  # noqa: E501
            max_s=_get_float_with_default(backoff_map, "max_s", default=backoff_defaults.max_s),
            jitter_s=_get_float_with_default(backoff_map, "jitter_s", default=backoff_defaults.jitter_s),  # noqa: E501
        ),
        trade_source=_get_str_with_default(
            tinvest_map, "trade_source", default=tinvest_defaults.trade_source
        ),
    )

    session_map = _get_mapping(ingestion, "session_prices", required=False)
    session_defaults = SessionPricesConfig()
    session_prices = SessionPricesConfig(
        classes=_get_str_tuple_with_default(session_map, "classes", default=session_defaults.classes),  # type: ignore[arg-type]  # noqa: E501
        currencies=tuple(
            item.upper()
            for item in _get_str_tuple_with_default(
                session_map, "currencies", default=session_defaults.currencies
            )
        ),
        cutoffs=_parse_cutoffs(_get_mapping(session_map, "cutoffs", required=False)),
    )

    storage_map = _get_mapping(ingestion, "storage", required=False)
    storage_defaults = StorageConfig()
    storage = StorageConfig(
        **{
            name: _get_str_with_default(storage_map, name, default=getattr(storage_defaults, name))
            for name in StorageConfig.__dataclass_fields__
        }
    )

    triggers = tuple(_parse_trigger(item) for item in _get_list(ingestion, "triggers", required=True))  # noqa: E501

    return IngestionRuntimeConfig(
        version=version,
        timezone=_get_str_with_default(ingestion, "timezone", default="Europe/Moscow"),
        exchange=_get_str_with_default(ingestion, "exchange", default="MOEX"),
        calendar_mode=_get_str_with_default(ingestion, "calendar", default="exchange"),
        gate=gate,
        tinvest=tinvest,
        instrument_classes=_get_str_tuple_with_default(  # type: ignore[arg-type]
            ingestion, "instrument_classes", default=INSTRUMENT_CLASSES
        ),
        session_prices=session_prices,
        storage=storage,
        triggers=triggers,
    )


def _parse_trigger(item: Any) -> TriggerConfig:
    if not isinstance(item, dict):
        raise ValueError("each trigger entry must be a mapping")
    name = _get_str(item, "name", required=True)
    cron_map = _get_mapping(item, "cron", required=False)
    cron: dict[str, str | int] = {}
    for key, value in cron_map.items():
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError(f"triggers.{name}.cron.{key} must be a string or int")
        cron[str(key)] = value
    after = item.get("after")
    if after is not None and (not isinstance(after, str) or not after.strip()):
        raise ValueError(f"triggers.{name}.after must be a non-empty string")
    return TriggerConfig(
        name=name,
        task_prefix=_get_str_with_default(item, "task_prefix", default=name.upper()),
        stages=_get_str_tuple_with_default(item, "stages", default=()),
        cron=MappingProxyType(cron),
        day_offset=_get_int_with_default(item, "day_offset", default=0),
        calendar=_get_bool_with_default(item, "calendar", default=False),
        after=after,
    )


def _parse_cutoffs(data: Mapping[str, Any]) -> Mapping[SessionKind, Mapping[InstrumentClass, time]]:
    cutoffs: dict[Any, Mapping[Any, time]] = {}
    for kind, per_class in data.items():
        if not isinstance(per_class, dict):
            raise ValueError(f"session_prices.cutoffs.{kind} must be a mapping")
        parsed: dict[str, time] = {}
        for instrument_class, raw in per_class.items():
            if instrument_class not in INSTRUMENT_CLASSES:
                raise ValueError(f"session_prices.cutoffs.{kind} has unknown class {instrument_class!r}")  # noqa: E501
            try:
                parsed[instrument_class] = time.fromisoformat(str(raw))
            except ValueError as e:
                raise ValueError(f"session_prices.cutoffs.{kind}.{instrument_class} must be HH:MM:SS, got {raw!r}") from e  # noqa: E501
        cutoffs[kind] = MappingProxyType(parsed)
    return MappingProxyType(cutoffs)


def _resolve_env_name(*, environ: Mapping[str, str]) -> str:
    raw_env_name = environ.get(_ENV_NAME_KEY, "dev").strip().lower()
    if raw_env_name not in _ALLOWED_ENVS:
        raise ValueError(
            f"{_ENV_NAME_KEY} must be one of {_ALLOWED_ENVS}, got {raw_env_name!r}"
        )
    return raw_env_name


def _get_mapping(d: Mapping[str, Any], key: str, *, required: bool) -> Mapping[str, Any]:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return {}
    if not isinstance(v, dict):
        raise ValueError(f"expected mapping at key '{key}', got {type(v).__name__}")
    return v


def _get_list(d: Mapping[str, Any], key: str, *, required: bool) -> list[Any]:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return []
    if not isinstance(v, list):
        raise ValueError(f"expected list at key '{key}', got {type(v).__name__}")
    return v


def _get_str(d: Mapping[str, Any], key: str, *, required: bool) -> str:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return ""
    if not isinstance(v, str):
        raise ValueError(f"expected string at key '{key}', got {type(v).__name__}")
    if not v.strip():
        raise ValueError(f"key '{key}' must be non-empty")
    return v.strip()


def _get_str_with_default(d: Mapping[str, Any], key: str, *, default: str) -> str:
    if d.get(key) is None:
        return default
    return _get_str(d, key, required=True)


def _get_str_tuple_with_default(
    d: Mapping[str, Any],
    key: str,
    *,
    default: tuple[str, ...],
) -> tuple[str, ...]:
    if d.get(key) is None:
        return default
    items = _get_list(d, key, required=True)
    for item in items:
        if not isinstance(item, str) or not item.strip():
            raise ValueError(f"expected non-empty strings at key '{key}', got {item!r}")
    return tuple(item.strip() for item in items)


def _get_int(d: Mapping[str, Any], key: str, *, required: bool) -> int:
    v = d.get(key)
    if v is None:
        if required:
            raise ValueError(f"missing required key: {key}")
        return 0
    if isinstance(v, bool):
        raise ValueError(f"expected int at key '{key}', got bool")
    if not isinstance(v, int):
        raise ValueError(f"expected int at key '{key}', got {type(v).__name__}")
    return v


def _get_int_with_default(d: Mapping[str, Any], key: str, *, default: int) -> int:
    if d.get(key) is None:
        return default
    return _get_int(d, key, required=True)


def _get_float_with_default(d: Mapping[str, Any], key: str, *, default: float) -> float:
    v = d.get(key)
    if v is None:
        return default
    if isinstance(v, bool):
        raise ValueError(f"expected float at key '{key}', got bool")
    if isinstance(v, (int, float)):
        return float(v)
    raise ValueError(f"expected float at key '{key}', got {type(v).__name__}")


def _get_bool_with_default(d: Mapping[str, Any], key: str, *, default: bool) -> bool:
    v = d.get(key)
    if v is None:
        return default
    if not isinstance(v, bool):
        raise ValueError(f"expected bool at key '{key}', got {type(v).__name__}")
    return v


def _require_instrument_classes(name: str, classes: tuple[str, ...]) -> None:
    if not classes:
        raise ValueError(f"{name} must be non-empty")
    unknown = [item for item in classes if item not in INSTRUMENT_CLASSES]
    if unknown:
        raise ValueError(f"{name} has unknown instrument classes: {unknown}")


def _require_non_empty(name: str, s: str) -> None:
    if not isinstance(s, str) or not s.strip():
        raise ValueError(f"{name} must be a non-empty string")


def _require_positive(name: str, x: float) -> None:
    if x <= 0:
        raise ValueError(f"{name} must be > 0, got {x}")


def _require_non_negative(name: str, x: float) -> None:
    if x < 0:
        raise ValueError(f"{name} must be >= 0, got {x}")
