from .concurrency_gate import ConcurrencyGate
from .fetch_orchestrator import BatchStage, FetchOrchestrator
from .schedule_coordinator import PipelineStage, ScheduleCoordinator, TriggerDefinition
from .session_price_deriver import SessionPriceDeriver
from .trading_calendar import ExchangeTradingCalendar, TradingCalendar, WeekendTradingCalendar

__all__ = [
    "BatchStage",
    "ConcurrencyGate",
    "ExchangeTradingCalendar",
    "FetchOrchestrator",
    "PipelineStage",
    "ScheduleCoordinator",
    "SessionPriceDeriver",
    "TradingCalendar",
    "TriggerDefinition",
    "WeekendTradingCalendar",
]
