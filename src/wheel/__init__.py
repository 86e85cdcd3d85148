"""
Wheel Journal - Derive wheel strategy state from an options journal.

This package folds an append-only journal of option and share events into
open option positions, share lots, a wheel phase per ticker and a ranked
list of actionable alerts.

Public API:
    derive_view: Project every derived collection from journal events
    journal_earnings: Earnings dates recorded by earnings_set entries
    normalize: Map raw journal rows and trade records onto canonical events
    project_positions: Net option events into open positions
    project_share_lots: Fold share events into weighted-cost lots
    classify_phase / classify_phases: Wheel phase per ticker
    generate_alerts: Run the built-in alert rules
    ProjectionService: Recompute and push views when inputs change
"""

from .alerts import AlertEngine, build_context, generate_alerts, sort_alerts
from .config import ProjectionConfig, load_config
from .derive import derive_view, journal_earnings
from .exceptions import (
    ConfigurationError,
    MalformedEventError,
    SymbolNotFoundError,
    UnknownEventKindError,
    WheelError,
)
from .models import (
    Alert,
    AlertAction,
    AlertCategory,
    AlertPriority,
    DerivedView,
    Event,
    MinStrikeCalculation,
    OptionPosition,
    ShareLot,
    TickerPhase,
    TickerSummary,
)
from .normalizer import active_events, normalize
from .positions import project_positions
from .rules import AlertContext, AlertRule, TickerAlertRule
from .share_lots import project_share_lots
from .state import (
    EventKind,
    OptionType,
    PositionSide,
    WheelPhase,
    classify_phase,
    classify_phases,
)
from .summary import calculate_min_strike, summarize_tickers

__all__ = [
    # Entry points
    "derive_view",
    "journal_earnings",
    "normalize",
    "active_events",
    "project_positions",
    "project_share_lots",
    "classify_phase",
    "classify_phases",
    "generate_alerts",
    "summarize_tickers",
    "calculate_min_strike",
    # Alerting
    "AlertEngine",
    "AlertContext",
    "AlertRule",
    "TickerAlertRule",
    "build_context",
    "sort_alerts",
    # Models
    "Event",
    "OptionPosition",
    "ShareLot",
    "TickerPhase",
    "Alert",
    "AlertAction",
    "AlertCategory",
    "AlertPriority",
    "DerivedView",
    "TickerSummary",
    "MinStrikeCalculation",
    # State
    "EventKind",
    "OptionType",
    "PositionSide",
    "WheelPhase",
    # Configuration
    "ProjectionConfig",
    "load_config",
    # Exceptions
    "WheelError",
    "MalformedEventError",
    "UnknownEventKindError",
    "SymbolNotFoundError",
    "ConfigurationError",
]


# Deferred import; the service pulls in the whole derivation stack
def __getattr__(name: str):
    """Lazy import for ProjectionService."""
    if name in ("ProjectionService", "Subscription"):
        from . import service

        return getattr(service, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
