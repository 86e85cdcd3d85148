"""
Single entry point that turns a journal into a derived view.

derive_view() is a pure function of its inputs: the same events, marks,
earnings dates, overrides and date always give the same view.
"""

import logging
from collections.abc import Mapping
from datetime import date
from typing import Any, Iterable, Optional

from src.utils.date_utils import to_ymd

from .alerts import AlertEngine
from .config import ProjectionConfig
from .models import DerivedView, Event
from .normalizer import SymbolLookup, active_events, normalize
from .positions import project_positions
from .share_lots import project_share_lots
from .state import EventKind, PhaseOverride, classify_phases

logger = logging.getLogger(__name__)


def journal_earnings(events: Iterable[Event]) -> dict[str, str]:
    """
    Earnings dates recorded in the journal, keyed by ticker.

    Events are read in order, so the latest earnings_set row per ticker wins.
    """
    found: dict[str, str] = {}
    for event in events:
        if event.kind != EventKind.EARNINGS_SET:
            continue
        value = event.meta_value("date")
        try:
            found[event.ticker] = to_ymd(value)
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring earnings date on event {event.id}: {e}")
    return found


def derive_view(
    events: Iterable[Any],
    marks: Optional[Mapping[str, float]] = None,
    earnings: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, PhaseOverride]] = None,
    as_of: Optional[date] = None,
    config: Optional[ProjectionConfig] = None,
    symbols: Optional[SymbolLookup] = None,
    engine: Optional[AlertEngine] = None,
) -> DerivedView:
    """
    Project positions, share lots, phases and alerts from journal events.

    Args:
        events: Canonical events, or raw journal rows / trade records
        marks: Current option price per share keyed by position id
        earnings: Next earnings date (YYYY-MM-DD) keyed by ticker; overrides
            dates recorded by earnings_set journal entries
        overrides: Manual wheel phase keyed by ticker
        as_of: Evaluation date (defaults to today)
        config: Projection and alert thresholds
        symbols: Symbol id lookup, used only when raw trade records are given
        engine: Alert engine with a custom rule set

    Returns:
        DerivedView with every derived collection
    """
    config = config or ProjectionConfig()
    as_of = as_of or date.today()
    records = list(events)

    if all(isinstance(record, Event) for record in records):
        canonical = active_events(records)
    else:
        canonical = normalize(records, symbols)

    positions = project_positions(canonical, as_of, config.shares_per_contract)
    marks = marks or {}
    for position in positions:
        if position.id in marks:
            position.mark = marks[position.id]

    share_lots = project_share_lots(canonical, config.shares_per_contract)
    phases = classify_phases(positions, share_lots, overrides)

    # Dates passed by the caller take precedence over journal entries
    earnings_by_ticker = journal_earnings(canonical)
    earnings_by_ticker.update(
        {ticker.strip().upper(): day for ticker, day in (earnings or {}).items()}
    )

    engine = engine or AlertEngine()
    alerts = engine.generate(positions, share_lots, earnings_by_ticker, marks, as_of, config)

    logger.debug(
        f"Derived view from {len(canonical)} events: {len(positions)} positions, "
        f"{len(share_lots)} share lots, {len(alerts)} alerts"
    )
    return DerivedView(
        positions=positions,
        share_lots=share_lots,
        phases=phases,
        alerts=alerts,
    )
