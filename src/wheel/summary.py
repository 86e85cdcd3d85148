"""Per-ticker cash-flow summaries and covered-call minimum strikes."""

import logging
from typing import Iterable, Optional

from src.constants import SHARES_PER_CONTRACT

from .models import Event, MinStrikeCalculation, OptionPosition, ShareLot, TickerSummary
from .normalizer import active_events
from .positions import project_positions
from .share_lots import project_share_lots
from .state import EventKind, OptionType

logger = logging.getLogger(__name__)


def summarize_tickers(
    events: Iterable[Event],
    shares_per_contract: int = SHARES_PER_CONTRACT,
) -> list[TickerSummary]:
    """
    Summarize premium, dividends, fees and holdings per ticker.

    Args:
        events: Canonical events (soft-deleted ones are ignored)
        shares_per_contract: Contract multiplier

    Returns:
        One summary per ticker that appears in the journal, sorted by ticker
    """
    live = active_events(events)
    summaries: dict[str, TickerSummary] = {}

    for event in live:
        if event.kind == EventKind.EARNINGS_SET:
            continue
        summary = summaries.get(event.ticker)
        if summary is None:
            summary = TickerSummary(ticker=event.ticker, first_trade=event.timestamp)
            summaries[event.ticker] = summary

        if event.kind.is_opening:
            summary.premium_collected += abs(event.amount)
        elif event.kind == EventKind.BUY_CLOSE:
            summary.premium_paid += abs(event.amount)
        elif event.kind == EventKind.DIVIDEND:
            summary.dividends += event.amount
        elif event.kind == EventKind.FEE:
            summary.fees += abs(event.amount)

        event_fees = abs(event.fees or 0.0)
        summary.fees += event_fees
        summary.net_cash += event.amount - event_fees

    for lot in project_share_lots(live, shares_per_contract):
        if lot.ticker in summaries:
            summaries[lot.ticker].shares_owned = lot.net_shares
            summaries[lot.ticker].avg_cost = lot.weighted_cost_per_share

    # Scheduled expiries are judged against today when counting open contracts
    for position in project_positions(live, shares_per_contract=shares_per_contract):
        summary = summaries[position.ticker]
        if position.option_type == OptionType.PUT:
            summary.open_puts += position.net_contracts
        else:
            summary.open_calls += position.net_contracts

    return [summaries[ticker] for ticker in sorted(summaries)]


def calculate_min_strike(
    ticker: str,
    share_lots: Iterable[ShareLot],
    positions: Iterable[OptionPosition],
) -> Optional[MinStrikeCalculation]:
    """
    Lowest covered-call strike that would not lock in a loss on the shares.

    min_strike = max(0, avg_cost - premium_received), where premium_received
    is the contract-weighted entry premium of the ticker's short calls.

    Returns:
        MinStrikeCalculation, or None if no shares are held for the ticker
    """
    ticker = ticker.upper()
    lot = next((s for s in share_lots if s.ticker == ticker and s.net_shares > 0), None)
    if lot is None:
        logger.debug(f"No shares held for {ticker}, no minimum strike")
        return None

    calls = [
        p
        for p in positions
        if p.ticker == ticker and p.option_type == OptionType.CALL and p.is_short
    ]
    contracts = sum(p.net_contracts for p in calls)
    premium = 0.0
    if contracts > 0:
        premium = sum(p.weighted_entry_price * p.net_contracts for p in calls) / contracts

    return MinStrikeCalculation(
        ticker=ticker,
        avg_cost=lot.weighted_cost_per_share,
        premium_received=premium,
        shares_owned=lot.net_shares,
        min_strike=max(0.0, lot.weighted_cost_per_share - premium),
    )
