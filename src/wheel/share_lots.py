"""
Share lot projector for wheel journal events.

Shares are fungible, so lots are grouped by ticker only. Acquisitions
blend the weighted-average cost; dispositions reduce the share count at
an unchanged average cost.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from src.constants import SHARES_PER_CONTRACT

from .models import Event, ShareLot
from .normalizer import active_events
from .state import EventKind

logger = logging.getLogger(__name__)


@dataclass
class _LotLedger:
    """Running totals for one ticker's shares."""

    net_shares: int = 0
    weighted_cost_per_share: float = 0.0
    opened_at: Optional[datetime] = None

    def acquire(self, shares: int, price: float, when: datetime) -> None:
        if self.net_shares <= 0:
            self.net_shares = 0
            self.weighted_cost_per_share = 0.0
            self.opened_at = when

        total = self.net_shares + shares
        if total > 0:
            self.weighted_cost_per_share = (
                self.weighted_cost_per_share * self.net_shares + price * shares
            ) / total
        self.net_shares = total

    def dispose(self, shares: int) -> None:
        """Reduce shares, never below zero; average cost is held constant."""
        self.net_shares = max(0, self.net_shares - shares)


def share_count(event: Event, shares_per_contract: int = SHARES_PER_CONTRACT) -> int:
    """Shares moved by an assignment or share trade."""
    if event.shares:
        return abs(event.shares)
    return abs(event.contracts or 0) * shares_per_contract


def share_price(event: Event, shares: int) -> float:
    """
    Per-share price for an acquisition.

    Explicit price first, then the strike (assignments fill at the strike),
    then the cash amount spread over the shares.
    """
    if event.price_per_share is not None:
        return abs(event.price_per_share)
    if event.strike is not None:
        return abs(event.strike)
    if shares > 0:
        return abs(event.amount) / shares
    return 0.0


def project_share_lots(
    events: Iterable[Event],
    shares_per_contract: int = SHARES_PER_CONTRACT,
) -> list[ShareLot]:
    """
    Fold share acquisitions and dispositions into per-ticker lots.

    put_assigned (assignment or direct purchase) adds shares and blends the
    cost; call_assigned (called away or direct sale) removes shares,
    clamping at zero, and leaves the average cost alone.

    Args:
        events: Canonical events (soft-deleted ones are ignored)
        shares_per_contract: Contract multiplier when only contracts are given

    Returns:
        Lots with net_shares > 0, sorted by ticker
    """
    ledgers: dict[str, _LotLedger] = {}

    for event in active_events(events):
        if event.kind == EventKind.PUT_ASSIGNED:
            shares = share_count(event, shares_per_contract)
            if shares <= 0:
                logger.debug(f"Event {event.id}: acquisition without shares, skipped")
                continue
            ledger = ledgers.setdefault(event.ticker, _LotLedger())
            ledger.acquire(shares, share_price(event, shares), event.timestamp)
        elif event.kind == EventKind.CALL_ASSIGNED:
            ledger = ledgers.get(event.ticker)
            if ledger is None:
                logger.debug(f"Event {event.id}: disposal of {event.ticker} with no shares held")
                continue
            ledger.dispose(share_count(event, shares_per_contract))

    lots = [
        ShareLot(
            ticker=ticker,
            net_shares=ledger.net_shares,
            weighted_cost_per_share=ledger.weighted_cost_per_share,
            opened_date=ledger.opened_at.date().isoformat() if ledger.opened_at else "",
        )
        for ticker, ledger in sorted(ledgers.items())
        if ledger.net_shares > 0
    ]
    logger.debug(f"Projected {len(lots)} share lots")
    return lots
