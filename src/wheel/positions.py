"""
Position projector for wheel journal events.

Folds option events into the set of open option positions, netting
opening and closing contracts per (ticker, strike, expiration, type) key
and tracking a contract-weighted average entry premium.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from src.constants import SHARES_PER_CONTRACT
from src.utils.date_utils import days_until

from .models import Event, OptionPosition
from .normalizer import active_events
from .state import EventKind, OptionType, PositionSide

logger = logging.getLogger(__name__)

PositionKey = tuple[str, float, str, OptionType]

# Kind names that reveal the option right when meta.leg is missing
CALL_KIND_NAMES = ("sell_call", "roll_call")
PUT_KIND_NAMES = ("sell_put", "roll_put")

# meta.closes values marking an auto-generated expiry row for an opening trade
SCHEDULED_CLOSE_REFERENCES = ("sell_to_open", "sell_put", "sell_call")

POSITION_KINDS = (
    EventKind.SELL_PUT,
    EventKind.SELL_CALL,
    EventKind.BUY_CLOSE,
    EventKind.EXPIRATION,
)


@dataclass
class _PositionLedger:
    """Running totals for one position key."""

    net_contracts: int = 0
    weighted_entry_price: float = 0.0
    opened_at: Optional[datetime] = None

    def open(self, contracts: int, premium: float, when: datetime) -> None:
        """
        Add opening contracts and blend the entry premium.

        new_avg = (old_avg * old_qty + premium * qty) / new_qty. Re-opening
        from a flat (or over-closed) key restarts the average.
        """
        base = max(self.net_contracts, 0)
        if base == 0:
            self.weighted_entry_price = 0.0
            self.opened_at = when

        total = base + contracts
        if total > 0:
            self.weighted_entry_price = (
                self.weighted_entry_price * base + premium * contracts
            ) / total
        self.net_contracts += contracts

    def close(self, contracts: int) -> None:
        """Remove contracts; the entry average is untouched."""
        self.net_contracts -= contracts


def explicit_option_type(event: Event) -> Optional[OptionType]:
    """
    Option type stated by the event itself.

    Checks meta.leg first ("call" is a call, any other leg is a put), then
    the kind name (sell_call/roll_call, sell_put/roll_put).

    Returns:
        OptionType, or None if the event does not say
    """
    leg = event.meta_value("leg")
    if leg:
        return OptionType.CALL if str(leg).strip().lower() == "call" else OptionType.PUT

    for name in (event.origin_kind, event.kind.value):
        if name in CALL_KIND_NAMES:
            return OptionType.CALL
        if name in PUT_KIND_NAMES:
            return OptionType.PUT
    return None


def infer_option_type(event: Event) -> OptionType:
    """Option type for an event, defaulting to a put when nothing says otherwise."""
    option_type = explicit_option_type(event)
    if option_type is None:
        logger.debug(f"Event {event.id}: no leg or kind hint, assuming put")
        return OptionType.PUT
    return option_type


def premium_per_share(event: Event, shares_per_contract: int = SHARES_PER_CONTRACT) -> float:
    """
    Per-share premium for an opening event.

    Uses the quoted premium when present, otherwise derives it from the
    aggregate cash amount: abs(amount) / contracts / shares_per_contract.
    """
    if event.premium_per_contract is not None:
        return abs(event.premium_per_contract)
    contracts = event.contracts or 1
    if contracts <= 0 or shares_per_contract <= 0:
        return 0.0
    return abs(event.amount) / contracts / shares_per_contract


def position_id(ticker: str, strike: float, expiration_date: str, option_type: OptionType) -> str:
    """Deterministic position id, e.g. "AAPL_150_2025-12-19_P"."""
    return f"{ticker}_{strike:g}_{expiration_date}_{option_type.value}"


def _expiration_applies(event: Event, as_of: date) -> bool:
    """
    Decide whether an expiration row closes contracts yet.

    Rows without meta.closes are recorded facts (an assignment's expiry)
    and apply at once. Rows whose meta.closes names an opening trade are
    scheduled expiries written when the option was sold; they only apply
    after their expiration date has passed. Any other meta.closes value
    matches nothing.
    """
    closes = event.meta_value("closes")
    if closes is None:
        return True
    if closes not in SCHEDULED_CLOSE_REFERENCES:
        logger.debug(f"Expiration {event.id}: meta.closes={closes!r} matches no opening trade")
        return False

    expiry = event.expiration_date or event.timestamp.date().isoformat()
    return date.fromisoformat(expiry) < as_of


def _resolve_close_type(
    event: Event, ticker: str, strike: float, expiration: str, ledgers: dict[PositionKey, _PositionLedger]
) -> OptionType:
    """Attach a close with no leg or kind hint to the only open type at its strike."""
    option_type = explicit_option_type(event)
    if option_type is not None:
        return option_type

    open_types = []
    for candidate in (OptionType.PUT, OptionType.CALL):
        ledger = ledgers.get((ticker, strike, expiration, candidate))
        if ledger is not None and ledger.net_contracts > 0:
            open_types.append(candidate)
    if len(open_types) == 1:
        return open_types[0]
    return OptionType.PUT


def project_positions(
    events: Iterable[Event],
    as_of: Optional[date] = None,
    shares_per_contract: int = SHARES_PER_CONTRACT,
) -> list[OptionPosition]:
    """
    Fold option events into open option positions.

    Events are replayed chronologically (ties broken by id). Opening sells
    add contracts and blend the weighted entry premium; buy-backs and
    applicable expirations subtract contracts without changing it. Net
    contracts are a plain signed sum, so the result does not depend on
    the order of opens and closes within a key.

    Args:
        events: Canonical events (soft-deleted ones are ignored)
        as_of: Date for DTE and scheduled expiries (defaults to today)
        shares_per_contract: Contract multiplier for aggregate premiums

    Returns:
        Positions with net_contracts > 0, sorted by ticker, expiration, strike, type
    """
    as_of = as_of or date.today()
    ledgers: dict[PositionKey, _PositionLedger] = {}

    for event in active_events(events):
        if event.kind not in POSITION_KINDS:
            continue
        if event.strike is None or not event.expiration_date:
            logger.debug(f"Event {event.id}: option event without strike/expiration, skipped")
            continue
        if event.kind == EventKind.EXPIRATION and not _expiration_applies(event, as_of):
            continue

        ticker = event.ticker
        strike = float(event.strike)
        expiration = event.expiration_date
        contracts = abs(event.contracts or 1)

        if event.kind.is_opening:
            option_type = infer_option_type(event)
            ledger = ledgers.setdefault((ticker, strike, expiration, option_type), _PositionLedger())
            ledger.open(
                contracts,
                premium_per_share(event, shares_per_contract),
                event.timestamp,
            )
        else:
            option_type = _resolve_close_type(event, ticker, strike, expiration, ledgers)
            ledger = ledgers.setdefault((ticker, strike, expiration, option_type), _PositionLedger())
            ledger.close(contracts)

    positions = []
    for (ticker, strike, expiration, option_type), ledger in ledgers.items():
        if ledger.net_contracts <= 0:
            continue
        positions.append(
            OptionPosition(
                id=position_id(ticker, strike, expiration, option_type),
                ticker=ticker,
                strike=strike,
                expiration_date=expiration,
                option_type=option_type,
                side=PositionSide.SHORT,
                net_contracts=ledger.net_contracts,
                weighted_entry_price=ledger.weighted_entry_price,
                days_to_expiration=days_until(expiration, as_of) or 0,
                opened_date=ledger.opened_at.date().isoformat() if ledger.opened_at else "",
            )
        )

    positions.sort(key=lambda p: (p.ticker, p.expiration_date, p.strike, p.option_type.value))
    logger.debug(f"Projected {len(positions)} open positions from {len(ledgers)} keys")
    return positions
