"""State enums and the wheel phase classifier."""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Mapping, Optional, Union

if TYPE_CHECKING:
    from .models import OptionPosition, ShareLot, TickerPhase

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Canonical journal event kinds understood by the projection."""

    SELL_PUT = "sell_put"  # Open short put - COLLECT PREMIUM
    SELL_CALL = "sell_call"  # Open short call - COLLECT PREMIUM
    BUY_CLOSE = "buy_close"  # Buy back an open short
    PUT_ASSIGNED = "put_assigned"  # Put assigned - BOUGHT SHARES
    CALL_ASSIGNED = "call_assigned"  # Call exercised - SOLD SHARES
    DIVIDEND = "dividend"
    FEE = "fee"
    EXPIRATION = "expiration"  # Option leg expired or was assigned away
    EARNINGS_SET = "earnings_set"  # Upcoming earnings date in meta.date; no cash or position

    @property
    def is_opening(self) -> bool:
        """True for events that open a short option."""
        return self in (EventKind.SELL_PUT, EventKind.SELL_CALL)

    @property
    def is_closing(self) -> bool:
        """True for events that reduce an open option."""
        return self in (EventKind.BUY_CLOSE, EventKind.EXPIRATION)


class OptionType(Enum):
    """Option right."""

    PUT = "P"
    CALL = "C"


class PositionSide(Enum):
    """Whether the position was sold (short) or bought (long) to open."""

    SHORT = "S"
    LONG = "B"


class WheelPhase(Enum):
    """
    Phases of the wheel cycle, valued with their display labels.

    The wheel alternates between two fundamental situations:
    - No shares: sell cash-secured puts until assigned
    - Shares: sell covered calls until called away
    """

    SELL_CASH_SECURED_PUT = "Sell Cash Secured Puts"
    PUT_EXPIRES_WORTHLESS = "Put Expires Worthless"
    BUY_AT_STRIKE = "Buy At Strike"
    SELL_COVERED_CALL = "Sell Covered Calls"
    CALL_EXPIRES_WORTHLESS = "Call Expires Worthless"
    CALL_EXERCISED_SELL_SHARES = "Call Exercised Sell Shares"
    REPEAT = "Repeat"

    @classmethod
    def parse(cls, value: Union["WheelPhase", str]) -> "WheelPhase":
        """
        Resolve a phase from a member, member name or display label.

        Raises:
            ValueError: If the value does not name a phase.
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for phase in cls:
            if text in (phase.name, phase.value) or text.upper() == phase.name:
                return phase
        raise ValueError(
            f"Unknown wheel phase '{value}'. "
            f"Valid phases: {[p.name for p in cls]}"
        )


PhaseOverride = Union[WheelPhase, str]


def classify_phase(
    ticker: str,
    has_shares: bool,
    has_short_puts: bool,
    has_short_calls: bool,
    override: Optional[PhaseOverride] = None,
) -> "TickerPhase":
    """
    Map a ticker's current holdings shape to a wheel phase.

    The phase is read fresh from holdings every time rather than tracked
    through stored transitions, so every shape maps to exactly one phase
    and there is no illegal-transition path. Rules, first match wins:

    1. A manual override always wins.
    2. No shares, no short puts, no short calls -> sell cash-secured puts.
    3. No shares, short puts open -> still selling cash-secured puts.
    4. Shares, no short calls -> sell covered calls.
    5. Shares and short calls -> wait for the call to expire worthless.
    6. Anything else (naked calls without shares) -> repeat.

    Args:
        ticker: Stock ticker
        has_shares: Ticker has a share lot with shares
        has_short_puts: Ticker has open short puts
        has_short_calls: Ticker has open short calls
        override: Manual phase override for this ticker

    Returns:
        TickerPhase for the ticker

    Raises:
        ValueError: If override does not name a phase.
    """
    from .models import TickerPhase

    if override is not None:
        return TickerPhase(
            ticker=ticker, phase=WheelPhase.parse(override), is_manual_override=True
        )

    if not has_shares and not has_short_puts and not has_short_calls:
        phase = WheelPhase.SELL_CASH_SECURED_PUT
    elif not has_shares and has_short_puts:
        phase = WheelPhase.SELL_CASH_SECURED_PUT
    elif has_shares and not has_short_calls:
        phase = WheelPhase.SELL_COVERED_CALL
    elif has_shares and has_short_calls:
        phase = WheelPhase.CALL_EXPIRES_WORTHLESS
    else:
        phase = WheelPhase.REPEAT

    return TickerPhase(ticker=ticker, phase=phase, is_manual_override=False)


def classify_phases(
    positions: Iterable["OptionPosition"],
    share_lots: Iterable["ShareLot"],
    overrides: Optional[Mapping[str, PhaseOverride]] = None,
) -> dict[str, "TickerPhase"]:
    """
    Classify every ticker that has positions, shares or an override.

    Overrides that do not name a phase are ignored with a warning so that
    one bad entry in the override map cannot break the whole view.

    Args:
        positions: Open option positions
        share_lots: Open share lots
        overrides: Manual phase overrides keyed by ticker

    Returns:
        Dict mapping ticker to TickerPhase, in ticker order
    """
    positions = list(positions)
    lots = list(share_lots)
    overrides = overrides or {}

    tickers_with_shares = {lot.ticker for lot in lots if lot.net_shares > 0}
    short_puts = {
        p.ticker
        for p in positions
        if p.option_type == OptionType.PUT and p.side == PositionSide.SHORT
    }
    short_calls = {
        p.ticker
        for p in positions
        if p.option_type == OptionType.CALL and p.side == PositionSide.SHORT
    }

    tickers = (
        {p.ticker for p in positions}
        | {lot.ticker for lot in lots}
        | {t.upper() for t in overrides}
    )
    normalized_overrides = {t.upper(): v for t, v in overrides.items()}

    phases: dict[str, "TickerPhase"] = {}
    for ticker in sorted(tickers):
        override = normalized_overrides.get(ticker)
        if override is not None:
            try:
                WheelPhase.parse(override)
            except ValueError as e:
                logger.warning(f"Ignoring phase override for {ticker}: {e}")
                override = None

        phases[ticker] = classify_phase(
            ticker,
            has_shares=ticker in tickers_with_shares,
            has_short_puts=ticker in short_puts,
            has_short_calls=ticker in short_calls,
            override=override,
        )

    return phases
