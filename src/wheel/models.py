"""Data models for journal events and the state derived from them."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from src.constants import SHARES_PER_CONTRACT

from .state import EventKind, OptionType, PositionSide, WheelPhase


@dataclass(frozen=True)
class Event:
    """
    A single canonical journal event.

    Events are owned by the journal and never mutated. Edits and deletes
    arrive as new events (original_event_id) or soft-delete markers
    (deleted_at) rather than changes to existing records.
    """

    id: str
    timestamp: datetime
    ticker: str
    kind: EventKind
    amount: float = 0.0  # Signed cash flow (+ received, - paid)
    contracts: Optional[int] = None
    strike: Optional[float] = None
    expiration_date: Optional[str] = None  # YYYY-MM-DD
    premium_per_contract: Optional[float] = None  # Quoted premium, per share
    price_per_share: Optional[float] = None
    shares: Optional[int] = None  # Explicit share count for share events
    fees: Optional[float] = None
    meta: Optional[dict[str, Any]] = None
    deleted_at: Optional[str] = None
    edit_reason: Optional[str] = None
    original_event_id: Optional[str] = None
    origin_kind: Optional[str] = None  # Raw kind/type name before mapping

    def __post_init__(self):
        # Tickers compare upper-case everywhere; frozen, so bypass __setattr__
        object.__setattr__(self, "ticker", self.ticker.strip().upper())

    @property
    def is_deleted(self) -> bool:
        """True if the event carries a soft-delete marker."""
        return bool(self.deleted_at)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        """Chronological order with id as a deterministic tie-breaker."""
        return (self.timestamp, self.id)

    def meta_value(self, key: str, default: Any = None) -> Any:
        """Read a meta field, tolerating a missing meta dict."""
        if not self.meta:
            return default
        return self.meta.get(key, default)


@dataclass
class OptionPosition:
    """
    An open option position netted from the journal.

    Keyed by (ticker, strike, expiration, type). Only keys with a
    positive net contract count are ever produced.
    """

    id: str
    ticker: str
    strike: float
    expiration_date: str  # YYYY-MM-DD
    option_type: OptionType
    side: PositionSide = PositionSide.SHORT
    net_contracts: int = 0
    weighted_entry_price: float = 0.0  # Premium per share
    days_to_expiration: int = 0
    opened_date: str = ""  # YYYY-MM-DD
    mark: Optional[float] = None  # Current option price per share, if known

    @property
    def is_short(self) -> bool:
        return self.side == PositionSide.SHORT

    @property
    def shares_equivalent(self) -> int:
        """Number of shares represented by this position."""
        return self.net_contracts * SHARES_PER_CONTRACT

    @property
    def collateral(self) -> float:
        """Cash needed to secure the position if it were a put."""
        return self.strike * SHARES_PER_CONTRACT * self.net_contracts

    @property
    def label(self) -> str:
        """Short human-readable description (e.g. "P $150")."""
        return f"{self.option_type.value} ${self.strike:g}"


@dataclass
class ShareLot:
    """Fungible share holding for one ticker with weighted-average cost."""

    ticker: str
    net_shares: int = 0
    weighted_cost_per_share: float = 0.0
    opened_date: str = ""  # YYYY-MM-DD

    @property
    def total_cost(self) -> float:
        return self.net_shares * self.weighted_cost_per_share


@dataclass(frozen=True)
class TickerPhase:
    """Wheel phase for one ticker."""

    ticker: str
    phase: WheelPhase
    is_manual_override: bool = False


class AlertPriority(Enum):
    """Alert priority levels, in presentation order."""

    URGENT = "urgent"
    WARNING = "warning"
    INFO = "info"
    OPPORTUNITY = "opportunity"

    @property
    def rank(self) -> int:
        """Sort rank (lower number = higher priority)."""
        return PRIORITY_ORDER[self]


PRIORITY_ORDER: dict[AlertPriority, int] = {
    AlertPriority.URGENT: 1,
    AlertPriority.WARNING: 2,
    AlertPriority.INFO: 3,
    AlertPriority.OPPORTUNITY: 4,
}


class AlertCategory(Enum):
    """Alert category for grouping and filtering."""

    EXPIRATION = "expiration"
    PROFIT_TARGET = "profit_target"
    ROLL_OPPORTUNITY = "roll_opportunity"
    RISK_MANAGEMENT = "risk_management"
    STRATEGIC = "strategic"
    EARNINGS = "earnings"


@dataclass(frozen=True)
class AlertAction:
    """Action button offered with an alert."""

    label: str
    action: str  # "close", "roll", "view", "dismiss" or "custom"


@dataclass
class Alert:
    """
    A prioritized, human-readable alert.

    Alerts are regenerated on every pass. The id is derived from the rule
    and the source position (or ticker) so repeated renders stay stable.
    """

    id: str
    ticker: str
    category: AlertCategory
    priority: AlertPriority
    title: str
    message: str
    actions: list[AlertAction] = field(default_factory=list)
    dismissible: bool = True
    rule_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DerivedView:
    """Everything derived from one projection pass."""

    positions: list[OptionPosition] = field(default_factory=list)
    share_lots: list[ShareLot] = field(default_factory=list)
    phases: dict[str, TickerPhase] = field(default_factory=dict)
    alerts: list[Alert] = field(default_factory=list)

    @property
    def tickers(self) -> list[str]:
        """All tickers with positions, shares or a phase."""
        tickers = {p.ticker for p in self.positions}
        tickers.update(lot.ticker for lot in self.share_lots)
        tickers.update(self.phases)
        return sorted(tickers)

    def alerts_for(self, ticker: str) -> list[Alert]:
        return [a for a in self.alerts if a.ticker == ticker.upper()]


@dataclass
class TickerSummary:
    """Cash-flow and holdings summary for one ticker."""

    ticker: str
    premium_collected: float = 0.0
    premium_paid: float = 0.0  # Spent buying back shorts
    dividends: float = 0.0
    fees: float = 0.0
    net_cash: float = 0.0
    shares_owned: int = 0
    avg_cost: float = 0.0
    open_puts: int = 0
    open_calls: int = 0
    first_trade: Optional[datetime] = None

    @property
    def net_premium(self) -> float:
        """Premium kept after buy-backs."""
        return self.premium_collected - self.premium_paid


@dataclass
class MinStrikeCalculation:
    """
    Lowest covered-call strike that still avoids a realized loss.

    min_strike = avg_cost - premium_received, floored at zero.
    """

    ticker: str
    avg_cost: float = 0.0
    premium_received: float = 0.0
    shares_owned: int = 0
    min_strike: float = 0.0
