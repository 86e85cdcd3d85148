"""
Alert rules for open wheel positions.

Each rule is independent: it looks at one position (or one ticker) plus a
shared read-only context and returns at most one alert. Adding or
removing a rule never changes another rule's output.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from src.utils.date_utils import days_until

from .config import ProjectionConfig
from .models import (
    Alert,
    AlertAction,
    AlertCategory,
    AlertPriority,
    OptionPosition,
    ShareLot,
)
from .state import OptionType

logger = logging.getLogger(__name__)

CLOSE = AlertAction("Close", "close")
ROLL = AlertAction("Roll", "roll")
VIEW = AlertAction("View", "view")
DISMISS = AlertAction("Dismiss", "dismiss")


def profit_capture_pct(entry: float, mark: float) -> float:
    """
    Percent of max profit captured on a short option.

    max(0, entry - mark) / entry * 100, capped at 100. A non-positive entry
    premium has no max profit to capture and returns 0.
    """
    if entry <= 0:
        return 0.0
    return min(100.0, max(0.0, (entry - max(0.0, mark)) / entry * 100))


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


@dataclass
class AlertContext:
    """
    Read-only inputs shared by every rule in one pass.

    Aggregates are computed once by the engine so rules stay cheap.
    """

    positions: list[OptionPosition] = field(default_factory=list)
    lots: list[ShareLot] = field(default_factory=list)
    earnings: dict[str, str] = field(default_factory=dict)  # ticker -> YYYY-MM-DD
    marks: dict[str, float] = field(default_factory=dict)  # position id -> mark
    as_of: date = field(default_factory=date.today)
    config: ProjectionConfig = field(default_factory=ProjectionConfig)
    shares_by_ticker: dict[str, int] = field(default_factory=dict)
    short_call_shares_by_ticker: dict[str, int] = field(default_factory=dict)
    capital_by_ticker: dict[str, float] = field(default_factory=dict)

    @property
    def total_capital(self) -> float:
        """Cash securing all short puts."""
        return sum(self.capital_by_ticker.values())

    def mark_for(self, position: OptionPosition) -> Optional[float]:
        """Current mark for a position, if the quote collaborator supplied one."""
        if position.mark is not None:
            return position.mark
        return self.marks.get(position.id)

    def days_to_earnings(self, ticker: str) -> Optional[int]:
        earnings_date = self.earnings.get(ticker)
        if not earnings_date:
            return None
        return days_until(earnings_date, self.as_of)


class AlertRule(ABC):
    """
    Base class for position-level alert rules.

    Subclasses set the class attributes and implement check().
    """

    rule_id: str = ""
    name: str = ""
    category: AlertCategory = AlertCategory.STRATEGIC
    enabled: bool = True

    @abstractmethod
    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        """Return an alert for the position, or None."""

    def _alert(self, alert_id: str, position: OptionPosition, **kwargs) -> Alert:
        return Alert(
            id=alert_id,
            ticker=position.ticker,
            category=self.category,
            rule_id=self.rule_id,
            metadata={"position_id": position.id},
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule_id={self.rule_id!r}, enabled={self.enabled})"


class TickerAlertRule(ABC):
    """Base class for rules evaluated once per ticker rather than per position."""

    rule_id: str = ""
    name: str = ""
    category: AlertCategory = AlertCategory.STRATEGIC
    enabled: bool = True

    @abstractmethod
    def check_ticker(self, ticker: str, context: AlertContext) -> Optional[Alert]:
        """Return an alert for the ticker, or None."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule_id={self.rule_id!r}, enabled={self.enabled})"


class ProfitTargetRule(AlertRule):
    """Short positions that have captured most of their premium."""

    rule_id = "profit-target"
    name = "Profit Target"
    category = AlertCategory.PROFIT_TARGET

    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        if not position.is_short:
            return None
        mark = context.mark_for(position)
        if mark is None:
            return None

        pct = profit_capture_pct(position.weighted_entry_price, mark)
        urgent, info, opportunity = context.config.profit_target_tiers
        desc = f"{position.ticker} {position.label}"

        # Highest tier wins, one alert per position
        if pct >= urgent:
            return self._alert(
                f"profit-{urgent:g}-{position.id}",
                position,
                priority=AlertPriority.URGENT,
                title=f"{position.ticker} {pct:.0f}% max profit",
                message=f"{desc} has captured {pct:.0f}% of max profit. Close now to lock in gains.",
                actions=[CLOSE, VIEW],
            )
        if pct >= info:
            return self._alert(
                f"profit-{info:g}-{position.id}",
                position,
                priority=AlertPriority.INFO,
                title=f"{position.ticker} {pct:.0f}% profit captured",
                message=f"{desc} has {pct:.0f}% of max profit. Consider closing or holding.",
                actions=[CLOSE, DISMISS],
            )
        if pct >= opportunity:
            return self._alert(
                f"profit-{opportunity:g}-{position.id}",
                position,
                priority=AlertPriority.OPPORTUNITY,
                title=f"{position.ticker} {opportunity:g}%+ profit available",
                message=f"{desc} has {pct:.0f}% profit. Good opportunity to close.",
                actions=[VIEW],
            )
        return None


class ExpirationWarningRule(AlertRule):
    """Positions close to expiration."""

    rule_id = "expiration-warning"
    name = "Expiration Warning"
    category = AlertCategory.EXPIRATION

    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        dte = position.days_to_expiration
        urgent, warning, info = context.config.expiration_tiers
        desc = f"{position.ticker} {position.label}"

        if dte <= urgent:
            if dte < 0:
                when = f"expired {_plural(-dte, 'day')} ago"
            elif dte == 0:
                when = "expires today"
            else:
                when = "expires tomorrow" if dte == 1 else f"expires in {dte} days"
            return self._alert(
                f"exp-urgent-{position.id}",
                position,
                priority=AlertPriority.URGENT,
                title=f"{position.ticker} {when}",
                message=f"{desc} {when}. Take action immediately.",
                actions=[CLOSE, ROLL],
                dismissible=False,
            )
        if dte <= warning:
            return self._alert(
                f"exp-warning-{position.id}",
                position,
                priority=AlertPriority.WARNING,
                title=f"{position.ticker} expires in {dte} days",
                message=f"{desc} expires soon. Plan your action.",
                actions=[CLOSE, ROLL],
            )
        if dte <= info:
            return self._alert(
                f"exp-info-{position.id}",
                position,
                priority=AlertPriority.INFO,
                title=f"{position.ticker} expires in {dte} days",
                message=f"{desc} expires this week. Monitor closely.",
                actions=[VIEW],
            )
        return None


class EarningsProximityRule(AlertRule):
    """
    Upcoming earnings on a ticker with open options.

    The alert id is per ticker, so several positions on one ticker
    collapse into a single earnings alert.
    """

    rule_id = "earnings-alert"
    name = "Earnings Alert"
    category = AlertCategory.EARNINGS

    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        days = context.days_to_earnings(position.ticker)
        # Unknown date, or earnings already reported
        if days is None or days < 0:
            return None

        urgent, warning, info, planning = context.config.earnings_tiers
        ticker = position.ticker
        desc = position.label

        if days <= urgent:
            when = "today" if days == 0 else "tomorrow" if days == 1 else f"in {days} days"
            return self._alert(
                f"earnings-urgent-{ticker}",
                position,
                priority=AlertPriority.URGENT,
                title=f"{ticker} earnings {when}",
                message=(
                    f"URGENT: {ticker} reports earnings {when}. "
                    f"Close {desc} to avoid assignment risk."
                ),
                actions=[CLOSE, ROLL],
                dismissible=False,
            )
        if days <= warning:
            return self._alert(
                f"earnings-warning-{ticker}",
                position,
                priority=AlertPriority.WARNING,
                title=f"{ticker} earnings in {days} days",
                message=(
                    f"{ticker} reports earnings in {days} days. High IV. "
                    f"Consider closing {desc} to avoid risk."
                ),
                actions=[CLOSE, VIEW],
            )
        if days <= info:
            return self._alert(
                f"earnings-info-{ticker}",
                position,
                priority=AlertPriority.INFO,
                title=f"{ticker} earnings next week",
                message=f"{ticker} reports earnings in {days} days. Plan action for {desc}.",
                actions=[VIEW],
            )
        if days <= planning:
            return self._alert(
                f"earnings-plan-{ticker}",
                position,
                priority=AlertPriority.OPPORTUNITY,
                title=f"{ticker} earnings in {days} days",
                message=(
                    f"{ticker} reports earnings in {days} days. "
                    f"Start planning action for {desc}."
                ),
                actions=[VIEW],
            )
        return None


class RollOpportunityRule(AlertRule):
    """Profitable shorts near expiration that could be rolled forward."""

    rule_id = "roll-opportunity"
    name = "Roll Opportunity"
    category = AlertCategory.ROLL_OPPORTUNITY

    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        if not position.is_short:
            return None
        min_dte, max_dte = context.config.roll_dte_window
        if not min_dte <= position.days_to_expiration <= max_dte:
            return None
        mark = context.mark_for(position)
        if mark is None:
            return None

        pct = profit_capture_pct(position.weighted_entry_price, mark)
        if pct < context.config.roll_min_profit_pct:
            return None

        return self._alert(
            f"roll-{position.id}",
            position,
            priority=AlertPriority.INFO,
            title=f"{position.ticker} ready to roll",
            message=(
                f"{position.ticker} {position.label} has {position.days_to_expiration} DTE "
                f"and {pct:.0f}% profit captured. Consider rolling to next month "
                "for additional premium."
            ),
            actions=[ROLL, CLOSE],
        )


class UncoveredCallsRule(AlertRule):
    """Short calls not fully backed by owned shares."""

    rule_id = "uncovered-calls"
    name = "Uncovered Calls Warning"
    category = AlertCategory.RISK_MANAGEMENT

    def check(self, position: OptionPosition, context: AlertContext) -> Optional[Alert]:
        if position.option_type != OptionType.CALL or not position.is_short:
            return None

        shares_owned = context.shares_by_ticker.get(position.ticker, 0)
        shares_needed = position.net_contracts * context.config.shares_per_contract
        uncovered = max(0, shares_needed - shares_owned)
        if uncovered <= 0:
            return None

        alert = self._alert(
            f"uncovered-{position.id}",
            position,
            priority=AlertPriority.WARNING,
            title=f"{position.ticker} calls partially uncovered",
            message=(
                f"Short {_plural(position.net_contracts, position.ticker + ' call')} "
                f"but only own {shares_owned} shares. "
                f"{uncovered} shares uncovered (unlimited risk)."
            ),
            actions=[AlertAction("Buy Shares", "custom"), AlertAction("Close Calls", "close")],
        )
        alert.metadata["uncovered_shares"] = uncovered
        return alert


class CoveredCallOpportunityRule(TickerAlertRule):
    """Owned shares that are not yet working under covered calls."""

    rule_id = "covered-call-opportunity"
    name = "Covered Call Opportunity"
    category = AlertCategory.STRATEGIC

    def check_ticker(self, ticker: str, context: AlertContext) -> Optional[Alert]:
        shares = context.shares_by_ticker.get(ticker, 0)
        covered = context.short_call_shares_by_ticker.get(ticker, 0)
        uncovered = max(0, shares - covered)
        if uncovered < context.config.covered_call_min_shares:
            return None

        contracts = uncovered // context.config.shares_per_contract
        return Alert(
            id=f"cc-opp-{ticker}",
            ticker=ticker,
            category=self.category,
            priority=AlertPriority.OPPORTUNITY,
            title=f"{ticker} covered call opportunity",
            message=(
                f"Own {uncovered} {ticker} shares with no covered calls. "
                f"Sell {_plural(contracts, 'call')} for premium income."
            ),
            actions=[AlertAction("Sell Calls", "custom"), DISMISS],
            rule_id=self.rule_id,
            metadata={"uncovered_shares": uncovered, "suggested_contracts": contracts},
        )


def default_position_rules() -> list[AlertRule]:
    """Fresh instances of the built-in position rules, in evaluation order."""
    return [
        ProfitTargetRule(),
        ExpirationWarningRule(),
        EarningsProximityRule(),
        RollOpportunityRule(),
        UncoveredCallsRule(),
    ]


def default_ticker_rules() -> list[TickerAlertRule]:
    """Fresh instances of the built-in ticker rules."""
    return [CoveredCallOpportunityRule()]
