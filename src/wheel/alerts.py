"""
Alert engine.

Runs the configured rules over the derived positions and share lots,
collects their alerts, and returns them ranked urgent first.
"""

import logging
from collections.abc import Mapping
from datetime import date
from typing import Iterable, Optional, Union

from .config import ProjectionConfig
from .models import Alert, OptionPosition, ShareLot
from .rules import (
    AlertContext,
    AlertRule,
    TickerAlertRule,
    default_position_rules,
    default_ticker_rules,
)
from .state import OptionType

logger = logging.getLogger(__name__)

ShareHoldings = Union[Mapping[str, Union[ShareLot, int]], Iterable[ShareLot], None]


def _share_lots(holdings: ShareHoldings) -> list[ShareLot]:
    """Accept lots as a list, a ticker -> lot mapping or a ticker -> share count mapping."""
    if holdings is None:
        return []
    if isinstance(holdings, Mapping):
        lots = []
        for ticker, value in holdings.items():
            if isinstance(value, ShareLot):
                lots.append(value)
            else:
                lots.append(ShareLot(ticker=ticker.upper(), net_shares=int(value)))
        return lots
    return list(holdings)


def build_context(
    positions: Iterable[OptionPosition],
    share_lots: ShareHoldings = None,
    earnings: Optional[Mapping[str, str]] = None,
    marks: Optional[Mapping[str, float]] = None,
    as_of: Optional[date] = None,
    config: Optional[ProjectionConfig] = None,
) -> AlertContext:
    """
    Build the shared rule context and its per-ticker aggregates.

    shares_by_ticker counts owned shares, short_call_shares_by_ticker the
    shares committed to short calls, and capital_by_ticker the cash
    securing short puts.
    """
    config = config or ProjectionConfig()
    positions = list(positions)
    lots = _share_lots(share_lots)

    shares_by_ticker: dict[str, int] = {}
    for lot in lots:
        if lot.net_shares > 0:
            shares_by_ticker[lot.ticker] = shares_by_ticker.get(lot.ticker, 0) + lot.net_shares

    short_call_shares: dict[str, int] = {}
    capital: dict[str, float] = {}
    for position in positions:
        if not position.is_short:
            continue
        if position.option_type == OptionType.CALL:
            short_call_shares[position.ticker] = (
                short_call_shares.get(position.ticker, 0)
                + position.net_contracts * config.shares_per_contract
            )
        else:
            capital[position.ticker] = (
                capital.get(position.ticker, 0.0)
                + position.strike * config.shares_per_contract * position.net_contracts
            )

    return AlertContext(
        positions=positions,
        lots=lots,
        earnings={t.upper(): d for t, d in (earnings or {}).items() if d},
        marks=dict(marks or {}),
        as_of=as_of or date.today(),
        config=config,
        shares_by_ticker=shares_by_ticker,
        short_call_shares_by_ticker=short_call_shares,
        capital_by_ticker=capital,
    )


def sort_alerts(alerts: Iterable[Alert]) -> list[Alert]:
    """Order by priority (urgent first), then ticker, then rule id."""
    return sorted(alerts, key=lambda a: (a.priority.rank, a.ticker, a.rule_id))


class AlertEngine:
    """
    Evaluates an ordered list of independent rules.

    A rule that raises is logged and skipped for that input; the other
    rules still run. Alerts with the same id are collapsed to the first.
    """

    def __init__(
        self,
        rules: Optional[list[AlertRule]] = None,
        ticker_rules: Optional[list[TickerAlertRule]] = None,
    ):
        self.rules = list(rules) if rules is not None else default_position_rules()
        self.ticker_rules = (
            list(ticker_rules) if ticker_rules is not None else default_ticker_rules()
        )

    def _is_active(self, rule: Union[AlertRule, TickerAlertRule], config: ProjectionConfig) -> bool:
        return rule.enabled and config.is_rule_enabled(rule.rule_id)

    def evaluate(self, context: AlertContext) -> list[Alert]:
        """
        Run every active rule against the context.

        Args:
            context: Shared rule inputs (see build_context)

        Returns:
            De-duplicated alerts sorted by priority, ticker and rule id
        """
        alerts: list[Alert] = []

        rules = [r for r in self.rules if self._is_active(r, context.config)]
        for position in context.positions:
            for rule in rules:
                try:
                    alert = rule.check(position, context)
                except Exception:
                    logger.error(
                        f"Alert rule {rule.rule_id} failed for position {position.id}",
                        exc_info=True,
                    )
                    continue
                if alert is not None:
                    alerts.append(alert)

        ticker_rules = [r for r in self.ticker_rules if self._is_active(r, context.config)]
        for ticker in sorted(context.shares_by_ticker):
            for rule in ticker_rules:
                try:
                    alert = rule.check_ticker(ticker, context)
                except Exception:
                    logger.error(
                        f"Alert rule {rule.rule_id} failed for ticker {ticker}",
                        exc_info=True,
                    )
                    continue
                if alert is not None:
                    alerts.append(alert)

        unique: dict[str, Alert] = {}
        for alert in alerts:
            unique.setdefault(alert.id, alert)

        result = sort_alerts(unique.values())
        logger.debug(
            f"Generated {len(result)} alerts for {len(context.positions)} positions "
            f"({len(alerts) - len(unique)} duplicates dropped)"
        )
        return result

    def generate(
        self,
        positions: Iterable[OptionPosition],
        share_lots: ShareHoldings = None,
        earnings: Optional[Mapping[str, str]] = None,
        marks: Optional[Mapping[str, float]] = None,
        as_of: Optional[date] = None,
        config: Optional[ProjectionConfig] = None,
    ) -> list[Alert]:
        """Build a context from raw inputs and evaluate it."""
        context = build_context(positions, share_lots, earnings, marks, as_of, config)
        return self.evaluate(context)


def generate_alerts(
    positions: Iterable[OptionPosition],
    share_lots_by_ticker: ShareHoldings = None,
    earnings_by_ticker: Optional[Mapping[str, str]] = None,
    marks: Optional[Mapping[str, float]] = None,
    as_of: Optional[date] = None,
    config: Optional[ProjectionConfig] = None,
) -> list[Alert]:
    """
    Generate alerts with the built-in rule set.

    Args:
        positions: Open option positions
        share_lots_by_ticker: Share lots (list, or mapping of ticker to lot or share count)
        earnings_by_ticker: Next earnings date per ticker (YYYY-MM-DD)
        marks: Current option price per share, keyed by position id
        as_of: Evaluation date (defaults to today)
        config: Thresholds and disabled rules

    Returns:
        Alerts sorted urgent first; empty when there is nothing to report
    """
    return AlertEngine().generate(
        positions, share_lots_by_ticker, earnings_by_ticker, marks, as_of, config
    )
