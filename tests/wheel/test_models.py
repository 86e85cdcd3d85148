"""Tests for wheel journal data models."""

from datetime import datetime

import pytest

from src.wheel.models import (
    Alert,
    AlertCategory,
    AlertPriority,
    DerivedView,
    Event,
    OptionPosition,
    ShareLot,
    TickerPhase,
    TickerSummary,
)
from src.wheel.state import EventKind, OptionType, WheelPhase


class TestEvent:
    """Tests for the canonical Event model."""

    def test_defaults(self):
        event = Event(id="1", timestamp=datetime(2025, 11, 1), ticker="AAPL", kind=EventKind.FEE)
        assert event.amount == 0.0
        assert event.meta is None
        assert event.is_deleted is False

    def test_is_deleted(self):
        event = Event(
            id="1",
            timestamp=datetime(2025, 11, 1),
            ticker="AAPL",
            kind=EventKind.FEE,
            deleted_at="2025-11-02T00:00:00",
        )
        assert event.is_deleted is True

    def test_meta_value(self):
        event = Event(
            id="1",
            timestamp=datetime(2025, 11, 1),
            ticker="AAPL",
            kind=EventKind.SELL_PUT,
            meta={"leg": "put"},
        )
        assert event.meta_value("leg") == "put"
        assert event.meta_value("closes") is None
        assert event.meta_value("closes", "n/a") == "n/a"

    def test_frozen(self):
        event = Event(id="1", timestamp=datetime(2025, 11, 1), ticker="AAPL", kind=EventKind.FEE)
        with pytest.raises(AttributeError):
            event.amount = 10.0

    def test_sort_key(self):
        event = Event(id="9", timestamp=datetime(2025, 11, 1), ticker="AAPL", kind=EventKind.FEE)
        assert event.sort_key == (datetime(2025, 11, 1), "9")

    def test_ticker_normalized(self):
        event = Event(id="1", timestamp=datetime(2025, 11, 1), ticker=" aapl ", kind=EventKind.FEE)
        assert event.ticker == "AAPL"


class TestOptionPosition:
    """Tests for OptionPosition properties."""

    @pytest.fixture
    def position(self):
        return OptionPosition(
            id="AAPL_150_2025-12-19_P",
            ticker="AAPL",
            strike=150.0,
            expiration_date="2025-12-19",
            option_type=OptionType.PUT,
            net_contracts=2,
            weighted_entry_price=2.0,
        )

    def test_is_short_by_default(self, position):
        assert position.is_short is True

    def test_shares_equivalent(self, position):
        assert position.shares_equivalent == 200

    def test_collateral(self, position):
        assert position.collateral == pytest.approx(30000.0)

    def test_label(self, position):
        assert position.label == "P $150"


class TestShareLot:
    def test_total_cost(self):
        lot = ShareLot(ticker="KO", net_shares=150, weighted_cost_per_share=60.0)
        assert lot.total_cost == pytest.approx(9000.0)


class TestAlertPriority:
    """Tests for alert priority ranking."""

    def test_rank_order(self):
        ranks = [p.rank for p in AlertPriority]
        assert ranks == sorted(ranks)
        assert AlertPriority.URGENT.rank < AlertPriority.OPPORTUNITY.rank


class TestDerivedView:
    """Tests for DerivedView helpers."""

    def test_tickers_union(self):
        view = DerivedView(
            positions=[
                OptionPosition(
                    id="MSFT_400_2025-12-19_C",
                    ticker="MSFT",
                    strike=400.0,
                    expiration_date="2025-12-19",
                    option_type=OptionType.CALL,
                    net_contracts=1,
                )
            ],
            share_lots=[ShareLot(ticker="KO", net_shares=100)],
            phases={"NVDA": TickerPhase(ticker="NVDA", phase=WheelPhase.REPEAT)},
        )
        assert view.tickers == ["KO", "MSFT", "NVDA"]

    def test_alerts_for(self):
        alert = Alert(
            id="cc-opp-KO",
            ticker="KO",
            category=AlertCategory.STRATEGIC,
            priority=AlertPriority.OPPORTUNITY,
            title="KO covered call opportunity",
            message="",
        )
        view = DerivedView(alerts=[alert])

        assert view.alerts_for("ko") == [alert]
        assert view.alerts_for("AAPL") == []


class TestTickerSummary:
    def test_net_premium(self):
        summary = TickerSummary(ticker="AAPL", premium_collected=350.0, premium_paid=50.0)
        assert summary.net_premium == pytest.approx(300.0)
