"""Tests for the journal event normalizer."""

import logging
from datetime import datetime

import pytest

from src.wheel.models import Event
from src.wheel.normalizer import (
    RawJournalRow,
    active_events,
    normalize,
    parse_meta,
)
from src.wheel.positions import infer_option_type
from src.wheel.share_lots import project_share_lots
from src.wheel.state import EventKind, OptionType


@pytest.fixture
def put_row():
    """Journal row opening one AAPL 150 put."""
    return {
        "id": 1,
        "ts": "2025-11-01T14:30:00Z",
        "symbol": "aapl",
        "type": "sell_to_open",
        "qty": 1,
        "strike": 150,
        "expiration": "2025-12-19",
        "premium": 2.0,
        "amount": 200.0,
        "meta": {"leg": "put"},
    }


@pytest.fixture
def trade_record():
    """Legacy trade-table row referencing symbol id 3."""
    return {
        "id": 7,
        "symbol_id": 3,
        "trade_date": "2025-11-03",
        "trade_action": "sell_to_open",
        "option_type": "CALL",
        "strike_price": 160.0,
        "expiration_date": "2025-12-19",
        "quantity": 2,
        "premium": 1.5,
        "commission": 0.65,
    }


class TestJournalRows:
    """Tests for flat journal rows."""

    def test_sell_to_open_put(self, put_row):
        events = normalize([put_row])

        assert len(events) == 1
        event = events[0]
        assert event.id == "1"
        assert event.ticker == "AAPL"
        assert event.kind == EventKind.SELL_PUT
        assert event.timestamp == datetime(2025, 11, 1, 14, 30)
        assert event.strike == 150.0
        assert event.expiration_date == "2025-12-19"
        assert event.contracts == 1
        assert event.premium_per_contract == 2.0
        assert event.origin_kind == "sell_to_open"

    def test_sell_to_open_call_leg(self, put_row):
        put_row["meta"] = {"leg": "call"}
        assert normalize([put_row])[0].kind == EventKind.SELL_CALL

    def test_option_premium_alias(self, put_row):
        put_row["type"] = "option_premium"
        assert normalize([put_row])[0].kind == EventKind.SELL_PUT

    def test_kind_with_option_type_letter(self):
        """A P/C type beside a kind becomes the option leg."""
        row = {
            "id": "c1",
            "when": "2025-11-02",
            "ticker": "MSFT",
            "kind": "buy_close",
            "type": "C",
            "contracts": 1,
            "strike": 400,
            "expirationDate": "2025-12-19",
            "amount": -35.0,
        }
        event = normalize([row])[0]

        assert event.kind == EventKind.BUY_CLOSE
        assert event.meta == {"leg": "call"}
        assert event.timestamp == datetime(2025, 11, 2)

    def test_meta_json_string(self, put_row):
        put_row["meta"] = '{"leg": "call", "note": "earnings play"}'
        event = normalize([put_row])[0]

        assert event.kind == EventKind.SELL_CALL
        assert event.meta_value("note") == "earnings play"

    def test_dte_sets_expiration(self, put_row):
        del put_row["expiration"]
        put_row["dte"] = 30
        assert normalize([put_row])[0].expiration_date == "2025-12-01"

    def test_assignment_shares_counts_shares(self):
        row = {
            "id": 2,
            "ts": "2025-12-19",
            "symbol": "AAPL",
            "type": "assignment_shares",
            "qty": 100,
            "price": 150.0,
            "amount": -15000.0,
        }
        event = normalize([row])[0]

        assert event.kind == EventKind.PUT_ASSIGNED
        assert event.shares == 100
        assert event.contracts is None
        assert event.price_per_share == 150.0

    def test_share_sale(self):
        row = {"id": 3, "ts": "2025-12-19", "symbol": "AAPL", "type": "share_sale", "qty": 100}
        assert normalize([row])[0].kind == EventKind.CALL_ASSIGNED

    def test_canonical_kind_accepted(self):
        row = {"id": 4, "ts": "2025-11-15", "symbol": "KO", "kind": "dividend", "amount": 48.5}
        event = normalize([row])[0]

        assert event.kind == EventKind.DIVIDEND
        assert event.amount == 48.5

    def test_null_amount_is_zero(self):
        row = {"id": 5, "ts": "2025-11-15", "symbol": "KO", "kind": "fee", "amount": None}
        assert normalize([row])[0].amount == 0.0

    def test_roll_emits_close_of_old_leg(self):
        row = {
            "id": 6,
            "ts": "2025-11-20",
            "symbol": "AAPL",
            "type": "roll_put",
            "qty": 1,
            "strike": 145,
            "expiration": "2026-01-16",
            "premium": 1.8,
            "meta": {"fromStrike": 150, "fromExpiration": "2025-12-19"},
        }
        opened, closed = normalize([row])

        assert opened.kind == EventKind.SELL_PUT
        assert opened.strike == 145.0
        assert closed.id == "6:close"
        assert closed.kind == EventKind.BUY_CLOSE
        assert closed.strike == 150.0
        assert closed.expiration_date == "2025-12-19"
        assert closed.meta_value("leg") == "put"

    def test_roll_without_source_leg(self):
        row = {
            "id": 6,
            "ts": "2025-11-20",
            "symbol": "AAPL",
            "type": "roll_call",
            "qty": 1,
            "strike": 170,
            "expiration": "2026-01-16",
        }
        events = normalize([row])

        assert len(events) == 1
        assert events[0].kind == EventKind.SELL_CALL


    def test_leg_case_insensitive(self, put_row):
        put_row["meta"] = {"leg": "CALL"}
        event = normalize([put_row])[0]

        assert event.kind == EventKind.SELL_CALL
        assert infer_option_type(event) == OptionType.CALL

    def test_earnings_set_row(self):
        row = {
            "id": 6,
            "ts": "2025-11-01",
            "symbol": "aapl",
            "kind": "earnings_set",
            "meta": {"date": "2025-11-12T21:00:00Z"},
        }
        event = normalize([row])[0]

        assert event.kind == EventKind.EARNINGS_SET
        assert event.ticker == "AAPL"
        assert event.meta_value("date") == "2025-11-12"

    def test_mixed_offsets_replay_by_instant(self):
        """Rows with different UTC offsets sort by when they happened."""
        rows = [
            {
                "id": "b",
                "ts": "2025-11-02T01:00:00+05:00",
                "symbol": "AAPL",
                "type": "assignment_shares",
                "qty": 100,
                "price": 150.0,
            },
            {
                "id": "s",
                "ts": "2025-11-01T22:00:00Z",
                "symbol": "AAPL",
                "type": "share_sale",
                "qty": 100,
            },
        ]
        events = normalize(rows)

        assert [e.id for e in events] == ["b", "s"]
        assert events[0].timestamp == datetime(2025, 11, 1, 20, 0)
        assert project_share_lots(events) == []

class TestMalformedRecords:
    """Bad records are dropped without aborting the batch."""

    def test_unknown_kind_dropped(self, put_row):
        note = {"id": 9, "ts": "2025-11-01", "symbol": "AAPL", "type": "journal_note"}
        events = normalize([note, put_row])

        assert [e.id for e in events] == ["1"]

    def test_option_without_strike_dropped(self, put_row, caplog):
        del put_row["strike"]
        with caplog.at_level(logging.WARNING):
            assert normalize([put_row]) == []
        assert "requires strike and expiration" in caplog.text

    def test_invalid_timestamp_dropped(self, put_row):
        put_row["ts"] = "not a date"
        assert normalize([put_row]) == []

    def test_missing_symbol_dropped(self, put_row, caplog):
        del put_row["symbol"]
        with caplog.at_level(logging.WARNING):
            assert normalize([put_row]) == []
        assert "validation error" in caplog.text

    def test_zero_quantity_dropped(self, put_row, caplog):
        put_row["qty"] = 0
        put_row["amount"] = 0
        with caplog.at_level(logging.WARNING):
            assert normalize([put_row]) == []
        assert "quantity must be non-zero" in caplog.text

    def test_missing_quantity_left_unset(self, put_row):
        del put_row["qty"]
        assert normalize([put_row])[0].contracts is None

    def test_earnings_set_without_date_dropped(self, caplog):
        row = {"id": 6, "ts": "2025-11-01", "symbol": "AAPL", "kind": "earnings_set"}
        with caplog.at_level(logging.WARNING):
            assert normalize([row]) == []
        assert "requires meta.date" in caplog.text

    def test_unsupported_record_type(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize(["sell_put AAPL 150"]) == []
        assert "unsupported type" in caplog.text


class TestTradeRecords:
    """Tests for legacy trade-table records."""

    def test_sell_to_open_call(self, trade_record):
        event = normalize([trade_record], symbols={3: "msft"})[0]

        assert event.id == "7"
        assert event.ticker == "MSFT"
        assert event.kind == EventKind.SELL_CALL
        assert event.contracts == 2
        assert event.amount == pytest.approx(300.0)
        assert event.fees == pytest.approx(0.65)
        assert event.meta == {"leg": "call"}

    def test_buy_to_close_is_negative_cash(self, trade_record):
        trade_record["trade_action"] = "buy_to_close"
        trade_record["premium"] = 0.25
        event = normalize([trade_record], symbols={3: "MSFT"})[0]

        assert event.kind == EventKind.BUY_CLOSE
        assert event.amount == pytest.approx(-50.0)

    def test_long_option_actions_ignored(self, trade_record):
        trade_record["trade_action"] = "buy_to_open"
        assert normalize([trade_record], symbols={3: "MSFT"}) == []

    def test_unknown_symbol_dropped(self, trade_record, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize([trade_record], symbols={}) == []
        assert "No ticker for symbol id 3" in caplog.text

    def test_zero_quantity_dropped(self, trade_record):
        trade_record["quantity"] = 0
        assert normalize([trade_record], symbols={3: "MSFT"}) == []

    def test_symbol_lookup_memoized(self, trade_record):
        """Each distinct symbol id is looked up once per call."""
        calls = []

        def lookup(symbol_id):
            calls.append(symbol_id)
            return "MSFT"

        second = dict(trade_record, id=8, trade_date="2025-11-04")
        events = normalize([trade_record, second], symbols=lookup)

        assert len(events) == 2
        assert calls == [3]

    def test_mixed_shapes(self, put_row, trade_record):
        events = normalize([trade_record, put_row], symbols={3: "MSFT"})
        assert [e.ticker for e in events] == ["AAPL", "MSFT"]


class TestActiveEvents:
    """Tests for soft-delete and edit handling."""

    def test_soft_deleted_row_removed(self, put_row):
        put_row["deletedAt"] = "2025-11-02T09:00:00Z"
        assert normalize([put_row]) == []

    def test_edit_supersedes_original(self, put_row):
        edit = dict(put_row, id=2, premium=2.2, original_entry_id=1, edit_reason="fat finger")
        events = normalize([put_row, edit])

        assert len(events) == 1
        assert events[0].id == "2"
        assert events[0].premium_per_contract == 2.2
        assert events[0].original_event_id == "1"

    def test_sorted_by_timestamp_then_id(self):
        ts = datetime(2025, 11, 1)
        events = [
            Event(id="b", timestamp=ts, ticker="AAPL", kind=EventKind.FEE),
            Event(id="a", timestamp=ts, ticker="AAPL", kind=EventKind.FEE),
            Event(id="c", timestamp=datetime(2025, 10, 1), ticker="AAPL", kind=EventKind.FEE),
        ]
        assert [e.id for e in active_events(events)] == ["c", "a", "b"]

    def test_events_pass_through(self):
        event = Event(id="x", timestamp=datetime(2025, 11, 1), ticker="AAPL", kind=EventKind.FEE)
        assert normalize([event]) == [event]


class TestParsing:
    """Tests for row model and meta parsing."""

    def test_row_aliases(self):
        row = RawJournalRow.model_validate(
            {"id": 1, "timestampISO": "2025-11-01", "ticker": "AAPL", "kind": "fee"}
        )
        assert row.symbol == "AAPL"
        assert row.ts == "2025-11-01"

    def test_parse_meta_variants(self):
        assert parse_meta(None) is None
        assert parse_meta("") is None
        assert parse_meta("{bad json") is None
        assert parse_meta("[1, 2]") is None
        assert parse_meta({"leg": "put"}) == {"leg": "put"}
