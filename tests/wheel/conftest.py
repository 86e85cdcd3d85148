"""Shared fixtures for wheel journal tests."""

import itertools
from datetime import date

import pytest

from src.utils.date_utils import parse_timestamp
from src.wheel.models import Event
from src.wheel.state import EventKind


@pytest.fixture
def as_of():
    """Fixed evaluation date so DTE math is deterministic."""
    return date(2025, 11, 10)


@pytest.fixture
def make_event():
    """Factory for canonical events with sequential ids.

    Returns:
        Callable taking a kind (EventKind or its value) plus Event fields
    """
    counter = itertools.count(1)

    def _make(kind, ticker="AAPL", ts="2025-11-01T10:00:00", **kwargs):
        event_id = kwargs.pop("id", f"e{next(counter):03d}")
        return Event(
            id=event_id,
            timestamp=parse_timestamp(ts),
            ticker=ticker,
            kind=kind if isinstance(kind, EventKind) else EventKind(kind),
            **kwargs,
        )

    return _make


@pytest.fixture
def sell_put(make_event):
    """Factory for a short put opening on AAPL 150P 2025-12-19."""

    def _sell(premium=2.0, contracts=1, strike=150.0, expiration="2025-12-19", **kwargs):
        return make_event(
            "sell_put",
            strike=strike,
            expiration_date=expiration,
            contracts=contracts,
            premium_per_contract=premium,
            amount=premium * contracts * 100,
            **kwargs,
        )

    return _sell
