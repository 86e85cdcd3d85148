"""
Event normalizer for journal records.

Two record shapes reach the projection:

- Journal rows: flat records carrying the ticker directly
  (``symbol``/``ticker``) and a ``type`` or ``kind``.
- Trade records: legacy rows from the trades table that reference a
  separate symbols table through ``symbol_id``.

Both are mapped onto the canonical :class:`~src.wheel.models.Event`. A bad
record is dropped with a logged diagnostic; it never aborts the batch.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.constants import SHARES_PER_CONTRACT
from src.utils.date_utils import parse_timestamp, to_ymd

from .exceptions import MalformedEventError, SymbolNotFoundError, UnknownEventKindError
from .models import Event
from .state import EventKind

logger = logging.getLogger(__name__)

SymbolLookup = Union[Mapping[Any, str], Callable[[Any], Optional[str]]]

# Journal row types that open a short option; the leg decides put vs call
OPENING_TYPES = ("sell_to_open", "option_premium")

# Journal row types mapped directly onto a canonical kind
JOURNAL_TYPE_MAP: dict[str, EventKind] = {
    "buy_to_close": EventKind.BUY_CLOSE,
    "expiration": EventKind.EXPIRATION,
    "assignment_shares": EventKind.PUT_ASSIGNED,
    "share_sale": EventKind.CALL_ASSIGNED,
}

# Journal row types whose qty is a share count rather than contracts
SHARE_QTY_TYPES = ("assignment_shares", "share_sale")

ROLL_KINDS: dict[str, EventKind] = {
    "roll_put": EventKind.SELL_PUT,
    "roll_call": EventKind.SELL_CALL,
}

OPTION_TYPE_ALIASES: dict[str, str] = {
    "p": "put",
    "put": "put",
    "c": "call",
    "call": "call",
}

OPTION_KINDS = (
    EventKind.SELL_PUT,
    EventKind.SELL_CALL,
    EventKind.BUY_CLOSE,
    EventKind.EXPIRATION,
)
SHARE_KINDS = (EventKind.PUT_ASSIGNED, EventKind.CALL_ASSIGNED)


class RawJournalRow(BaseModel):
    """Flat journal row, as stored by the journal table or local journal."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[str, int]
    ts: Union[datetime, date, str] = Field(
        validation_alias=AliasChoices("ts", "when", "timestamp", "timestampISO")
    )
    symbol: str = Field(validation_alias=AliasChoices("symbol", "ticker"))
    kind: Optional[str] = None
    type: Optional[str] = None
    qty: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("qty", "contracts")
    )
    amount: float = 0.0
    strike: Optional[float] = None
    expiration: Optional[Union[date, str]] = Field(
        default=None,
        validation_alias=AliasChoices("expiration", "expiration_date", "expirationDate"),
    )
    dte: Optional[int] = None
    premium: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("premium", "premium_per_contract", "premiumPerContract"),
    )
    price: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("price", "price_per_share", "pricePerShare"),
    )
    shares: Optional[float] = None
    fees: Optional[float] = None
    meta: Any = None
    deleted_at: Optional[Union[datetime, str]] = Field(
        default=None, validation_alias=AliasChoices("deleted_at", "deletedAt")
    )
    edit_reason: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("edit_reason", "editReason")
    )
    original_entry_id: Optional[Union[str, int]] = Field(
        default=None,
        validation_alias=AliasChoices(
            "original_entry_id", "original_event_id", "originalEventId"
        ),
    )

    @field_validator("id", "original_entry_id")
    @classmethod
    def coerce_id(cls, v: Optional[Union[str, int]]) -> Optional[str]:
        """Ids are compared as strings regardless of source type."""
        return None if v is None else str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def default_amount(cls, v: Any) -> Any:
        """Treat a null amount as zero cash flow."""
        return 0.0 if v is None else v


class RawTradeRecord(BaseModel):
    """Legacy trade-table row that references the symbols table."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Union[str, int]
    symbol_id: Union[int, str]
    trade_date: Union[datetime, date, str]
    trade_action: str = Field(validation_alias=AliasChoices("trade_action", "action"))
    option_type: Optional[str] = None
    strike_price: Optional[float] = None
    expiration_date: Optional[Union[date, str]] = None
    quantity: float = Field(..., gt=0)
    premium: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("premium", "price")
    )
    commission: float = 0.0
    fees: float = 0.0
    deleted_at: Optional[Union[datetime, str]] = None

    @field_validator("id")
    @classmethod
    def coerce_id(cls, v: Union[str, int]) -> str:
        return str(v)


def parse_meta(value: Any) -> Optional[dict[str, Any]]:
    """
    Parse a meta field that may be absent, a JSON string, or an object.

    Returns:
        A new dict, or None when absent or unparsable
    """
    if value is None:
        return None
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError as e:
            logger.debug(f"Could not parse meta JSON {value!r}: {e}")
            return None
        return dict(parsed) if isinstance(parsed, dict) else None
    return None


class _SymbolResolver:
    """Memoizing symbol id -> ticker lookup, scoped to one normalize call."""

    def __init__(self, symbols: Optional[SymbolLookup]):
        self._symbols = symbols
        self._cache: dict[Any, Optional[str]] = {}
        self.lookups = 0

    def resolve(self, symbol_id: Any) -> str:
        if symbol_id not in self._cache:
            self._cache[symbol_id] = self._lookup(symbol_id)
        ticker = self._cache[symbol_id]
        if not ticker:
            raise SymbolNotFoundError(f"No ticker for symbol id {symbol_id!r}")
        return ticker

    def _lookup(self, symbol_id: Any) -> Optional[str]:
        if self._symbols is None:
            return None
        self.lookups += 1
        try:
            if callable(self._symbols):
                ticker = self._symbols(symbol_id)
            else:
                ticker = self._symbols.get(symbol_id)
        except LookupError:
            return None
        return ticker.strip().upper() if ticker else None


def _option_leg(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return OPTION_TYPE_ALIASES.get(value.strip().lower())


def _timestamp(value: Any, record_id: str) -> datetime:
    try:
        return parse_timestamp(value)
    except (ValueError, TypeError) as e:
        raise MalformedEventError(f"Record {record_id}: invalid timestamp {value!r}") from e


def _expiration(value: Any, record_id: str) -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        return to_ymd(value)
    except (ValueError, TypeError) as e:
        raise MalformedEventError(
            f"Record {record_id}: invalid expiration {value!r}"
        ) from e


def _earnings_date(meta: Optional[dict[str, Any]], record_id: str) -> str:
    value = (meta or {}).get("date")
    if not value:
        raise MalformedEventError(f"Record {record_id}: earnings_set requires meta.date")
    try:
        return to_ymd(value)
    except (ValueError, TypeError) as e:
        raise MalformedEventError(
            f"Record {record_id}: invalid earnings date {value!r}"
        ) from e


def _require_fields(event: Event) -> Event:
    """Raise MalformedEventError when the event lacks fields its kind needs."""
    if event.kind in OPTION_KINDS:
        if event.strike is None or not event.expiration_date:
            raise MalformedEventError(
                f"Record {event.id}: {event.kind.value} requires strike and expiration"
            )
    elif event.kind in SHARE_KINDS:
        if not event.shares and not event.contracts:
            raise MalformedEventError(
                f"Record {event.id}: {event.kind.value} requires a share or contract count"
            )
    return event


def _from_journal_row(row: RawJournalRow) -> list[Event]:
    raw_kind = (row.kind or row.type or "").strip().lower()
    if not raw_kind:
        raise MalformedEventError(f"Record {row.id}: missing kind")

    ticker = row.symbol.strip().upper()
    if not ticker:
        raise MalformedEventError(f"Record {row.id}: missing ticker")

    timestamp = _timestamp(row.ts, row.id)
    meta = parse_meta(row.meta)

    # A P/C "type" beside a kind (or on a close row) is the option leg
    leg = _option_leg(row.type) if row.kind else None
    if leg and (meta is None or "leg" not in meta):
        meta = {**(meta or {}), "leg": leg}

    expiration = _expiration(row.expiration, row.id)
    if expiration is None and row.dte is not None:
        expiration = (timestamp.date() + timedelta(days=row.dte)).isoformat()

    quantity = None
    if row.qty is not None:
        quantity = abs(int(row.qty))
        if quantity == 0:
            raise MalformedEventError(f"Record {row.id}: quantity must be non-zero")
    shares = abs(int(row.shares)) if row.shares else None
    contracts = quantity
    if raw_kind in SHARE_QTY_TYPES:
        shares = shares or quantity
        contracts = None

    if raw_kind in OPENING_TYPES:
        leg = str((meta or {}).get("leg", "")).strip().lower()
        kind = EventKind.SELL_CALL if leg == "call" else EventKind.SELL_PUT
    elif raw_kind in JOURNAL_TYPE_MAP:
        kind = JOURNAL_TYPE_MAP[raw_kind]
    elif raw_kind in ROLL_KINDS:
        kind = ROLL_KINDS[raw_kind]
    else:
        try:
            kind = EventKind(raw_kind)
        except ValueError as e:
            raise UnknownEventKindError(
                f"Record {row.id}: unknown kind '{raw_kind}'"
            ) from e

    if kind == EventKind.EARNINGS_SET:
        meta = {**(meta or {}), "date": _earnings_date(meta, row.id)}

    event = _require_fields(
        Event(
            id=row.id,
            timestamp=timestamp,
            ticker=ticker,
            kind=kind,
            amount=row.amount,
            contracts=contracts,
            strike=row.strike,
            expiration_date=expiration,
            premium_per_contract=row.premium,
            price_per_share=row.price,
            shares=shares,
            fees=row.fees,
            meta=meta,
            deleted_at=str(row.deleted_at) if row.deleted_at else None,
            edit_reason=row.edit_reason,
            original_event_id=row.original_entry_id,
            origin_kind=raw_kind,
        )
    )

    if raw_kind not in ROLL_KINDS:
        return [event]
    return [event] + _rolled_from_leg(event)


def _rolled_from_leg(event: Event) -> list[Event]:
    """Build the buy_close for the leg a roll moved away from, if known."""
    from_strike = event.meta_value("fromStrike")
    from_expiration = event.meta_value("fromExpiration")
    if from_strike is None or not from_expiration:
        logger.debug(
            f"Roll {event.id} has no fromStrike/fromExpiration, "
            "recording the new leg only"
        )
        return []

    try:
        strike = float(from_strike)
        expiration = to_ymd(from_expiration)
    except (TypeError, ValueError) as e:
        logger.warning(f"Roll {event.id}: ignoring unusable rolled-from leg: {e}")
        return []

    leg = "call" if event.kind == EventKind.SELL_CALL else "put"
    return [
        Event(
            id=f"{event.id}:close",
            timestamp=event.timestamp,
            ticker=event.ticker,
            kind=EventKind.BUY_CLOSE,
            contracts=event.contracts,
            strike=strike,
            expiration_date=expiration,
            meta={"leg": leg, "rolled_to": event.id},
            origin_kind=event.origin_kind,
        )
    ]


def _from_trade_record(record: RawTradeRecord, resolver: _SymbolResolver) -> list[Event]:
    ticker = resolver.resolve(record.symbol_id)
    action = record.trade_action.strip().lower()
    leg = _option_leg(record.option_type)

    if action == "sell_to_open":
        kind = EventKind.SELL_CALL if leg == "call" else EventKind.SELL_PUT
        sign = 1.0
    elif action == "buy_to_close":
        kind = EventKind.BUY_CLOSE
        sign = -1.0
    else:
        raise UnknownEventKindError(
            f"Trade {record.id}: action '{action}' is not tracked (long options)"
        )

    contracts = int(record.quantity)
    amount = 0.0
    if record.premium is not None:
        amount = sign * abs(record.premium) * contracts * SHARES_PER_CONTRACT

    return [
        _require_fields(
            Event(
                id=record.id,
                timestamp=_timestamp(record.trade_date, record.id),
                ticker=ticker,
                kind=kind,
                amount=amount,
                contracts=contracts,
                strike=record.strike_price,
                expiration_date=_expiration(record.expiration_date, record.id),
                premium_per_contract=record.premium,
                fees=(record.fees or 0.0) + (record.commission or 0.0),
                meta={"leg": leg} if leg else None,
                deleted_at=str(record.deleted_at) if record.deleted_at else None,
                origin_kind=action,
            )
        )
    ]


def active_events(events: Iterable[Event]) -> list[Event]:
    """
    Drop soft-deleted events and events superseded by an edit.

    An edit is a new event whose original_event_id names the event it
    replaces; the replaced event no longer contributes to projections.

    Returns:
        Active events in chronological order (ties by id)
    """
    live = [e for e in events if not e.is_deleted]
    superseded = {e.original_event_id for e in live if e.original_event_id}
    active = [e for e in live if e.id not in superseded]
    return sorted(active, key=lambda e: e.sort_key)


def normalize(
    raw: Iterable[Any],
    symbols: Optional[SymbolLookup] = None,
) -> list[Event]:
    """
    Map heterogeneous journal records onto canonical events.

    Each distinct symbol id is resolved at most once per call. Records that
    fail validation, carry an unknown kind, lack the fields their kind
    needs, or reference an unknown symbol are dropped with a warning.
    Soft-deleted records and records superseded by edits are removed.

    Args:
        raw: Journal rows and/or trade records (dicts, pydantic models or Events)
        symbols: Symbol id -> ticker mapping or lookup callable for trade records

    Returns:
        Canonical events in chronological order (ties by id)
    """
    resolver = _SymbolResolver(symbols)
    events: list[Event] = []
    dropped = 0

    for index, record in enumerate(raw):
        if isinstance(record, Event):
            events.append(record)
            continue
        if isinstance(record, BaseModel):
            record = record.model_dump()
        if not isinstance(record, Mapping):
            logger.warning(f"Skipping record #{index}: unsupported type {type(record).__name__}")
            dropped += 1
            continue

        record_id = record.get("id", f"#{index}")
        try:
            if "symbol_id" in record:
                events.extend(
                    _from_trade_record(RawTradeRecord.model_validate(record), resolver)
                )
            else:
                events.extend(_from_journal_row(RawJournalRow.model_validate(record)))
        except UnknownEventKindError as e:
            logger.debug(f"Ignoring record: {e}")
            dropped += 1
        except (MalformedEventError, SymbolNotFoundError) as e:
            logger.warning(f"Skipping record: {e}")
            dropped += 1
        except ValidationError as e:
            logger.warning(
                f"Skipping record {record_id}: {e.error_count()} validation error(s): "
                f"{e.errors()[0].get('msg') if e.errors() else e}"
            )
            dropped += 1

    result = active_events(events)
    logger.debug(
        f"Normalized {len(result)} events ({dropped} records dropped, "
        f"{resolver.lookups} symbol lookups)"
    )
    return result
