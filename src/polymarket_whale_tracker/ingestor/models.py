"""Data models for the ingestor module."""

from __future__ import annotations

import contextlib
import hashlib
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal

# Push-feed event kinds that carry an executed trade (price + size).
TRADE_EVENT_TYPES = frozenset({"trade", "last_trade_price"})


class TradeParseError(ValueError):
    """Raised when an upstream payload cannot be turned into a TradeEvent."""


class TradeSource(str, Enum):
    """Which upstream feed observed a trade."""

    PUSH = "push"
    POLL = "poll"


def _parse_decimal(value: Any, field_name: str) -> Decimal:
    if value is None or value == "":
        raise TradeParseError(f"missing {field_name}")
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise TradeParseError(f"invalid {field_name}: {value!r}") from e
    if not parsed.is_finite() or parsed < 0:
        raise TradeParseError(f"invalid {field_name}: {value!r}")
    return parsed


def _parse_side(value: Any) -> Literal["BUY", "SELL"]:
    side_raw = str(value or "").upper()
    if side_raw not in ("BUY", "SELL"):
        raise TradeParseError(f"invalid side: {value!r}")
    return "BUY" if side_raw == "BUY" else "SELL"


def _parse_timestamp(raw: Any, *, unit: Literal["ms", "s"]) -> datetime:
    """Parse an epoch timestamp (number or numeric string) into UTC."""
    try:
        ts_f = float(raw)
    except (TypeError, ValueError) as e:
        raise TradeParseError(f"invalid timestamp: {raw!r}") from e
    if unit == "ms":
        ts_f /= 1000.0
    elif ts_f > 1e12:
        # Some Data API records already carry milliseconds.
        ts_f /= 1000.0
    try:
        return datetime.fromtimestamp(ts_f, tz=UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise TradeParseError(f"invalid timestamp: {raw!r}") from e


def synthesize_trade_id(
    *,
    market_id: str,
    asset_id: str,
    timestamp_ms: int,
    side: str,
    price: Decimal,
    size: Decimal,
) -> str:
    """Build a stable identifier for push trades that carry no transaction hash.

    Re-delivery of the same frame yields the same key, so the dedup gate
    filters it. The key never matches the Data API transaction hash of the
    same fill.
    """
    raw = f"{market_id}|{asset_id}|{timestamp_ms}|{side}|{price.normalize()}|{size.normalize()}"
    digest = hashlib.sha256(raw.encode()).hexdigest()[:32]
    return f"ws:{digest}"


@dataclass(frozen=True)
class TradeEvent:
    """Canonical trade record shared by both feeds.

    This captures all the information about a single trade execution,
    regardless of whether it arrived on the push feed or via polling.
    """

    # Core trade identifiers
    trade_id: str  # transactionHash, or a synthesized ws: key
    market_id: str  # conditionId
    asset_id: str  # ERC1155 token ID

    # Trade details
    side: Literal["BUY", "SELL"]
    size: Decimal  # Number of shares traded
    price: Decimal  # 0..1
    timestamp: datetime
    source: TradeSource

    # Optional fields (absent on push-only trades)
    wallet_address: str = ""
    market_title: str = ""
    outcome: str = ""
    outcome_index: int | None = None
    market_slug: str = ""
    fee_rate_bps: int | None = None
    reported_notional: Decimal | None = None  # Data API usdcSize

    @classmethod
    def from_websocket_message(cls, data: dict[str, Any]) -> TradeEvent:
        """Create a TradeEvent from a market-channel trade frame.

        Args:
            data: A decoded frame whose event_type is trade-like.

        Returns:
            TradeEvent instance.

        Raises:
            TradeParseError: If the frame is not a trade or lacks required fields.
        """
        event_type = data.get("event_type")
        if event_type not in TRADE_EVENT_TYPES:
            raise TradeParseError(f"not a trade event: {event_type!r}")

        market_id = str(data.get("market") or "")
        if not market_id:
            raise TradeParseError("missing market")
        asset_id = str(data.get("asset_id") or "")

        price = _parse_decimal(data.get("price"), "price")
        size = _parse_decimal(data.get("size"), "size")
        side = _parse_side(data.get("side"))

        raw_ts = data.get("timestamp")
        if raw_ts is None:
            raise TradeParseError("missing timestamp")
        timestamp = _parse_timestamp(raw_ts, unit="ms")

        fee_rate_bps: int | None = None
        with contextlib.suppress(TypeError, ValueError):
            if data.get("fee_rate_bps") not in (None, ""):
                fee_rate_bps = int(data["fee_rate_bps"])

        trade_id = str(data.get("transaction_hash") or data.get("transactionHash") or "")
        if not trade_id:
            trade_id = synthesize_trade_id(
                market_id=market_id,
                asset_id=asset_id,
                timestamp_ms=int(timestamp.timestamp() * 1000),
                side=side,
                price=price,
                size=size,
            )

        return cls(
            trade_id=trade_id,
            market_id=market_id,
            asset_id=asset_id,
            side=side,
            size=size,
            price=price,
            timestamp=timestamp,
            source=TradeSource.PUSH,
            fee_rate_bps=fee_rate_bps,
        )

    @classmethod
    def from_data_api(cls, data: dict[str, Any]) -> TradeEvent:
        """Create a TradeEvent from a Data API `/trades` record.

        Raises:
            TradeParseError: If the record lacks its hash, market or numbers.
        """
        trade_id = str(data.get("transactionHash") or "")
        if not trade_id:
            raise TradeParseError("missing transactionHash")
        market_id = str(data.get("conditionId") or "")
        if not market_id:
            raise TradeParseError("missing conditionId")

        size = _parse_decimal(data.get("size"), "size")
        price = _parse_decimal(data.get("price"), "price")
        side = _parse_side(data.get("side"))

        raw_ts = data.get("timestamp")
        timestamp = (
            _parse_timestamp(raw_ts, unit="s") if raw_ts is not None else datetime.now(UTC)
        )

        reported_notional: Decimal | None = None
        with contextlib.suppress(TradeParseError):
            reported_notional = _parse_decimal(data.get("usdcSize"), "usdcSize")

        outcome_index: int | None = None
        with contextlib.suppress(TypeError, ValueError):
            if data.get("outcomeIndex") is not None:
                outcome_index = int(data["outcomeIndex"])

        return cls(
            trade_id=trade_id,
            market_id=market_id,
            asset_id=str(data.get("asset") or ""),
            side=side,
            size=size,
            price=price,
            timestamp=timestamp,
            source=TradeSource.POLL,
            wallet_address=str(data.get("proxyWallet") or ""),
            market_title=str(data.get("title") or ""),
            outcome=str(data.get("outcome") or ""),
            outcome_index=outcome_index,
            market_slug=str(data.get("slug") or ""),
            reported_notional=reported_notional,
        )

    @property
    def notional_value(self) -> Decimal:
        """Return the dollar size of the trade (price * size)."""
        if self.reported_notional is not None and self.reported_notional > 0:
            return self.reported_notional
        return self.price * self.size

    def to_dict(self) -> dict[str, Any]:
        """Serialize for broadcasting."""
        return {
            "trade_id": self.trade_id,
            "market_id": self.market_id,
            "asset_id": self.asset_id,
            "side": self.side,
            "size": str(self.size),
            "price": str(self.price),
            "notional_value": str(self.notional_value),
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.value,
            "wallet_address": self.wallet_address or None,
            "market_title": self.market_title or None,
            "outcome": self.outcome or None,
        }


def categorize_market(question: str, slug: str, event_slug: str = "") -> str:
    """Bucket a market into a coarse display category by keyword."""
    q = question.lower()
    s = slug.lower()
    e = event_slug.lower()

    sports_slugs = (
        "nfl", "nba", "mlb", "nhl", "super-bowl", "world-series",
        "premier-league", "champions-league", "spl-", "epl-", "laliga-",
    )
    if (
        any(k in s for k in sports_slugs)
        or "sport" in e
        or any(k in q for k in ("win the game", "win super bowl", "win the championship"))
    ):
        return "Sports"

    politics = ("trump", "biden", "election", "president", "congress", "senate", "governor", "political")
    if any(k in q for k in politics) or "election" in s or "politic" in s:
        return "Politics"

    finance = ("crypto", "bitcoin", "ethereum", "price", "fed", "rate")
    if any(k in q for k in finance) or "crypto" in s or "bitcoin" in s:
        return "Crypto & Finance"

    if any(k in q for k in ("ai", "tech", "openai", "google", "apple", "tesla")):
        return "Tech"

    return "Other"


def _parse_token_ids(raw: Any) -> tuple[str, ...]:
    # clobTokenIds arrives as a JSON-encoded string from Gamma.
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return ()
    if isinstance(raw, list):
        return tuple(str(t) for t in raw if t)
    return ()


def _parse_float(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class MonitoredMarket:
    """An active market the feeds watch, built from a Gamma `/markets` record."""

    market_id: str
    condition_id: str
    question: str
    slug: str
    volume: float
    liquidity: float
    category: str
    token_ids: tuple[str, ...] = ()

    @classmethod
    def from_gamma(cls, data: dict[str, Any]) -> MonitoredMarket:
        question = str(data.get("question") or data.get("title") or "")
        slug = str(data.get("slug") or "")
        events = data.get("events") or []
        event_slug = ""
        if events and isinstance(events[0], dict):
            event_slug = str(events[0].get("slug") or "")
        return cls(
            market_id=str(data.get("id") or ""),
            condition_id=str(data.get("conditionId") or ""),
            question=question,
            slug=slug,
            volume=_parse_float(data.get("volumeNum") or data.get("volume")),
            liquidity=_parse_float(data.get("liquidityNum") or data.get("liquidity")),
            category=categorize_market(question, slug, event_slug),
            token_ids=_parse_token_ids(data.get("clobTokenIds")),
        )

    @property
    def title(self) -> str:
        return self.question
