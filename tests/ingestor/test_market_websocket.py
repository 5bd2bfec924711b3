"""Tests for the market-channel push feed."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError

from polymarket_whale_tracker.ingestor.market_websocket import (
    HEARTBEAT_MESSAGE,
    ConnectionState,
    MarketFeedConnector,
    PriceUpdate,
)
from polymarket_whale_tracker.ingestor.models import MonitoredMarket, TradeEvent
from polymarket_whale_tracker.ingestor.polymarket_client import (
    PolymarketClient,
    PolymarketTransientError,
)
from polymarket_whale_tracker.ingestor.titles import MarketTitleResolver

CONNECT = "polymarket_whale_tracker.ingestor.market_websocket.websockets.connect"

TRADE_FRAME = {
    "event_type": "last_trade_price",
    "asset_id": "111",
    "market": "0xm1",
    "price": "0.5",
    "side": "BUY",
    "size": "20000",
    "timestamp": "1767225600000",
}


class FakeWebSocket:
    """Minimal stand-in for a websockets ClientConnection."""

    def __init__(self, messages: list[str] | None = None) -> None:
        self.messages = list(messages or [])
        self.sent: list[str] = []
        self.closed = False

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message


def _market(condition_id: str, token_ids: tuple[str, ...]) -> MonitoredMarket:
    return MonitoredMarket(
        market_id=condition_id,
        condition_id=condition_id,
        question=f"Question {condition_id}",
        slug=condition_id,
        volume=1.0,
        liquidity=1.0,
        category="Other",
        token_ids=token_ids,
    )


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def mock_client():
    client = MagicMock(spec=PolymarketClient)
    client.get_top_markets = AsyncMock(
        return_value=[_market("0xm1", ("111", "112")), _market("0xm2", ("221", "222"))]
    )
    return client


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_trade_frame_emits_trade(self) -> None:
        on_trade = AsyncMock()
        feed = MarketFeedConnector(host="wss://test", on_trade=on_trade)

        await feed.handle_message(json.dumps(TRADE_FRAME))

        trade = on_trade.await_args.args[0]
        assert isinstance(trade, TradeEvent)
        assert trade.market_id == "0xm1"
        assert feed.stats.trades_received == 1
        assert feed.stats.last_message_time is not None

    @pytest.mark.asyncio
    async def test_array_frames_processed_individually(self) -> None:
        on_trade = AsyncMock()
        feed = MarketFeedConnector(host="wss://test", on_trade=on_trade)
        frames = [TRADE_FRAME, {**TRADE_FRAME, "event_type": "trade", "size": "1"}, {"event_type": "book"}]

        await feed.handle_message(json.dumps(frames))

        assert on_trade.await_count == 2
        assert feed.stats.messages_dropped == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["PONG", "INVALID OPERATION", "", "{not json"])
    async def test_non_json_frames_dropped(self, message) -> None:
        on_trade = AsyncMock()
        feed = MarketFeedConnector(host="wss://test", on_trade=on_trade)

        await feed.handle_message(message)

        on_trade.assert_not_awaited()
        assert feed.stats.messages_dropped == 1

    @pytest.mark.asyncio
    async def test_malformed_trade_dropped(self) -> None:
        on_trade = AsyncMock()
        feed = MarketFeedConnector(host="wss://test", on_trade=on_trade)

        await feed.handle_message(json.dumps({**TRADE_FRAME, "size": "lots"}))

        on_trade.assert_not_awaited()
        assert feed.stats.messages_dropped == 1

    @pytest.mark.asyncio
    async def test_price_changes_are_not_trades(self) -> None:
        on_trade = AsyncMock()
        on_price_update = AsyncMock()
        feed = MarketFeedConnector(
            host="wss://test", on_trade=on_trade, on_price_update=on_price_update
        )
        frame = {
            "market": "0xm1",
            "price_changes": [{"asset_id": "111", "price": "0.51", "side": "BUY"}],
        }

        await feed.handle_message(json.dumps(frame))

        on_trade.assert_not_awaited()
        update = on_price_update.await_args.args[0]
        assert isinstance(update, PriceUpdate)
        assert update.market == "0xm1"
        assert update.changes[0]["price"] == "0.51"
        assert feed.stats.price_updates_received == 1


class TestSession:
    @pytest.mark.asyncio
    async def test_subscribes_to_top_market_assets(self, mock_client) -> None:
        ws = FakeWebSocket()
        titles = MarketTitleResolver(None)
        feed = MarketFeedConnector(
            host="wss://test",
            client=mock_client,
            title_resolver=titles,
            max_subscribed_assets=3,
            reconnect_delay=10,
        )

        with patch(CONNECT, new=AsyncMock(return_value=ws)):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: ws.sent)
            await feed.stop()
            await task

        subscription = json.loads(ws.sent[0])
        assert subscription == {"assets_ids": ["111", "112", "221"], "type": "market"}
        assert feed.subscribed_assets == frozenset({"111", "112", "221"})
        assert [m.condition_id for m in feed.monitored_markets] == ["0xm1", "0xm2"]
        mock_client.get_top_markets.assert_awaited_with(limit=50)
        assert titles.cached("0xm2") == "Question 0xm2"

    @pytest.mark.asyncio
    async def test_subscription_failure_keeps_session(self, mock_client) -> None:
        mock_client.get_top_markets.side_effect = PolymarketTransientError("down")
        ws = FakeWebSocket([json.dumps(TRADE_FRAME)])
        on_trade = AsyncMock()
        feed = MarketFeedConnector(
            host="wss://test", client=mock_client, on_trade=on_trade, reconnect_delay=10
        )

        with patch(CONNECT, new=AsyncMock(return_value=ws)):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: on_trade.await_count >= 1)
            await feed.stop()
            await task

        assert ws.sent == []

    @pytest.mark.asyncio
    async def test_state_transitions_and_reconnect(self, mock_client) -> None:
        states: list[ConnectionState] = []

        async def on_state_change(state: ConnectionState) -> None:
            states.append(state)

        ws = FakeWebSocket([json.dumps(TRADE_FRAME)])
        on_trade = AsyncMock()
        feed = MarketFeedConnector(
            host="wss://test",
            client=mock_client,
            on_trade=on_trade,
            on_state_change=on_state_change,
            reconnect_delay=10,
        )

        with patch(CONNECT, new=AsyncMock(return_value=ws)) as connect:
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: feed.state == ConnectionState.RECONNECTING)
            await feed.stop()
            await task

        connect.assert_awaited_once()
        assert connect.await_args.kwargs["open_timeout"] == 10
        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.DISCONNECTED,
        ]
        assert feed.stats.reconnect_count == 1
        assert on_trade.await_count == 1
        assert ws.closed

    @pytest.mark.asyncio
    async def test_remote_close_reports_disconnected(self, mock_client) -> None:
        states: list[ConnectionState] = []

        async def on_state_change(state: ConnectionState) -> None:
            states.append(state)

        ws = FakeWebSocket()
        feed = MarketFeedConnector(
            host="wss://test",
            client=mock_client,
            on_state_change=on_state_change,
            reconnect_delay=10,
        )

        with patch(CONNECT, new=AsyncMock(return_value=ws)):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: feed.state == ConnectionState.RECONNECTING)
            dropped = list(states)
            await feed.stop()
            await task

        assert dropped[-2:] == [ConnectionState.DISCONNECTED, ConnectionState.RECONNECTING]

    @pytest.mark.asyncio
    async def test_failed_subscribe_closes_socket(self, mock_client) -> None:
        ws = FakeWebSocket()
        ws.send = AsyncMock(  # type: ignore[method-assign]
            side_effect=ConnectionClosedError(None, None)
        )
        feed = MarketFeedConnector(host="wss://test", client=mock_client, reconnect_delay=10)

        with patch(CONNECT, new=AsyncMock(return_value=ws)):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: feed.state == ConnectionState.RECONNECTING)
            closed_before_stop = ws.closed
            await feed.stop()
            await task

        assert closed_before_stop
        assert feed.stats.last_error

    @pytest.mark.asyncio
    async def test_connect_failures_retry_at_fixed_delay(self) -> None:
        feed = MarketFeedConnector(host="wss://test", reconnect_delay=0.01)

        with patch(CONNECT, new=AsyncMock(side_effect=OSError("refused"))) as connect:
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: feed.stats.reconnect_count >= 3)
            await feed.stop()
            await task

        assert connect.await_count >= 3
        assert "refused" in (feed.stats.last_error or "")
        assert feed.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_heartbeat_sends_ping(self) -> None:
        ws = FakeWebSocket()

        async def endless():
            await asyncio.Event().wait()
            yield ""  # pragma: no cover

        ws._iterate = endless  # type: ignore[method-assign]
        feed = MarketFeedConnector(host="wss://test", ping_interval=0.01, reconnect_delay=10)

        with patch(CONNECT, new=AsyncMock(return_value=ws)):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: HEARTBEAT_MESSAGE in ws.sent)
            await feed.stop()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    @pytest.mark.asyncio
    async def test_double_start_rejected(self) -> None:
        feed = MarketFeedConnector(host="wss://test", reconnect_delay=10)

        with patch(CONNECT, new=AsyncMock(side_effect=OSError("refused"))):
            task = asyncio.create_task(feed.start())
            await _wait_for(lambda: feed.state == ConnectionState.RECONNECTING)
            with pytest.raises(RuntimeError):
                await feed.start()
            await feed.stop()
            await task
