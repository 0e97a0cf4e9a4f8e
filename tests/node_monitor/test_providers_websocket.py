"""
Tests for the newHeads WebSocket subscription.

A scripted connection factory stands in for websockets.connect.
"""

import asyncio
import json
from typing import Any, List
from unittest.mock import AsyncMock

import pytest

from node_monitor.exceptions import SubscriptionClosedError
from node_monitor.providers.websocket import WebSocketBlockSubscription

from conftest import rpc_block


SUB_ID = "0xsub"


def subscribe_reply(result: Any = SUB_ID, error: Any = None) -> str:
    message = {"jsonrpc": "2.0", "id": 1}
    if error is not None:
        message["error"] = error
    else:
        message["result"] = result
    return json.dumps(message)


def head(number: int, hash: str, timestamp: int, subscription: str = SUB_ID) -> str:
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription, "result": rpc_block(number, hash, timestamp)},
    })


class FakeWebSocket:
    """One scripted connection: replies for recv(), then notifications."""

    def __init__(self, replies: List[str], notifications: List[Any]):
        self._replies = list(replies)
        self._notifications = list(notifications)
        self.sent: List[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def recv(self) -> str:
        return self._replies.pop(0)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self._notifications:
            yield message

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        return False


class FakeConnector:
    """Returns scripted connections; refuses once exhausted."""

    def __init__(self, outcomes: List[Any]):
        self._outcomes = list(outcomes)
        self.calls: List[Any] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        outcome = self._outcomes.pop(0) if self._outcomes else OSError("connection refused")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


async def collect(subscription: WebSocketBlockSubscription):
    blocks = []
    with pytest.raises(SubscriptionClosedError) as exc_info:
        async for block in subscription.blocks():
            blocks.append(block)
    return blocks, exc_info.value


# ============================================================
# TESTS
# ============================================================

class TestWebSocketBlockSubscription:
    """Tests for WebSocketBlockSubscription."""

    @pytest.mark.asyncio
    async def test_subscribes_and_yields_heads(self):
        ws = FakeWebSocket([subscribe_reply()], [head(1, "0x01", 1000), head(2, "0x02", 1012)])
        connector = FakeConnector([ws])
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=0, connect=connector, sleep=AsyncMock(),
        )

        blocks, _ = await collect(subscription)

        assert [(b.number, b.hash, b.timestamp) for b in blocks] == [(1, "0x01", 1000), (2, "0x02", 1012)]
        assert json.loads(ws.sent[0]) == {
            "jsonrpc": "2.0", "id": 1, "method": "eth_subscribe", "params": ["newHeads"],
        }
        assert connector.calls[0] == ("ws://node:8546", {"ping_interval": 20.0})
        assert ws.closed

    @pytest.mark.asyncio
    async def test_skips_malformed_notifications(self):
        pending = json.loads(head(3, "0x03", 1024))
        pending["params"]["result"]["hash"] = None
        notifications = [
            "not json",
            json.dumps({"jsonrpc": "2.0", "method": "eth_other", "params": {}}),
            head(9, "0x09", 1000, subscription="0xother"),
            json.dumps({"jsonrpc": "2.0", "method": "eth_subscription", "params": ["bad"]}),
            json.dumps(pending),
            head(4, "0x04", 1036),
        ]
        ws = FakeWebSocket(["garbage", subscribe_reply()], notifications)
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=0, connect=FakeConnector([ws]), sleep=AsyncMock(),
        )

        blocks, _ = await collect(subscription)

        assert [b.number for b in blocks] == [4]
        assert subscription.messages_received == 6
        assert subscription.messages_skipped == 5

    @pytest.mark.asyncio
    async def test_reconnects_with_backoff_then_gives_up(self):
        """Backoff doubles on consecutive failures and resets after a block."""
        first = FakeWebSocket([subscribe_reply()], [head(1, "0x01", 1000), head(2, "0x02", 1012)])
        second = FakeWebSocket([subscribe_reply()], [head(3, "0x03", 1024)])
        connector = FakeConnector([first, second, OSError("refused"), OSError("refused")])
        sleep = AsyncMock()
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=2, connect=connector, sleep=sleep,
        )

        blocks, error = await collect(subscription)

        assert [b.number for b in blocks] == [1, 2, 3]
        assert [c.args[0] for c in sleep.await_args_list] == [1, 1, 2]
        assert len(connector.calls) == 4
        assert error.attempts == 2
        assert error.url == "ws://node:8546"
        assert isinstance(error.cause, OSError)

    @pytest.mark.asyncio
    async def test_open_timeout_is_retried(self):
        """A handshake timeout uses the reconnect budget."""
        accepted = FakeWebSocket([subscribe_reply()], [head(1, "0x01", 1000)])
        connector = FakeConnector([asyncio.TimeoutError(), accepted])
        sleep = AsyncMock()
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=1, connect=connector, sleep=sleep,
        )

        blocks, error = await collect(subscription)

        assert [b.number for b in blocks] == [1]
        assert len(connector.calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 1]
        assert error.attempts == 1

    @pytest.mark.asyncio
    async def test_rejected_subscription_is_retried(self):
        rejected = FakeWebSocket([subscribe_reply(error={"code": -32601, "message": "not supported"})], [])
        accepted = FakeWebSocket([subscribe_reply()], [head(1, "0x01", 1000)])
        sleep = AsyncMock()
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=1,
            connect=FakeConnector([rejected, accepted]), sleep=sleep,
        )

        blocks, _ = await collect(subscription)

        assert [b.number for b in blocks] == [1]
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self):
        sleep = AsyncMock()
        subscription = WebSocketBlockSubscription("ws://node:8546", max_reconnect_attempts=20, sleep=sleep)
        subscription._reconnect_count = 10

        await subscription._backoff(None)

        sleep.assert_awaited_once_with(60)
        assert subscription.reconnect_count == 11

    @pytest.mark.asyncio
    async def test_cannot_restart(self):
        subscription = WebSocketBlockSubscription(
            "ws://node:8546", max_reconnect_attempts=0, connect=FakeConnector([]), sleep=AsyncMock(),
        )
        await collect(subscription)

        with pytest.raises(RuntimeError):
            await subscription.blocks().__anext__()
