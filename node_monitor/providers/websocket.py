"""
WebSocket Block Subscription - newHeads push channel.

============================================================
PURPOSE
============================================================
Subscribes to ``eth_subscribe ["newHeads"]`` on a node's
WebSocket endpoint and yields a BlockRecord for each header.

FEATURES:
- Ping/pong keepalive handled by websockets
- Reconnection with exponential backoff when the stream ends
- Malformed notifications skipped, never fatal
- Gives up after a bounded number of consecutive attempts

============================================================
"""

from typing import Any, AsyncIterator, Awaitable, Callable, Optional
import asyncio
import json
import logging

import websockets
from websockets.exceptions import WebSocketException

from node_monitor.exceptions import ProviderError, SubscriptionClosedError
from node_monitor.models import BlockRecord
from node_monitor.providers.base import BlockSubscription


logger = logging.getLogger(__name__)


class WebSocketBlockSubscription(BlockSubscription):
    """Push channel backed by a JSON-RPC WebSocket subscription."""

    DEFAULT_PING_INTERVAL = 20.0
    MAX_BACKOFF_SECONDS = 60

    def __init__(
        self,
        url: str,
        max_reconnect_attempts: int = 10,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        connect: Optional[Callable[..., Any]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        """
        Initialize subscription.

        Args:
            url: ws:// or wss:// endpoint
            max_reconnect_attempts: Consecutive failed attempts before giving up
            ping_interval: Keepalive ping interval in seconds
            connect: Connection factory (websockets.connect by default)
            sleep: Async sleep used for backoff
        """
        self._url = url
        self._max_reconnect_attempts = max_reconnect_attempts
        self._ping_interval = ping_interval
        self._connect = connect or websockets.connect
        self._sleep = sleep or asyncio.sleep
        self._started = False
        self._reconnect_count = 0
        self.messages_received = 0
        self.messages_skipped = 0

    @property
    def name(self) -> str:
        return "websocket"

    @property
    def url(self) -> str:
        return self._url

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    # =========================================================
    # STREAM
    # =========================================================

    async def blocks(self) -> AsyncIterator[BlockRecord]:
        if self._started:
            raise RuntimeError("Block subscription cannot be restarted")
        self._started = True

        while True:
            last_error: Optional[BaseException] = None
            try:
                async with self._connect(self._url, ping_interval=self._ping_interval) as ws:
                    subscription_id = await self._subscribe(ws)
                    logger.info(f"Subscribed to newHeads on {self._url} (id={subscription_id})")

                    async for message in ws:
                        block = self._parse_notification(message, subscription_id)
                        if block is None:
                            continue
                        self._reconnect_count = 0
                        yield block

                logger.warning(f"Subscription stream on {self._url} ended")

            except (WebSocketException, OSError, asyncio.TimeoutError, ProviderError) as e:
                last_error = e
                logger.warning(f"Subscription error on {self._url}: {e}")

            await self._backoff(last_error)

    async def _backoff(self, cause: Optional[BaseException]) -> None:
        """Wait before reconnecting, or give up."""
        if self._reconnect_count >= self._max_reconnect_attempts:
            logger.error("Max reconnection attempts reached")
            raise SubscriptionClosedError(
                "Subscription closed and max reconnection attempts reached",
                url=self._url,
                attempts=self._reconnect_count,
                cause=cause,
            )

        backoff = min(2 ** self._reconnect_count, self.MAX_BACKOFF_SECONDS)
        self._reconnect_count += 1
        logger.info(f"Reconnecting in {backoff}s (attempt {self._reconnect_count})")
        await self._sleep(backoff)

    # =========================================================
    # PROTOCOL
    # =========================================================

    async def _subscribe(self, ws: Any) -> str:
        """Send eth_subscribe and wait for the subscription id."""
        await ws.send(json.dumps({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "eth_subscribe",
            "params": ["newHeads"],
        }))

        while True:
            raw = await ws.recv()
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-JSON message while subscribing")
                continue

            if not isinstance(data, dict) or data.get("id") != 1:
                continue

            if data.get("error"):
                raise ProviderError(
                    f"Subscription rejected: {data['error']}",
                    endpoint=self._url,
                    method="eth_subscribe",
                    rpc_error=data["error"] if isinstance(data["error"], dict) else None,
                )

            subscription_id = data.get("result")
            if not isinstance(subscription_id, str):
                raise ProviderError(
                    "Subscription response has no id",
                    endpoint=self._url,
                    method="eth_subscribe",
                )
            return subscription_id

    def _parse_notification(self, raw: Any, subscription_id: str) -> Optional[BlockRecord]:
        """
        Parse a subscription notification.

        Returns:
            BlockRecord, or None for messages that are not block headers
        """
        self.messages_received += 1
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.messages_skipped += 1
            logger.warning(f"Invalid JSON notification: {e}")
            return None

        if not isinstance(data, dict) or data.get("method") != "eth_subscription":
            self.messages_skipped += 1
            return None

        params = data.get("params")
        if not isinstance(params, dict) or params.get("subscription") != subscription_id:
            self.messages_skipped += 1
            return None

        try:
            return BlockRecord.from_rpc(params.get("result"))
        except ProviderError as e:
            self.messages_skipped += 1
            logger.warning(f"Skipping malformed header: {e}")
            return None
