"""
JSON-RPC HTTP Provider - Block fetches over Ethereum JSON-RPC.

Uses ``eth_getBlockByNumber`` with transaction hydration disabled;
only number, hash and timestamp are read from the result.
"""

from typing import Any, Dict, List, Optional
import asyncio
import itertools
import logging
import time

import aiohttp

from node_monitor.exceptions import ProviderError
from node_monitor.models import BlockRecord
from node_monitor.providers.base import BlockProvider


logger = logging.getLogger(__name__)


class JsonRpcHttpProvider(BlockProvider):
    """Fetches blocks from a node's HTTP JSON-RPC endpoint."""

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        self.latency_ms: Optional[float] = None

    @property
    def name(self) -> str:
        return "http"

    @property
    def url(self) -> str:
        return self._url

    async def fetch_latest(self) -> Optional[BlockRecord]:
        return await self._get_block("latest")

    async def fetch_by_number(self, number: int) -> Optional[BlockRecord]:
        return await self._get_block(hex(number))

    async def _get_block(self, tag: str) -> Optional[BlockRecord]:
        result = await self.call("eth_getBlockByNumber", [tag, False])
        if result is None:
            return None
        return BlockRecord.from_rpc(result)

    # ─────────────────────────────────────────────────────────────
    # JSON-RPC
    # ─────────────────────────────────────────────────────────────

    async def call(self, method: str, params: List[Any]) -> Any:
        """
        Perform one JSON-RPC call.

        Returns:
            The ``result`` member of the response

        Raises:
            ProviderError: On HTTP, connection, framing or RPC errors
        """
        session = await self._get_session()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            async with session.post(self._url, json=payload) as response:
                self.latency_ms = (time.time() - start_time) * 1000

                if response.status >= 400:
                    body = await response.text(errors="replace")
                    raise ProviderError(
                        f"HTTP {response.status}",
                        endpoint=self._url,
                        method=method,
                        status_code=response.status,
                        context={"body": body[:500]},
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderError(
                        "Invalid JSON in RPC response",
                        endpoint=self._url,
                        method=method,
                        cause=e,
                    )

        except aiohttp.ClientError as e:
            raise ProviderError(
                f"Connection error: {e}",
                endpoint=self._url,
                method=method,
                cause=e,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                f"Timeout after {self._timeout}s",
                endpoint=self._url,
                method=method,
                cause=e,
            )

        return self._unwrap(data, method)

    def _unwrap(self, data: Any, method: str) -> Any:
        if not isinstance(data, dict):
            raise ProviderError(
                "RPC response is not an object",
                endpoint=self._url,
                method=method,
            )

        error: Optional[Dict[str, Any]] = data.get("error")
        if error:
            raise ProviderError(
                f"RPC error: {error.get('message', error) if isinstance(error, dict) else error}",
                endpoint=self._url,
                method=method,
                rpc_error=error if isinstance(error, dict) else {"message": str(error)},
            )

        if "result" not in data:
            raise ProviderError(
                "RPC response has no result",
                endpoint=self._url,
                method=method,
            )
        return data["result"]

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": "node-health-monitor/1.0",
                },
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
