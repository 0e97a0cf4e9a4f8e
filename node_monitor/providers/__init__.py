"""Block data channels."""

from node_monitor.providers.base import BlockProvider, BlockSubscription
from node_monitor.providers.http import JsonRpcHttpProvider
from node_monitor.providers.websocket import WebSocketBlockSubscription

__all__ = [
    "BlockProvider",
    "BlockSubscription",
    "JsonRpcHttpProvider",
    "WebSocketBlockSubscription",
]
