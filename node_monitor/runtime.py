"""
Node Monitor - Runtime.

============================================================
RESPONSIBILITY
============================================================
Wires state, block source and HTTP API into one process.

- Serves the HTTP API on the configured listen address
- Runs exactly one ingestion task
- Stops on SIGINT/SIGTERM (no drain protocol)
- Terminates on non-recoverable errors with a documented
  exit code

============================================================
EXIT CODES
============================================================
0   clean shutdown
1   ingestion stopped (e.g. subscription closed for good)
70  shared state unverifiable (StateAccessFailure)

============================================================
"""

import asyncio
import logging
import signal
import sys
from typing import List, Optional, Set

from aiohttp import web
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from node_monitor.api import create_app
from node_monitor.clock import ClockProtocol
from node_monitor.config import MonitorConfig
from node_monitor.exceptions import NodeMonitorError, StateAccessFailure
from node_monitor.providers import (
    BlockProvider,
    BlockSubscription,
    JsonRpcHttpProvider,
    WebSocketBlockSubscription,
)
from node_monitor.scheduler import TickScheduler
from node_monitor.sources import BlockSource, create_block_source
from node_monitor.state import MonitorState
from node_monitor.telemetry import create_tracer_provider


logger = logging.getLogger(__name__)


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_STATE_FAILURE = 70


class NodeMonitor:
    """The monitor process: one ingestion task plus the HTTP API."""

    def __init__(
        self,
        config: MonitorConfig,
        clock: Optional[ClockProtocol] = None,
        http_provider: Optional[BlockProvider] = None,
        subscription: Optional[BlockSubscription] = None,
    ):
        """
        Initialize monitor.

        Args:
            config: Runtime configuration
            clock: Time source (system clock by default)
            http_provider: Pull channel (built from rpc_url by default)
            subscription: Push channel (built from ws_url by default)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self._config = config.validated()
        self._state = MonitorState(config.block_frequency)

        self._http = http_provider or JsonRpcHttpProvider(
            config.rpc_url,
            timeout=config.rpc_timeout_seconds,
        )
        if subscription is None and config.ws_url:
            subscription = WebSocketBlockSubscription(
                config.ws_url,
                max_reconnect_attempts=config.ws_max_reconnect_attempts,
            )

        self._source = create_block_source(
            self._http,
            scheduler=TickScheduler(config.block_frequency, config.poll_grace_seconds, clock),
            subscription=subscription,
        )
        self._tracer_provider: Optional[TracerProvider] = None
        tracer = None
        if config.tracing:
            self._tracer_provider = create_tracer_provider()
            trace.set_tracer_provider(self._tracer_provider)
            tracer = self._tracer_provider.get_tracer("node_monitor")

        self._app = create_app(
            self._state,
            clock,
            tracing=config.tracing,
            on_fatal=self._on_fatal,
            tracer=tracer,
        )

        self._runner: Optional[web.AppRunner] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._fatal: Optional[BaseException] = None
        self._signals: Set[signal.Signals] = set()

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def source(self) -> BlockSource:
        return self._source

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def start_api(self) -> None:
        """Start serving the HTTP API."""
        host, port = self._config.listen_host_port()
        self._runner = web.AppRunner(self._app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info(f"API listening on {host}:{port}")

    async def run(self, install_signal_handlers: bool = True) -> int:
        """
        Run until stopped or a fatal error occurs.

        Returns:
            Process exit code
        """
        logger.info(
            f"Starting node monitor | rpc_url={self._config.rpc_url} "
            f"ws_url={self._config.ws_url or '-'} "
            f"block_frequency={self._config.block_frequency} mode={self._source.mode}"
        )

        self._stop_event = asyncio.Event()
        if self._fatal is not None:
            self._stop_event.set()

        tasks: List[asyncio.Task] = []
        try:
            await self.start_api()
            if install_signal_handlers:
                self._install_signal_handlers()

            ingestion = asyncio.create_task(self._source.run(self._state), name="ingestion")
            stopper = asyncio.create_task(self._stop_event.wait(), name="stop")
            tasks = [ingestion, stopper]

            done, _ = await asyncio.wait(
                {ingestion, stopper},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if ingestion in done and self._fatal is None:
                error = None if ingestion.cancelled() else ingestion.exception()
                self._fatal = error or NodeMonitorError("Ingestion loop exited")
        except OSError as e:
            self._fatal = NodeMonitorError(
                f"Failed to start API on {self._config.listen}",
                context={"listen": self._config.listen},
                cause=e,
            )
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.shutdown()

        return self._exit_code()

    def request_stop(self) -> None:
        """Ask the monitor to stop."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def shutdown(self) -> None:
        """Stop the API and release transports."""
        self._restore_signal_handlers()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self._http.close()
        if self._tracer_provider is not None:
            # Flushes pending spans; blocks on the exporter
            await asyncio.to_thread(self._tracer_provider.shutdown)
            self._tracer_provider = None
        logger.info("Node monitor stopped")

    # --------------------------------------------------------
    # Fatal errors
    # --------------------------------------------------------

    def _on_fatal(self, error: BaseException) -> None:
        if self._fatal is None:
            self._fatal = error
        self.request_stop()

    def _exit_code(self) -> int:
        error = self._fatal
        if error is None:
            return EXIT_OK

        if isinstance(error, StateAccessFailure):
            logger.critical(f"Shared state unverifiable, terminating: {error}")
            return EXIT_STATE_FAILURE

        logger.critical(f"Fatal error, terminating: {error}", exc_info=error)
        return EXIT_FAILURE

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for shutdown."""
        if sys.platform == "win32":
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler, sig)
            self._signals.add(sig)

    def _restore_signal_handlers(self) -> None:
        if not self._signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    def _signal_handler(self, sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}")
        self.request_stop()
