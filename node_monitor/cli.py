"""
Node Monitor - CLI.

============================================================
USAGE
============================================================
node-monitor --rpc-url http://localhost:8545
node-monitor --rpc-url http://node:8545 --ws-url ws://node:8546
node-monitor --config monitor.yaml --log-format json --tracing

============================================================
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from node_monitor import __version__
from node_monitor.config import LOG_FORMATS, LOG_LEVELS, MonitorConfig, load_config
from node_monitor.exceptions import ConfigurationError
from node_monitor.logging_setup import setup_logging
from node_monitor.runtime import NodeMonitor


EXIT_CONFIG_ERROR = 2


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="node-monitor",
        description="Monitor an Ethereum node RPC endpoint and expose its health",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Endpoints:
  GET  /lastBlock   latest block seen by the monitor
  POST /toggleFail  flip the force-unhealthy flag
  GET  /health      200 when the latest block is fresh, 503 otherwise

Flags not given on the command line fall back to NODE_MONITOR_* environment
variables (a .env file is honoured), then to --config, then to defaults.
        """,
    )

    # Defaults are None so unset flags do not mask env/YAML values
    parser.add_argument(
        "--listen",
        type=str,
        metavar="HOST:PORT",
        help="Listen address for the API (default: 127.0.0.1:8080)",
    )
    parser.add_argument(
        "--rpc-url",
        type=str,
        metavar="URL",
        help="JSON-RPC HTTP URL of the node (default: http://localhost:8545)",
    )
    parser.add_argument(
        "--ws-url",
        type=str,
        metavar="URL",
        help="JSON-RPC WebSocket URL; enables push mode with reconciliation",
    )
    parser.add_argument(
        "--block-frequency",
        type=int,
        metavar="SECONDS",
        help="Block frequency expected from the node (default: 12)",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        default=None,
        help="Enable request tracing",
    )

    # --------------------------------------------------------
    # Advanced Options
    # --------------------------------------------------------
    advanced_group = parser.add_argument_group("Advanced Options")

    advanced_group.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="YAML configuration file",
    )
    advanced_group.add_argument(
        "--env-file",
        type=Path,
        metavar="PATH",
        help="Environment file to load (default: nearest .env)",
    )
    advanced_group.add_argument(
        "--rpc-timeout",
        type=float,
        metavar="SECONDS",
        help="HTTP JSON-RPC request timeout (default: 10)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )
    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=LOG_FORMATS,
        help="Logging format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> MonitorConfig:
    """
    Build configuration from CLI arguments and the environment.

    Raises:
        ConfigurationError: If any source is invalid
    """
    config = load_config(
        config_file=args.config,
        env_file=args.env_file,
        listen=args.listen,
        rpc_url=args.rpc_url,
        ws_url=args.ws_url,
        block_frequency=args.block_frequency,
        tracing=args.tracing,
        rpc_timeout_seconds=args.rpc_timeout,
        log_level=args.log_level,
        log_format=args.log_format,
    )
    return config.validated()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(config: MonitorConfig) -> int:
    """Run the monitor until shutdown."""
    monitor = NodeMonitor(config)
    return await monitor.run()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ConfigurationError as e:
        for error in e.errors or [e.message]:
            print(f"Error: {error}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.log_level, config.log_format)

    try:
        return asyncio.run(async_main(config))
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
