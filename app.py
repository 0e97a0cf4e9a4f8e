#!/usr/bin/env python3
"""
Node Health Monitor - Main Application Entry Point.

============================================================
USAGE
============================================================
Direct execution:
    python app.py --rpc-url http://localhost:8545

With PM2:
    pm2 start app.py --interpreter python --name node-monitor -- --block-frequency 12

Environment-based configuration:
    NODE_MONITOR_RPC_URL=http://node:8545 python app.py

============================================================
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from node_monitor.cli import main


if __name__ == "__main__":
    sys.exit(main())
