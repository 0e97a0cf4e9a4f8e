import sys

from node_monitor.cli import main


if __name__ == "__main__":
    sys.exit(main())
