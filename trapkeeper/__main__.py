"""Allow running Trapkeeper with python -m trapkeeper."""

import sys

from trapkeeper.cli import main

if __name__ == "__main__":
    sys.exit(main())
