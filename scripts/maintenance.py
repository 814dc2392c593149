#!/usr/bin/env python3
"""
JoviTools Maintenance - cron entry point.

Usage:
    python3 scripts/maintenance.py purge-expired --dry-run
    python3 scripts/maintenance.py reset-coins

See jovitools/maintenance.py for the full command list.
"""

import sys

from jovitools.maintenance import main

if __name__ == "__main__":
    sys.exit(main())
