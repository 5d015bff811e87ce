#!/usr/bin/env python3
"""
Dry Run - Assign stations and duties over local config files (nothing is persisted)

Usage:
  python scripts/run_dry_run.py --start 2024-03-01 --end 2024-03-31
  python scripts/run_dry_run.py --start 2024-03-01 --end 2024-03-31 --seed 7 --save outputs/shifts.json
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from imaging_roster.dry_run import main

if __name__ == "__main__":
    main()
