#!/usr/bin/env python3
"""
Entry point for the tick job runner.
Runs one batch job (e.g. tick aggregation) and exits.

Usage:
    python backend/tick_jobs/main.py --env .env tick-aggregate minute
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tick_jobs.cli import main

if __name__ == "__main__":
    main()
