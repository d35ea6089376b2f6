"""Delete execution metrics older than N days.

Usage: python scripts/metrics_cleanup.py --days 30
"""
import argparse
import os
import sys

# Add project root to sys.path
sys.path.append(os.path.join(os.path.dirname(__file__), "../"))

from mealplanner.db import SessionLocal
from mealplanner.services.metrics import MetricsStore
from mealplanner.settings import settings


def cleanup(days: int) -> None:
    print(f"Connecting to {settings.database_url}...")
    session = SessionLocal()()
    try:
        deleted = MetricsStore(session).cleanup(days)
        print(f"Deleted {deleted} metrics older than {days} days.")
    finally:
        session.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Prune old execution metrics")
    parser.add_argument("--days", type=int, default=30)
    args = parser.parse_args()
    cleanup(args.days)
