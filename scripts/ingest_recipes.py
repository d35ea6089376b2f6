"""Pull every recipe post from Ghost and (re)index it.

Usage: python scripts/ingest_recipes.py [--force]
"""
import argparse
import os
import sys

# Add project root to sys.path
sys.path.append(os.path.join(os.path.dirname(__file__), "../"))

from mealplanner.db import Base, SessionLocal, get_engine
from mealplanner.errors import MealPlannerError
from mealplanner.settings import settings
from mealplanner.wiring import Services


def ingest_recipes(force: bool = False) -> int:
    print(f"Connecting to {settings.database_url}...")
    Base.metadata.create_all(bind=get_engine())
    services = Services.from_settings(settings)
    if services.ghost is None:
        print("Error: GHOST_API_URL is not configured.")
        return 1

    session = SessionLocal()()
    try:
        report = services.ingestion(session).ingest_all(skip_if_unchanged=not force)
    except MealPlannerError as e:
        print(f"Error: {e}")
        return 1
    finally:
        session.close()

    print(
        f"Ingestion complete: {report.processed} processed, {report.skipped} unchanged, "
        f"{report.failed} failed, {report.removed} removed."
    )
    return 0 if report.failed == 0 else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Ingest recipes from Ghost")
    parser.add_argument("--force", action="store_true", help="re-extract posts even when unchanged")
    args = parser.parse_args()
    sys.exit(ingest_recipes(force=args.force))
