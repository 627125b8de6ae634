"""
Entry point for the external scheduler (cron, k8s CronJob, ...):

    python scripts/run_annual_reset.py --year 2026

Exits non-zero when any user failed to reset.
"""
import argparse
import sys
import os
import logging
from datetime import date

# Ensure we can import app modules
sys.path.append(os.getcwd())

from app.core.config import settings
from app.core.logging import setup_logging
from app.database import SessionLocal, init_db
from app.services.annual_reset import AnnualResetService

logger = logging.getLogger("annual_reset")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Reset leave balances for a new year")
    parser.add_argument("--year", type=int, default=date.today().year, help="year to reset balances for")
    args = parser.parse_args(argv)

    setup_logging(settings.log_level)
    init_db()

    db = SessionLocal()
    try:
        result = AnnualResetService(db).run(args.year)
    finally:
        db.close()

    logger.info(
        f"Annual reset {args.year}: {result['users_reset']} user(s) reset, {len(result['errors'])} error(s)"
    )
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
