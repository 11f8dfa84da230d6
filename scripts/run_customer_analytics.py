#!/usr/bin/env python3
"""
Run the customer analytics pipeline from the command line.

This script:
1. Optionally corrects zero-order customer segments
2. Loads customers, orders, products and acquisition rows
3. Calculates a new RFM snapshot (unless --skip-scoring)
4. Re-classifies customer lifecycle segments
5. Writes the assembled analytics JSON to stdout or a file

Usage:
    python3 scripts/run_customer_analytics.py --database-url postgresql://...
    python3 scripts/run_customer_analytics.py --start 2025-01-01 --end 2025-03-31 --output q1.json
"""

import asyncio
import argparse
import os
import sys
from datetime import datetime

from sqlalchemy.ext.asyncio import async_sessionmaker

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.core.config import get_settings
from storeops.core.database import create_engine_from_settings
from storeops.core.exceptions import StoreOpsError
from storeops.middleware.logging_config import configure_logging, get_logger, log_with_context

logger = get_logger("run_customer_analytics")


def parse_day(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run RFM scoring, segment classification and customer analytics"
    )
    parser.add_argument(
        '--database-url',
        default=None,
        help='Database URL (defaults to DATABASE_URL env var / .env)'
    )
    parser.add_argument(
        '--skip-scoring',
        action='store_true',
        help='Classify against the existing latest RFM snapshot instead of calculating a new one'
    )
    parser.add_argument(
        '--fix-zero-orders',
        action='store_true',
        help="Correct zero-order customer segments before the pipeline runs"
    )
    parser.add_argument('--start', type=parse_day, default=None, help='Reporting window start (YYYY-MM-DD)')
    parser.add_argument('--end', type=parse_day, default=None, help='Reporting window end, inclusive (YYYY-MM-DD)')
    parser.add_argument('--output', default=None, help='Write analytics JSON to this file instead of stdout')
    return parser


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    elif not os.getenv("DATABASE_URL") and settings.environment == "production":
        logger.error("database_url_not_set")
        return 1

    configure_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    log_with_context(job="customer_analytics", skip_scoring=args.skip_scoring)

    db_engine = create_engine_from_settings(settings)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    analytics_engine = CustomerAnalyticsEngine(session_factory, settings)

    try:
        if args.fix_zero_orders:
            updated = await analytics_engine.fix_zero_order_customers()
            logger.info("zero_order_fix_completed", updated=updated)

        analytics = await analytics_engine.run(
            start_date=args.start,
            end_date=args.end,
            skip_scoring=args.skip_scoring,
        )

        payload = analytics.model_dump_json(by_alias=True, indent=2)
        if args.output:
            with open(args.output, "w") as f:
                f.write(payload)
            logger.info("analytics_written", path=args.output)
        else:
            print(payload)

        return 0

    except StoreOpsError as e:
        logger.error("customer_analytics_failed", error=e.message, details=e.details)
        return 1

    finally:
        await db_engine.dispose()


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
