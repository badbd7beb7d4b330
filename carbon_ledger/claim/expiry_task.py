#!/usr/bin/env python
"""
Claim Expiry Task, intended to run daily from a scheduler.

Usage:
  ledger-expire-claims [--as_of YYYY-MM-DD] [--warning_days N] [--skip_warnings]

Arguments:
  --as_of          Optional cut-off date in YYYY-MM-DD format. Defaults to now.
  --warning_days   Warn about claims expiring within this many days.
                   Defaults to CLAIM_EXPIRY_WARNING_DAYS.
  --skip_warnings  Only expire claims, do not send expiry warnings.
"""

import argparse
import datetime
import sys

import pytz

from carbon_ledger.claim.services import expire_claims, send_expiry_warnings
from carbon_ledger.core.database import db, events
from carbon_ledger.logging_config import logger


def parse_date(date_str: str) -> datetime.datetime:
    """Parse a date string in YYYY-MM-DD format to a UTC datetime."""
    try:
        date_obj = datetime.datetime.strptime(date_str, "%Y-%m-%d")
        return date_obj.replace(tzinfo=pytz.UTC)
    except ValueError:
        print(f"Error: Invalid date format '{date_str}'. Expected format: YYYY-MM-DD")
        sys.exit(1)


def run_expiry(
    as_of: datetime.datetime | None = None,
    warning_days: int | None = None,
    send_warnings: bool = True,
) -> tuple[int, int]:
    """Expire lapsed claims, then warn about claims that will lapse soon.

    Returns:
        tuple[int, int]: Number of claims expired and warnings sent.
    """
    as_of = as_of or datetime.datetime.now(tz=pytz.UTC)
    esdb_client = events.get_esdb_client()

    with db.get_session("db_write") as write_session:
        expired = expire_claims(write_session, esdb_client, now=as_of)

    warnings = []
    if send_warnings:
        with db.get_session("db_read") as read_session:
            warnings = send_expiry_warnings(
                read_session, esdb_client, now=as_of, within_days=warning_days
            )

    logger.info(
        f"Claim expiry as of {as_of.isoformat()}: {len(expired)} expired, "
        f"{len(warnings)} expiry warnings sent"
    )
    return len(expired), len(warnings)


def main():
    parser = argparse.ArgumentParser(description="Claim Expiry Task")
    parser.add_argument(
        "--as_of", help="Cut-off date in YYYY-MM-DD format. Defaults to now."
    )
    parser.add_argument(
        "--warning_days",
        type=int,
        help="Warn about claims expiring within this many days.",
    )
    parser.add_argument(
        "--skip_warnings",
        action="store_true",
        help="Only expire claims, do not send expiry warnings.",
    )

    args = parser.parse_args()

    as_of = parse_date(args.as_of) if args.as_of else None
    expired_count, warning_count = run_expiry(
        as_of=as_of,
        warning_days=args.warning_days,
        send_warnings=not args.skip_warnings,
    )
    print(f"Expired {expired_count} claims, sent {warning_count} expiry warnings")


if __name__ == "__main__":
    main()
