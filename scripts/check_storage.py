#!/usr/bin/env python3
"""Report storage usage against the configured budget and project when it runs out."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from jobfeed.core.config import get_settings
from jobfeed.core.telemetry import configure_logging
from jobfeed.jobs.capacity import CapacityReport, CapacityThresholds, assess_capacity, describe_report
from jobfeed.services.record_store import RecordStoreError, get_record_store


async def _assess(window_size: int) -> CapacityReport:
    settings = get_settings()
    store = get_record_store()
    try:
        return await assess_capacity(
            store,
            budget_bytes=settings.storage_budget_bytes,
            window_size=window_size,
            thresholds=CapacityThresholds.from_settings(settings),
        )
    finally:
        await store.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Check storage usage against the configured budget.")
    parser.add_argument(
        "--window",
        type=int,
        default=None,
        help="Number of recent daily samples used for the growth rate (default: JF_GROWTH_WINDOW_SIZE)",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    configure_logging()
    window_size = args.window if args.window is not None else get_settings().growth_window_size
    if window_size <= 0:
        print("--window must be > 0", file=sys.stderr)
        return 2

    try:
        report = asyncio.run(_assess(window_size))
    except RecordStoreError as exc:
        print(f"storage check failed: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.as_dict(), indent=2))
    else:
        print("\n".join(describe_report(report)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
