#!/usr/bin/env python3
"""Emit deterministic SQL for the tables the ingest runner writes and the capacity check reads."""

from __future__ import annotations

import argparse

from jobfeed.services.record_store import SCHEMA_SQL


def render_sql(*, drop_existing: bool = False) -> str:
    header = "-- jobfeed schema\n-- Run this in the Supabase SQL editor (or equivalent privileged Postgres session).\n\n"
    if not drop_existing:
        return header + SCHEMA_SQL
    drops = "drop table if exists daily_stats;\ndrop table if exists jobs;\n\n"
    return header + drops + SCHEMA_SQL


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL that creates the jobfeed tables.")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Prefix the output with drop statements for the jobfeed tables",
    )
    args = parser.parse_args()
    print(render_sql(drop_existing=args.drop_existing))


if __name__ == "__main__":
    main()
