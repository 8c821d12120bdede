from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]

from jobfeed.core.config import Settings, get_settings
from jobfeed.schemas.jobs import JobRecord

logger = logging.getLogger(__name__)

TRACKED_TABLES = ("jobs", "daily_stats")

SCHEMA_SQL = """create table if not exists jobs (
  id text primary key,
  title text not null,
  company text not null,
  location text,
  url text,
  description text,
  salary_min numeric,
  salary_max numeric,
  posted_at timestamptz,
  category text,
  contract_type text,
  contract_time text,
  source text not null default 'adzuna',
  scraped_at timestamptz not null default now(),
  is_active boolean not null default true
);

create index if not exists idx_jobs_scraped_at on jobs (scraped_at desc);

create table if not exists daily_stats (
  date date primary key,
  jobs_scraped integer not null default 0 check (jobs_scraped >= 0)
);
"""


class RecordStoreError(Exception):
    """Base record store error."""


class RecordStoreUnavailableError(RecordStoreError):
    """Raised when the database is unavailable, not configured, or cannot answer a size query."""


@dataclass(frozen=True, slots=True)
class GrowthSample:
    date: date
    records_added: int


class PostgresRecordStore:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int = 1,
        max_pool_size: int = 2,
        tracked_tables: Sequence[str] = TRACKED_TABLES,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max(min_pool_size, max_pool_size)
        self.tracked_tables = tuple(tracked_tables)
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def ensure_schema(self) -> None:
        pool = await self._get_pool()
        try:
            await pool.execute(SCHEMA_SQL)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("could not apply schema") from exc

    async def total_size_bytes(self) -> int:
        """Database size in bytes, summing tracked table sizes when the database-wide query is refused."""
        pool = await self._get_pool()
        try:
            size = await pool.fetchval("select pg_database_size(current_database())")
        except asyncpg.PostgresError as exc:
            logger.warning("database size query unavailable (%s); summing table sizes", exc)
            size = None
        except (asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("database unavailable") from exc

        if size is not None:
            return int(size)

        sizes = await self.table_sizes()
        if not sizes:
            raise RecordStoreUnavailableError("no size information for tracked tables")
        return sum(sizes.values())

    async def table_sizes(self) -> dict[str, int]:
        sizes: dict[str, int] = {}
        for table in self.tracked_tables:
            # to_regclass yields null for missing tables, so they drop out here.
            size = await self._fetchval("select pg_total_relation_size(to_regclass($1))", table)
            if size is not None:
                sizes[table] = int(size)
        return sizes

    async def record_count(self) -> int:
        count = await self._fetchval("select count(*) from jobs")
        return int(count or 0)

    async def growth_samples(self, limit: int) -> list[GrowthSample]:
        if limit <= 0:
            return []
        rows = await self._fetch(
            """
            select date, jobs_scraped
            from daily_stats
            order by date desc
            limit $1
            """,
            limit,
        )
        return [
            GrowthSample(date=row["date"], records_added=max(0, int(row["jobs_scraped"] or 0)))
            for row in rows
        ]

    async def insert_jobs(self, records: Iterable[JobRecord]) -> int:
        """Insert records, skipping ids that are already stored. Returns the number inserted."""
        batch = list(records)
        if not batch:
            return 0

        pool = await self._get_pool()
        inserted = 0
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    for record in batch:
                        status = await conn.execute(
                            """
                            insert into jobs (
                              id,
                              title,
                              company,
                              location,
                              url,
                              description,
                              salary_min,
                              salary_max,
                              posted_at,
                              category,
                              contract_type,
                              contract_time
                            )
                            values ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                            on conflict (id) do nothing
                            """,
                            record.id,
                            record.title,
                            record.company,
                            record.location,
                            record.url,
                            record.description,
                            record.salary_min,
                            record.salary_max,
                            record.created_at,
                            record.category,
                            record.contract_type,
                            record.contract_time,
                        )
                        if _rows_affected(status):
                            inserted += 1
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("could not insert jobs") from exc
        return inserted

    async def record_growth(self, day: date, records_added: int) -> None:
        if records_added < 0:
            raise ValueError("records_added must be >= 0")
        await self._execute(
            """
            insert into daily_stats (date, jobs_scraped)
            values ($1, $2)
            on conflict (date) do update
            set jobs_scraped = daily_stats.jobs_scraped + excluded.jobs_scraped
            """,
            day,
            records_added,
        )

    async def _fetchval(self, query: str, *args: Any) -> Any:
        pool = await self._get_pool()
        try:
            return await pool.fetchval(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("record store query failed") from exc

    async def _fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        pool = await self._get_pool()
        try:
            return await pool.fetch(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("record store query failed") from exc

    async def _execute(self, query: str, *args: Any) -> str:
        pool = await self._get_pool()
        try:
            return await pool.execute(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise RecordStoreUnavailableError("record store write failed") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RecordStoreUnavailableError("JF_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RecordStoreUnavailableError("database unavailable") from exc


def _rows_affected(status: str) -> int:
    # asyncpg returns command tags such as "INSERT 0 1".
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


def build_record_store(settings: Settings) -> PostgresRecordStore:
    return PostgresRecordStore(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )


@lru_cache
def get_record_store() -> PostgresRecordStore:
    return build_record_store(get_settings())
