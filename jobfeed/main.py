from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date

from opentelemetry import trace

from jobfeed.core.config import Settings, get_settings
from jobfeed.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from jobfeed.jobs.aggregator import AggregationRequest, SearchTransport, aggregate
from jobfeed.jobs.capacity import CapacityReport, CapacityThresholds, assess_capacity, describe_report
from jobfeed.services.adzuna_client import AdzunaTransport, TransportConfig
from jobfeed.services.record_store import PostgresRecordStore, RecordStoreError, build_record_store

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(slots=True)
class IngestSummary:
    fetched: int
    inserted: int
    per_term_counts: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    capacity: CapacityReport | None = None


async def run_daily_ingest(
    settings: Settings | None = None,
    *,
    transport: SearchTransport | None = None,
    store: PostgresRecordStore | None = None,
    today: date | None = None,
) -> IngestSummary:
    """Aggregate, store and report capacity. A store built here from ``settings`` is closed on return."""
    settings = settings or get_settings()
    transport = transport or AdzunaTransport(TransportConfig.from_settings(settings))
    if store is not None:
        return await _ingest(settings, transport, store, today or date.today())

    owned_store = build_record_store(settings)
    try:
        return await _ingest(settings, transport, owned_store, today or date.today())
    finally:
        await owned_store.close()


async def _ingest(
    settings: Settings,
    transport: SearchTransport,
    store: PostgresRecordStore,
    run_date: date,
) -> IngestSummary:
    with tracer.start_as_current_span("ingest.daily_run") as span:
        result = await aggregate(
            AggregationRequest(
                query_terms=settings.query_terms,
                locale=settings.search_locale,
                target_count=settings.target_count,
            ),
            transport=transport,
            delay_seconds=settings.inter_call_delay_seconds,
        )
        span.set_attribute("ingest.fetched", len(result.records))
        span.set_attribute("ingest.failed_terms", len(result.errors))
        if result.errors:
            logger.warning("terms failed count=%s terms=%s", len(result.errors), sorted(result.errors))

        inserted = await store.insert_jobs(result.records)
        await store.record_growth(run_date, inserted)
        span.set_attribute("ingest.inserted", inserted)
        logger.info("ingest stored fetched=%s inserted=%s", len(result.records), inserted)

        summary = IngestSummary(
            fetched=len(result.records),
            inserted=inserted,
            per_term_counts=dict(result.per_term_counts),
            errors=dict(result.errors),
        )

        try:
            summary.capacity = await assess_capacity(
                store,
                budget_bytes=settings.storage_budget_bytes,
                window_size=settings.growth_window_size,
                thresholds=CapacityThresholds.from_settings(settings),
                today=run_date,
            )
        except RecordStoreError:
            logger.exception("capacity check failed after ingest")
            raise

        for line in describe_report(summary.capacity):
            logger.info("capacity %s", line)
        return summary


async def main() -> None:
    settings = get_settings()
    configure_logging(correlate=settings.otel_log_correlation)
    telemetry_runtime = setup_telemetry(settings)
    try:
        await run_daily_ingest(settings)
    finally:
        shutdown_telemetry(telemetry_runtime)


if __name__ == "__main__":
    asyncio.run(main())
