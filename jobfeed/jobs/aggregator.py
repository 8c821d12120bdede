from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from opentelemetry import trace

from jobfeed.jobs.normalize import normalize_result
from jobfeed.schemas.jobs import JobRecord
from jobfeed.services.adzuna_client import SearchPage, SearchTransportError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_INTER_CALL_DELAY_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[Any]]


class SearchTransport(Protocol):
    async def fetch_page(self, term: str, locale: str, page: int = 1) -> SearchPage: ...


class AggregationRequestError(ValueError):
    """Raised before any search call when the request is malformed."""


class AggregationCancelledError(Exception):
    """Raised when a run is cancelled and the caller did not ask for partial results."""


@dataclass(slots=True)
class AggregationRequest:
    query_terms: Sequence[str]
    locale: str
    target_count: int


@dataclass(slots=True)
class AggregationResult:
    records: list[JobRecord] = field(default_factory=list)
    per_term_counts: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False


async def aggregate(
    request: AggregationRequest,
    *,
    transport: SearchTransport,
    delay_seconds: float = DEFAULT_INTER_CALL_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
    cancel_event: asyncio.Event | None = None,
    return_partial: bool = False,
) -> AggregationResult:
    """Fold the first result page of each term into one deduplicated, bounded set.

    Terms are queried strictly in order, one at a time, with ``delay_seconds``
    between calls. The first occurrence of an id wins. Failed terms are
    recorded in ``errors`` and skipped. Repeated terms are queried once. Querying stops as soon as
    ``target_count`` unique records have been collected.

    Setting ``cancel_event`` stops the run at the next checkpoint. The partial
    result is returned (flagged ``cancelled``) only when ``return_partial`` is
    true, otherwise AggregationCancelledError is raised.
    """
    _validate(request, delay_seconds)

    result = AggregationResult()
    seen_ids: set[str] = set()
    # Each distinct term is queried once, at its first position.
    terms = list(dict.fromkeys(request.query_terms))
    if len(terms) < len(request.query_terms):
        logger.info("skipping %s repeated query terms", len(request.query_terms) - len(terms))

    for index, term in enumerate(terms):
        if _cancelled(cancel_event):
            return _stop(result, return_partial, term)

        with tracer.start_as_current_span("aggregate.term") as span:
            span.set_attribute("aggregate.term", term)
            try:
                page = await transport.fetch_page(term, request.locale, 1)
            except SearchTransportError as exc:
                result.errors[term] = exc.reason
                span.set_attribute("aggregate.error", exc.reason)
                logger.warning("search failed term=%r reason=%s", term, exc.reason)
                page = None
            except Exception as exc:
                result.errors[term] = f"unexpected transport error: {exc.__class__.__name__}: {exc}"
                span.set_attribute("aggregate.error", result.errors[term])
                logger.exception("search raised unexpectedly term=%r", term)
                page = None

            if page is not None:
                kept = _merge_page(page, seen_ids, result.records, request.target_count)
                result.per_term_counts[term] = kept
                span.set_attribute("aggregate.fetched", len(page.records))
                span.set_attribute("aggregate.kept", kept)
                logger.info(
                    "search term=%r fetched=%s kept=%s total=%s",
                    term,
                    len(page.records),
                    kept,
                    len(result.records),
                )

        if len(result.records) >= request.target_count:
            logger.info(
                "target reached count=%s; skipping %s remaining terms",
                request.target_count,
                len(terms) - index - 1,
            )
            break

        if index == len(terms) - 1:
            break

        if _cancelled(cancel_event):
            return _stop(result, return_partial, terms[index + 1])
        await sleep(delay_seconds)
        if _cancelled(cancel_event):
            return _stop(result, return_partial, terms[index + 1])

    del result.records[request.target_count :]
    return result


def _validate(request: AggregationRequest, delay_seconds: float) -> None:
    if isinstance(request.target_count, bool) or not isinstance(request.target_count, int):
        raise AggregationRequestError("target_count must be an integer")
    if request.target_count <= 0:
        raise AggregationRequestError("target_count must be > 0")
    if isinstance(request.query_terms, str):
        raise AggregationRequestError("query_terms must be a sequence of strings, not a string")
    for term in request.query_terms:
        if not isinstance(term, str) or not term.strip():
            raise AggregationRequestError("query_terms must contain non-empty strings")
    if not isinstance(request.locale, str):
        raise AggregationRequestError("locale must be a string")
    if delay_seconds < 0:
        raise AggregationRequestError("delay_seconds must be >= 0")


def _merge_page(page: SearchPage, seen_ids: set[str], records: list[JobRecord], target_count: int) -> int:
    kept = 0
    dropped = 0
    for raw in page.records:
        record = normalize_result(raw)
        if record is None:
            dropped += 1
            continue
        if record.id in seen_ids:
            continue
        seen_ids.add(record.id)
        if len(records) >= target_count:
            # Past the bound; the rest of the page is never returned.
            continue
        records.append(record)
        kept += 1
    if dropped:
        logger.warning("dropped results without id count=%s", dropped)
    return kept


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _stop(result: AggregationResult, return_partial: bool, next_term: str) -> AggregationResult:
    logger.info("aggregation cancelled before term=%r collected=%s", next_term, len(result.records))
    if not return_partial:
        raise AggregationCancelledError(f"aggregation cancelled before term {next_term!r}")
    result.cancelled = True
    return result
