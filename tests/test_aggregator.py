from __future__ import annotations

import asyncio
from typing import Any

import pytest

from jobfeed.jobs.aggregator import (
    AggregationCancelledError,
    AggregationRequest,
    AggregationRequestError,
    aggregate,
)
from jobfeed.services.adzuna_client import SearchPage, SearchTransportError


class FakeTransport:
    def __init__(self, pages: dict[str, list[dict[str, Any]] | Exception]) -> None:
        self.pages = pages
        self.calls: list[tuple[str, str, int]] = []

    async def fetch_page(self, term: str, locale: str, page: int = 1) -> SearchPage:
        self.calls.append((term, locale, page))
        outcome = self.pages.get(term, [])
        if isinstance(outcome, Exception):
            raise outcome
        return SearchPage(records=list(outcome), total_count=len(outcome))


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _raw(*ids: int) -> list[dict[str, Any]]:
    return [{"id": str(job_id), "title": f"Job {job_id}"} for job_id in ids]


def _run(request: AggregationRequest, transport: FakeTransport, **kwargs: Any):
    kwargs.setdefault("sleep", RecordingSleep())
    return asyncio.run(aggregate(request, transport=transport, **kwargs))


def test_aggregate_stops_at_target_and_never_queries_later_terms() -> None:
    transport = FakeTransport({"engineer": _raw(1, 2, 3, 4), "nurse": _raw(5, 6)})
    sleep = RecordingSleep()

    result = _run(AggregationRequest(["engineer", "nurse"], "Ontario", 3), transport, sleep=sleep)

    assert [record.id for record in result.records] == ["1", "2", "3"]
    assert transport.calls == [("engineer", "Ontario", 1)]
    assert sleep.delays == []
    assert result.per_term_counts == {"engineer": 3}
    assert result.errors == {}


def test_aggregate_first_seen_wins_across_terms() -> None:
    transport = FakeTransport(
        {
            "engineer": [{"id": "1", "title": "Engineer"}, {"id": "2", "title": "Engineer II"}],
            "developer": [{"id": "2", "title": "Developer"}, {"id": "3", "title": "Developer III"}],
        }
    )

    result = _run(AggregationRequest(["engineer", "developer"], "Ontario", 10), transport)

    assert [record.id for record in result.records] == ["1", "2", "3"]
    assert result.records[1].title == "Engineer II"
    assert result.per_term_counts == {"engineer": 2, "developer": 1}


def test_aggregate_records_failures_and_keeps_going() -> None:
    transport = FakeTransport(
        {
            "engineer": SearchTransportError("search returned HTTP 503", status_code=503),
            "nurse": _raw(7, 8),
        }
    )

    result = _run(AggregationRequest(["engineer", "nurse"], "Ontario", 5), transport)

    assert [record.id for record in result.records] == ["7", "8"]
    assert result.errors == {"engineer": "search returned HTTP 503"}
    assert "engineer" not in result.per_term_counts
    assert len(transport.calls) == 2


def test_aggregate_returns_empty_result_when_every_term_fails() -> None:
    transport = FakeTransport(
        {
            "engineer": SearchTransportError("request failed: ConnectError"),
            "nurse": RuntimeError("boom"),
        }
    )

    result = _run(AggregationRequest(["engineer", "nurse"], "Ontario", 5), transport)

    assert result.records == []
    assert set(result.errors) == {"engineer", "nurse"}
    assert "RuntimeError" in result.errors["nurse"]
    assert result.cancelled is False


def test_aggregate_with_no_terms_is_empty() -> None:
    transport = FakeTransport({})

    result = _run(AggregationRequest([], "Ontario", 5), transport)

    assert result.records == []
    assert result.errors == {}
    assert transport.calls == []


def test_aggregate_returns_everything_when_fewer_than_target() -> None:
    transport = FakeTransport({"a": _raw(1), "b": _raw(1, 2), "c": []})
    sleep = RecordingSleep()

    result = _run(AggregationRequest(["a", "b", "c"], "Ontario", 10), transport, sleep=sleep, delay_seconds=1.5)

    assert [record.id for record in result.records] == ["1", "2"]
    assert result.per_term_counts == {"a": 1, "b": 1, "c": 0}
    assert sleep.delays == [1.5, 1.5]


def test_aggregate_output_is_bounded_and_distinct() -> None:
    transport = FakeTransport({"a": _raw(1, 2, 3), "b": _raw(3, 4, 5), "c": _raw(5, 6, 7, 8)})

    result = _run(AggregationRequest(["a", "b", "c"], "Ontario", 6), transport)

    ids = [record.id for record in result.records]
    assert len(ids) == 6
    assert len(set(ids)) == len(ids)
    assert sum(result.per_term_counts.values()) == len(ids)


def test_aggregate_queries_repeated_terms_once() -> None:
    transport = FakeTransport({"a": _raw(1, 2), "b": SearchTransportError("boom")})
    sleep = RecordingSleep()

    result = _run(AggregationRequest(["a", "b", "a", "b"], "Ontario", 10), transport, sleep=sleep)

    assert transport.calls == [("a", "Ontario", 1), ("b", "Ontario", 1)]
    assert sleep.delays == [1.0]
    assert result.per_term_counts == {"a": 2}
    assert result.errors == {"b": "boom"}
    assert sum(result.per_term_counts.values()) == len(result.records)


def test_aggregate_drops_results_without_id() -> None:
    transport = FakeTransport({"a": [{"title": "No id"}, {"id": "9"}]})

    result = _run(AggregationRequest(["a"], "Ontario", 5), transport)

    assert [record.id for record in result.records] == ["9"]
    assert result.records[0].company == "Unknown Company"


@pytest.mark.parametrize(
    "request_",
    [
        AggregationRequest(["engineer"], "Ontario", 0),
        AggregationRequest(["engineer"], "Ontario", -2),
        AggregationRequest("engineer", "Ontario", 3),
        AggregationRequest(["engineer", "  "], "Ontario", 3),
    ],
)
def test_aggregate_rejects_invalid_request_before_any_call(request_: AggregationRequest) -> None:
    transport = FakeTransport({"engineer": _raw(1)})

    with pytest.raises(AggregationRequestError):
        _run(request_, transport)

    assert transport.calls == []


def test_aggregate_cancellation_discards_partial_result_by_default() -> None:
    cancel_event = asyncio.Event()
    transport = FakeTransport({"a": _raw(1), "b": _raw(2)})

    async def cancelling_sleep(delay: float) -> None:
        cancel_event.set()

    with pytest.raises(AggregationCancelledError):
        asyncio.run(
            aggregate(
                AggregationRequest(["a", "b"], "Ontario", 5),
                transport=transport,
                sleep=cancelling_sleep,
                cancel_event=cancel_event,
            )
        )

    assert [call[0] for call in transport.calls] == ["a"]


def test_aggregate_cancellation_returns_partial_result_on_request() -> None:
    cancel_event = asyncio.Event()
    transport = FakeTransport({"a": _raw(1), "b": _raw(2)})

    async def cancelling_sleep(delay: float) -> None:
        cancel_event.set()

    result = asyncio.run(
        aggregate(
            AggregationRequest(["a", "b"], "Ontario", 5),
            transport=transport,
            sleep=cancelling_sleep,
            cancel_event=cancel_event,
            return_partial=True,
        )
    )

    assert result.cancelled is True
    assert [record.id for record in result.records] == ["1"]
    assert [call[0] for call in transport.calls] == ["a"]


def test_aggregate_checks_cancellation_before_first_call() -> None:
    cancel_event = asyncio.Event()
    cancel_event.set()
    transport = FakeTransport({"a": _raw(1)})

    result = _run(
        AggregationRequest(["a"], "Ontario", 5),
        transport,
        cancel_event=cancel_event,
        return_partial=True,
    )

    assert result.cancelled is True
    assert result.records == []
    assert transport.calls == []


def test_aggregate_task_cancellation_propagates() -> None:
    transport = FakeTransport({"a": _raw(1), "b": _raw(2)})

    async def run() -> None:
        task = asyncio.create_task(
            aggregate(
                AggregationRequest(["a", "b"], "Ontario", 5),
                transport=transport,
                delay_seconds=30.0,
            )
        )
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert [call[0] for call in transport.calls] == ["a"]
