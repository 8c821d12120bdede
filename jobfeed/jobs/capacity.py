from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Literal, Protocol

from jobfeed.core.config import Settings
from jobfeed.services.record_store import GrowthSample

Status = Literal["healthy", "warning", "critical", "unknown"]
IndeterminateReason = Literal["no-growth-data", "zero-average-growth", "zero-record-size"]

NO_GROWTH_DATA: IndeterminateReason = "no-growth-data"
ZERO_AVERAGE_GROWTH: IndeterminateReason = "zero-average-growth"
ZERO_RECORD_SIZE: IndeterminateReason = "zero-record-size"


class CapacitySource(Protocol):
    async def total_size_bytes(self) -> int: ...

    async def record_count(self) -> int: ...

    async def table_sizes(self) -> dict[str, int]: ...

    async def growth_samples(self, limit: int) -> list[GrowthSample]: ...


@dataclass(frozen=True, slots=True)
class CapacityThresholds:
    free_fraction_critical: float = 0.20
    free_fraction_warning: float = 0.40
    days_critical: int = 7
    days_warning: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> CapacityThresholds:
        return cls(
            free_fraction_critical=settings.free_fraction_critical,
            free_fraction_warning=settings.free_fraction_warning,
            days_critical=settings.days_until_full_critical,
            days_warning=settings.days_until_full_warning,
        )


@dataclass(frozen=True, slots=True)
class CapacitySnapshot:
    total_size_bytes: int
    record_count: int
    budget_bytes: int
    table_sizes: dict[str, int] = field(default_factory=dict)

    @property
    def average_record_size_bytes(self) -> float:
        # No stored records means no footprint to measure.
        if self.record_count <= 0:
            return 0.0
        return self.total_size_bytes / max(self.record_count, 1)

    @property
    def free_bytes(self) -> int:
        # Negative when over budget.
        return self.budget_bytes - self.total_size_bytes

    @property
    def free_fraction(self) -> float:
        return self.free_bytes / self.budget_bytes


@dataclass(frozen=True, slots=True)
class CapacityProjection:
    average_daily_growth: float
    remaining_capacity: int | None
    days_until_full: int | None
    projected_full_date: date | None
    reason: IndeterminateReason | None = None
    sample_count: int = 0

    @property
    def determinate(self) -> bool:
        return self.reason is None


@dataclass(frozen=True, slots=True)
class CapacityReport:
    snapshot: CapacitySnapshot
    projection: CapacityProjection
    space_status: Status
    runway_status: Status

    def as_dict(self) -> dict[str, Any]:
        snapshot = self.snapshot
        projection = self.projection
        return {
            "total_size_bytes": snapshot.total_size_bytes,
            "record_count": snapshot.record_count,
            "budget_bytes": snapshot.budget_bytes,
            "table_sizes": dict(snapshot.table_sizes),
            "average_record_size_bytes": snapshot.average_record_size_bytes,
            "free_bytes": snapshot.free_bytes,
            "free_fraction": snapshot.free_fraction,
            "average_daily_growth": projection.average_daily_growth,
            "remaining_capacity": projection.remaining_capacity,
            "days_until_full": projection.days_until_full,
            "projected_full_date": (
                projection.projected_full_date.isoformat() if projection.projected_full_date else None
            ),
            "reason": projection.reason,
            "sample_count": projection.sample_count,
            "space_status": self.space_status,
            "runway_status": self.runway_status,
        }


async def snapshot(store: CapacitySource, *, budget_bytes: int) -> CapacitySnapshot:
    """Read current usage from the store.

    Store failures propagate; an unreadable size is never reported as zero usage.
    """
    if budget_bytes <= 0:
        raise ValueError("budget_bytes must be > 0")

    total_size_bytes = await store.total_size_bytes()
    record_count = await store.record_count()
    table_sizes = await store.table_sizes()
    return CapacitySnapshot(
        total_size_bytes=int(total_size_bytes),
        record_count=max(0, int(record_count)),
        budget_bytes=budget_bytes,
        table_sizes=dict(table_sizes),
    )


def project(
    snapshot: CapacitySnapshot,
    samples: Sequence[GrowthSample],
    window_size: int,
    *,
    today: date | None = None,
) -> CapacityProjection:
    if window_size <= 0:
        raise ValueError("window_size must be > 0")

    window = sorted(samples, key=lambda sample: sample.date, reverse=True)[:window_size]
    if not window:
        return CapacityProjection(
            average_daily_growth=0.0,
            remaining_capacity=None,
            days_until_full=None,
            projected_full_date=None,
            reason=NO_GROWTH_DATA,
        )

    average_daily_growth = sum(sample.records_added for sample in window) / len(window)

    average_size = snapshot.average_record_size_bytes
    if average_size <= 0:
        return CapacityProjection(
            average_daily_growth=average_daily_growth,
            remaining_capacity=None,
            days_until_full=None,
            projected_full_date=None,
            reason=ZERO_RECORD_SIZE,
            sample_count=len(window),
        )

    remaining_capacity = math.floor(snapshot.free_bytes / average_size)
    if average_daily_growth <= 0:
        return CapacityProjection(
            average_daily_growth=average_daily_growth,
            remaining_capacity=remaining_capacity,
            days_until_full=None,
            projected_full_date=None,
            reason=ZERO_AVERAGE_GROWTH,
            sample_count=len(window),
        )

    # Already over budget: full today rather than a date in the past.
    days_until_full = max(0, math.floor(remaining_capacity / average_daily_growth))
    return CapacityProjection(
        average_daily_growth=average_daily_growth,
        remaining_capacity=remaining_capacity,
        days_until_full=days_until_full,
        projected_full_date=(today or date.today()) + timedelta(days=days_until_full),
        sample_count=len(window),
    )


def classify_free_fraction(free_fraction: float, thresholds: CapacityThresholds | None = None) -> Status:
    limits = thresholds or CapacityThresholds()
    if free_fraction < limits.free_fraction_critical:
        return "critical"
    if free_fraction < limits.free_fraction_warning:
        return "warning"
    return "healthy"


def classify_days_until_full(
    projection: CapacityProjection,
    thresholds: CapacityThresholds | None = None,
) -> Status:
    limits = thresholds or CapacityThresholds()
    if projection.days_until_full is None:
        # Not growing is safe; missing data or record size is not.
        return "healthy" if projection.reason == ZERO_AVERAGE_GROWTH else "unknown"
    if projection.days_until_full < limits.days_critical:
        return "critical"
    if projection.days_until_full < limits.days_warning:
        return "warning"
    return "healthy"


async def assess_capacity(
    store: CapacitySource,
    *,
    budget_bytes: int,
    window_size: int,
    thresholds: CapacityThresholds | None = None,
    today: date | None = None,
) -> CapacityReport:
    current = await snapshot(store, budget_bytes=budget_bytes)
    samples = await store.growth_samples(window_size)
    projection = project(current, samples, window_size, today=today)
    return CapacityReport(
        snapshot=current,
        projection=projection,
        space_status=classify_free_fraction(current.free_fraction, thresholds),
        runway_status=classify_days_until_full(projection, thresholds),
    )


def describe_report(report: CapacityReport) -> list[str]:
    snapshot = report.snapshot
    projection = report.projection
    lines = [
        f"storage used: {format_bytes(snapshot.total_size_bytes)} of {format_bytes(snapshot.budget_bytes)}",
        f"stored records: {snapshot.record_count}",
        f"average record size: {snapshot.average_record_size_bytes / 1024:.2f} KB",
        (
            f"free space: {format_bytes(snapshot.free_bytes)} "
            f"({snapshot.free_fraction * 100:.2f}% available) [{report.space_status}]"
        ),
    ]
    for table, size in sorted(snapshot.table_sizes.items()):
        lines.append(f"table {table}: {format_bytes(size)}")

    if projection.remaining_capacity is not None:
        lines.append(f"estimated remaining capacity: ~{projection.remaining_capacity} records")

    if projection.reason == NO_GROWTH_DATA:
        lines.append("projection: not enough historical data to estimate growth")
    elif projection.reason == ZERO_RECORD_SIZE:
        lines.append("projection: no stored records to estimate a record size")
    elif projection.reason == ZERO_AVERAGE_GROWTH:
        lines.append(f"projection: no growth over the last {projection.sample_count} samples")
    elif projection.projected_full_date is not None:
        lines.append(
            f"projection: at {projection.average_daily_growth:.1f} records/day the budget is reached on "
            f"{projection.projected_full_date.isoformat()} (~{projection.days_until_full} days) "
            f"[{report.runway_status}]"
        )
    return lines


def format_bytes(size: int | float) -> str:
    return f"{size / (1024 * 1024):.2f} MB"
