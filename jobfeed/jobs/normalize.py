from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from jobfeed.schemas.jobs import JobRecord

DEFAULT_TITLE = "Unknown Title"
DEFAULT_COMPANY = "Unknown Company"
DEFAULT_LOCATION = "Unknown Location"
DEFAULT_CATEGORY = "Uncategorized"
DEFAULT_CONTRACT_TYPE = "full_time"
DEFAULT_CONTRACT_TIME = "permanent"


def normalize_result(raw: Any) -> JobRecord | None:
    """Map one raw Adzuna result onto a JobRecord.

    Missing optional fields fall back to the module defaults. Results without a
    usable id cannot be deduplicated and yield ``None``.
    """
    if not isinstance(raw, dict):
        return None

    job_id = _as_id(raw.get("id"))
    if job_id is None:
        return None

    return JobRecord(
        id=job_id,
        title=_as_text(raw.get("title")) or DEFAULT_TITLE,
        company=_display_name(raw.get("company")) or DEFAULT_COMPANY,
        location=_display_name(raw.get("location")) or DEFAULT_LOCATION,
        url=_as_text(raw.get("redirect_url")) or "",
        description=_as_text(raw.get("description")) or "",
        salary_min=_as_salary(raw.get("salary_min")),
        salary_max=_as_salary(raw.get("salary_max")),
        created_at=_parse_timestamp(raw.get("created")),
        category=_label(raw.get("category")) or DEFAULT_CATEGORY,
        contract_type=_as_text(raw.get("contract_type")) or DEFAULT_CONTRACT_TYPE,
        contract_time=_as_text(raw.get("contract_time")) or DEFAULT_CONTRACT_TIME,
    )


def _as_id(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)):
        return _as_text(str(value))
    return None


def _as_text(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None


def _display_name(value: Any) -> str | None:
    if isinstance(value, dict):
        return _as_text(value.get("display_name"))
    return None


def _label(value: Any) -> str | None:
    if isinstance(value, dict):
        return _as_text(value.get("label"))
    return None


def _as_salary(value: Any) -> float | None:
    # Adzuna reports unknown salaries as 0 or omits them.
    if isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_timestamp(value: Any) -> datetime | None:
    raw = _as_text(value)
    if raw is None:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
