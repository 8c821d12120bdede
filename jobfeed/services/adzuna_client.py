from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from jobfeed.core.config import Settings


class SearchTransportError(Exception):
    """Raised when a single search page cannot be fetched or decoded."""

    def __init__(self, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class TransportConfig:
    app_id: str
    app_key: str
    base_url: str = "https://api.adzuna.com/v1/api/jobs"
    country: str = "ca"
    results_per_page: int = 50
    timeout_seconds: float = 15.0
    sort_by: str | None = "date"

    @classmethod
    def from_settings(cls, settings: Settings) -> TransportConfig:
        return cls(
            app_id=settings.adzuna_app_id,
            app_key=settings.adzuna_app_key,
            base_url=settings.adzuna_base_url,
            country=settings.adzuna_country,
            results_per_page=settings.adzuna_results_per_page,
            timeout_seconds=settings.adzuna_timeout_seconds,
            sort_by=settings.adzuna_sort_by or None,
        )

    def search_url(self, page: int) -> str:
        return f"{self.base_url.rstrip('/')}/{self.country}/search/{page}"


@dataclass(slots=True)
class SearchPage:
    records: list[dict[str, Any]] = field(default_factory=list)
    total_count: int = 0


class AdzunaTransport:
    """Single-attempt Adzuna search client. Retry policy belongs to the caller."""

    def __init__(self, config: TransportConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._client = client

    async def fetch_page(self, term: str, locale: str, page: int = 1) -> SearchPage:
        if page < 1:
            raise ValueError("page must be >= 1")

        params: dict[str, str | int] = {
            "app_id": self.config.app_id,
            "app_key": self.config.app_key,
            "what": term,
            "results_per_page": self.config.results_per_page,
        }
        if locale:
            params["where"] = locale
        if self.config.sort_by:
            params["sort_by"] = self.config.sort_by

        url = self.config.search_url(page)
        if self._client is not None:
            response = await self._get(self._client, url, params)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                response = await self._get(client, url, params)
        return _parse_page(response)

    @staticmethod
    async def _get(client: httpx.AsyncClient, url: str, params: dict[str, str | int]) -> httpx.Response:
        try:
            return await client.get(url, params=params, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise SearchTransportError(f"request failed: {exc.__class__.__name__}: {exc}") from exc


def _parse_page(response: httpx.Response) -> SearchPage:
    if response.status_code != 200:
        raise SearchTransportError(
            f"search returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise SearchTransportError("search returned a non-JSON body", status_code=response.status_code) from exc
    if not isinstance(payload, dict):
        raise SearchTransportError("search returned an unexpected payload", status_code=response.status_code)

    raw_results = payload.get("results")
    records = [item for item in raw_results if isinstance(item, dict)] if isinstance(raw_results, list) else []
    try:
        total_count = max(0, int(payload.get("count") or 0))
    except (TypeError, ValueError):
        total_count = 0
    return SearchPage(records=records, total_count=total_count)
