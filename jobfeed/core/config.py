from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: str = "dev"
    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    adzuna_base_url: str = "https://api.adzuna.com/v1/api/jobs"
    adzuna_country: str = "ca"
    adzuna_results_per_page: int = 50
    adzuna_timeout_seconds: float = 15.0
    adzuna_sort_by: str = "date"
    query_terms: list[str] = []
    search_locale: str = "Ontario"
    target_count: int = 40
    inter_call_delay_seconds: float = 1.0
    database_url: str | None = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 2
    storage_budget_bytes: int = 500 * 1024 * 1024
    growth_window_size: int = 7
    free_fraction_critical: float = 0.20
    free_fraction_warning: float = 0.40
    days_until_full_critical: int = 7
    days_until_full_warning: int = 30
    otel_enabled: bool = True
    otel_service_name: str = "jobfeed"
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None
    otel_trace_sample_ratio: float = 1.0
    otel_log_correlation: bool = True

    model_config = SettingsConfigDict(env_prefix="JF_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
