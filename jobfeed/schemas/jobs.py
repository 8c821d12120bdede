from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class JobRecord(BaseModel):
    """A normalized posting. ``id`` is the upstream identifier and the dedup key."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    company: str
    location: str
    url: str = ""
    description: str = ""
    salary_min: float | None = None
    salary_max: float | None = None
    created_at: datetime | None = None
    category: str
    contract_type: str
    contract_time: str
