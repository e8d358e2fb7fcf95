"""Health history schemas for dashboards and read-only tool access."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class HealthCheckRecord(BaseModel):
    """One stored probe result."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    site_id: int
    http_status: Optional[int] = 0
    latency_ms: Optional[int] = 0
    container_status: Optional[str] = ""
    checked_at: datetime


class SiteHealth(BaseModel):
    """Latest record plus bounded history for one site."""
    site_id: int
    domain: str
    status: str
    latest: Optional[HealthCheckRecord] = None
    checks: List[HealthCheckRecord]


class SiteStatusEntry(BaseModel):
    """Public status line for one site."""
    site_id: int
    domain: str
    status: str
    http_status: int = 0
    latency_ms: int = 0
    container_status: str = ""
    checked_at: Optional[datetime] = None


class ProblemSite(BaseModel):
    """A site with problems inside the reporting window."""
    site_id: int
    domain: str
    status: str
    problems: List[str]
    latest_check: Optional[HealthCheckRecord] = None


class ProblemReport(BaseModel):
    hours: int
    problem_count: int
    problems: List[ProblemSite]
