"""Pydantic schemas for API response models."""
from .health import (
    HealthCheckRecord,
    SiteHealth,
    SiteStatusEntry,
    ProblemSite,
    ProblemReport,
)

__all__ = [
    "HealthCheckRecord",
    "SiteHealth",
    "SiteStatusEntry",
    "ProblemSite",
    "ProblemReport",
]
