"""Health history API for dashboards and read-only tool access."""
from fastapi import APIRouter, Depends, HTTPException, Query

from ..schemas.health import (
    HealthCheckRecord,
    ProblemReport,
    ProblemSite,
    SiteHealth,
    SiteStatusEntry,
)
from ..services.history import HealthHistoryStore
from ..services.registry import SiteRegistry

router = APIRouter(prefix="/api", tags=["health"])


def get_history_store() -> HealthHistoryStore:
    return HealthHistoryStore()


def get_site_registry() -> SiteRegistry:
    return SiteRegistry()


@router.get("/sites/{site_id}/health", response_model=SiteHealth)
async def get_site_health(
    site_id: int,
    limit: int = Query(20, ge=1, le=500),
    history: HealthHistoryStore = Depends(get_history_store),
    registry: SiteRegistry = Depends(get_site_registry),
):
    """Most recent check and bounded history for one site."""
    site = await registry.get_site(site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")

    checks = [HealthCheckRecord.model_validate(c) for c in await history.get_site_history(site_id, limit)]
    return SiteHealth(
        site_id=site.id,
        domain=site.domain,
        status=site.status,
        latest=checks[0] if checks else None,
        checks=checks,
    )


@router.get("/status", response_model=list[SiteStatusEntry])
async def get_status(
    history: HealthHistoryStore = Depends(get_history_store),
    registry: SiteRegistry = Depends(get_site_registry),
):
    """Every site with its latest health check."""
    sites = await registry.list_sites()
    latest = await history.get_latest_for_all()

    entries = []
    for site in sites:
        entry = SiteStatusEntry(site_id=site.id, domain=site.domain, status=site.status)
        check = latest.get(site.id)
        if check:
            entry.http_status = check.http_status or 0
            entry.latency_ms = check.latency_ms or 0
            entry.container_status = check.container_status or ""
            entry.checked_at = check.checked_at
        entries.append(entry)
    return entries


@router.get("/health/problems", response_model=ProblemReport)
async def get_problems(
    hours: int = Query(24, ge=1),
    history: HealthHistoryStore = Depends(get_history_store),
    registry: SiteRegistry = Depends(get_site_registry),
):
    """Sites in error or stopped state, or with failed checks in the window."""
    sites = await registry.list_sites()
    failing = await history.get_failing_site_ids(hours)
    latest = await history.get_latest_for_all()

    problems = []
    for site in sites:
        found = []
        if site.status == "error":
            found.append("site status is error")
        if site.status == "stopped":
            found.append("site is stopped")
        if site.id in failing:
            found.append(f"failed health checks in the last {hours} hours")
        if not found:
            continue

        check = latest.get(site.id)
        problems.append(ProblemSite(
            site_id=site.id,
            domain=site.domain,
            status=site.status,
            problems=found,
            latest_check=HealthCheckRecord.model_validate(check) if check else None,
        ))

    return ProblemReport(hours=hours, problem_count=len(problems), problems=problems)
