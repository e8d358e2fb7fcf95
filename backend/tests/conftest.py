"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sitewatch.database import Base
from sitewatch.models import Site
from sitewatch.services.checker import ContainerStatus, HTTPResult, NOT_CHECKED
from sitewatch.services.notifier import NotificationError


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


def make_site(site_id: int, domain: Optional[str] = None, **kwargs) -> Site:
    fields = dict(
        id=site_id,
        domain=domain if domain is not None else f"site{site_id}.example.com",
        status="running",
        ssl_enabled=False,
        is_local=False,
        server_id=None,
        container_name="",
        compose_path="",
    )
    fields.update(kwargs)
    return Site(**fields)


class RecordingNotifier:
    """Notifier that records calls and can be told to fail."""

    def __init__(self, fail_alerts: bool = False, fail_recoveries: bool = False):
        self.fail_alerts = fail_alerts
        self.fail_recoveries = fail_recoveries
        self.alerts: List[tuple] = []
        self.recoveries: List[str] = []

    async def send_alert(self, domain: str, consecutive_failures: int, detail: str) -> None:
        self.alerts.append((domain, consecutive_failures, detail))
        if self.fail_alerts:
            raise NotificationError("alert delivery failed")

    async def send_recovery(self, domain: str) -> None:
        self.recoveries.append(domain)
        if self.fail_recoveries:
            raise NotificationError("recovery delivery failed")


class FakeChecker:
    """Checker returning scripted probe results per site."""

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.http: Dict[int, HTTPResult] = {}
        self.containers: Dict[int, ContainerStatus] = {}
        self.cert_expiry: Dict[str, object] = {}
        self.active = 0
        self.max_active = 0

    def set(self, site_id: int, status_code: int, container: ContainerStatus = NOT_CHECKED):
        self.http[site_id] = HTTPResult(status_code=status_code, latency_ms=5)
        self.containers[site_id] = container

    async def probe_http(self, site: Site) -> HTTPResult:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.http.get(site.id, HTTPResult(status_code=200, latency_ms=5))
        finally:
            self.active -= 1

    async def probe_cert_expiry(self, domain: str):
        value = self.cert_expiry[domain]
        if isinstance(value, Exception):
            raise value
        return value

    async def probe_container(self, site: Site) -> ContainerStatus:
        return self.containers.get(site.id, NOT_CHECKED)


class FakeHistory:
    def __init__(self):
        self.records = []
        self.pruned = []
        self.fail_record = False

    async def record(self, check):
        if self.fail_record:
            raise RuntimeError("disk full")
        self.records.append(check)
        return check

    async def prune_health_checks(self, retention_days: int) -> int:
        self.pruned.append(("health", retention_days))
        return 0

    async def prune_activity(self, retention_days: int) -> int:
        self.pruned.append(("activity", retention_days))
        return 0


class FakeRegistry:
    def __init__(self, sites: List[Site]):
        self.sites = sites
        self.ssl_expiry: Dict[int, object] = {}

    async def list_sites(self) -> List[Site]:
        return list(self.sites)

    async def update_ssl_expiry(self, site_id: int, expiry) -> None:
        self.ssl_expiry[site_id] = expiry
