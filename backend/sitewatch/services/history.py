"""Health check history store - append, prune and query probe records."""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..models import Activity, HealthCheck
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class HealthHistoryStore:
    """Persistence for health check records and activity log pruning."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def record(self, check: HealthCheck) -> HealthCheck:
        """Insert one health check record and return it with its id."""
        async with self._session_factory() as session:
            session.add(check)
            await retry_on_lock(session.commit)
            return check

    async def prune_health_checks(self, retention_days: int) -> int:
        """Delete health checks older than the retention window."""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(HealthCheck).where(HealthCheck.checked_at < cutoff)
            )
            await retry_on_lock(session.commit)
            return result.rowcount or 0

    async def prune_activity(self, retention_days: int) -> int:
        """Delete activity log entries older than the retention window."""
        cutoff = datetime.utcnow() - timedelta(days=retention_days)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Activity).where(Activity.created_at < cutoff)
            )
            await retry_on_lock(session.commit)
            return result.rowcount or 0

    async def get_site_history(self, site_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[HealthCheck]:
        """Most recent checks for a site, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(HealthCheck)
                .where(HealthCheck.site_id == site_id)
                .order_by(HealthCheck.checked_at.desc(), HealthCheck.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_latest(self, site_id: int) -> Optional[HealthCheck]:
        history = await self.get_site_history(site_id, limit=1)
        return history[0] if history else None

    async def get_latest_for_all(self) -> Dict[int, HealthCheck]:
        """Latest check per site in a single query, keyed by site id."""
        async with self._session_factory() as session:
            latest_ids = (
                select(func.max(HealthCheck.id).label("id"))
                .group_by(HealthCheck.site_id)
                .subquery()
            )
            result = await session.execute(
                select(HealthCheck).join(latest_ids, HealthCheck.id == latest_ids.c.id)
            )
            return {check.site_id: check for check in result.scalars().all()}

    async def get_failing_site_ids(self, hours: int = 24) -> Set[int]:
        """Sites with at least one failed check inside the window.

        A check failed when the HTTP status is outside 200-399 or the
        container was not running.
        """
        cutoff = datetime.utcnow() - timedelta(hours=hours)
        async with self._session_factory() as session:
            result = await session.execute(
                select(HealthCheck.site_id)
                .where(
                    HealthCheck.checked_at >= cutoff,
                    or_(
                        HealthCheck.http_status < 200,
                        HealthCheck.http_status >= 400,
                        HealthCheck.container_status != "running",
                    ),
                )
                .distinct()
            )
            return set(result.scalars().all())
