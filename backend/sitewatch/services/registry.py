"""Site and server registry - read access to the shared site tables."""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..database import async_session
from ..models import Server, Site
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)


class SiteRegistry:
    """Reads sites and servers; writes back observed certificate expiry."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = async_session):
        self._session_factory = session_factory

    async def list_sites(self) -> List[Site]:
        """All sites, newest first. Pending sites are included."""
        async with self._session_factory() as session:
            result = await session.execute(select(Site).order_by(Site.created_at.desc()))
            return list(result.scalars().all())

    async def get_site(self, site_id: int) -> Optional[Site]:
        async with self._session_factory() as session:
            return await session.get(Site, site_id)

    async def get_server(self, server_id: int) -> Optional[Server]:
        async with self._session_factory() as session:
            return await session.get(Server, server_id)

    async def update_ssl_expiry(self, site_id: int, expiry: datetime) -> None:
        """Store the leaf certificate expiry, normalised to naive UTC."""
        if expiry.tzinfo is not None:
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)

        async with self._session_factory() as session:
            await session.execute(
                update(Site).where(Site.id == site_id).values(ssl_expiry=expiry)
            )
            await retry_on_lock(session.commit)
