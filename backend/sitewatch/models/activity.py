"""Activity model - audit log written by the site management application."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base


class Activity(Base):
    """Activity log entry. The health checker only prunes these."""

    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String, nullable=False)  # site, server, customer
    entity_id = Column(Integer, nullable=True)
    action = Column(String, nullable=False)
    details = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
