"""HealthCheck model - one record per site per round."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class HealthCheck(Base):
    """Probe result - append-only history, pruned by age."""

    __tablename__ = "health_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(Integer, ForeignKey("sites.id"), nullable=False, index=True)
    http_status = Column(Integer, default=0)  # 0 = unreachable or not probed
    latency_ms = Column(Integer, default=0)
    container_status = Column(String, default="")  # running, exited, not_found, docker_error, ssh_error, unknown
    checked_at = Column(DateTime, default=datetime.utcnow, index=True)

    site = relationship("Site", back_populates="health_checks")
