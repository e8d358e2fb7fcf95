"""Site model - deployed web properties probed by the health checker."""
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from ..database import Base


class Site(Base):
    """A deployed site, running locally or on an assigned server.

    Owned by the site management application. The health checker reads it
    once per round and only writes back ``ssl_expiry``.
    """

    __tablename__ = "sites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    domain = Column(String, nullable=False)
    server_id = Column(Integer, ForeignKey("servers.id"), nullable=True)  # NULL = local or unassigned
    container_name = Column(String, nullable=True)
    compose_path = Column(String, nullable=True)
    status = Column(String, default="pending")  # pending, running, stopped, error
    ssl_enabled = Column(Boolean, default=False)
    is_local = Column(Boolean, default=False)
    ssl_expiry = Column(DateTime, nullable=True)  # Leaf certificate notAfter (UTC)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    server = relationship("Server", back_populates="sites")
    health_checks = relationship("HealthCheck", back_populates="site", cascade="all, delete-orphan")
