"""Server model - remote hosts reached over SSH."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base


class Server(Base):
    """A remote Docker host."""

    __tablename__ = "servers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    host = Column(String, nullable=False)
    ssh_port = Column(Integer, default=22)
    ssh_user = Column(String, nullable=False)
    ssh_key_path = Column(String, nullable=False)
    ssh_host_key = Column(String, nullable=True)  # authorized_keys line; empty = not pinned
    status = Column(String, default="active")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    sites = relationship("Site", back_populates="server")
