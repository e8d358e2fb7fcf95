"""Database models."""
from .server import Server
from .site import Site
from .health_check import HealthCheck
from .activity import Activity

__all__ = ["Server", "Site", "HealthCheck", "Activity"]
