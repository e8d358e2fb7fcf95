"""Services for probing, scheduling, and alerting."""
from .checker import CheckerService
from .scheduler import SchedulerService
from .alerter import AlerterService
from .failure_state import FailureTracker
from .history import HealthHistoryStore
from .registry import SiteRegistry

__all__ = [
    "CheckerService",
    "SchedulerService",
    "AlerterService",
    "FailureTracker",
    "HealthHistoryStore",
    "SiteRegistry",
]
