"""Notifier contract shared by every alert transport."""
from typing import Protocol, runtime_checkable


class NotificationError(Exception):
    """A notification could not be delivered."""


@runtime_checkable
class Notifier(Protocol):
    """A transport for down and recovery notices.

    Implementations raise NotificationError when delivery fails.
    """

    async def send_alert(self, domain: str, consecutive_failures: int, detail: str) -> None:
        ...

    async def send_recovery(self, domain: str) -> None:
        ...
