"""Per-site failure streaks and alert debounce flags."""
import threading
from dataclasses import dataclass
from typing import Dict

DEFAULT_ALERT_THRESHOLD = 3


@dataclass(frozen=True)
class FailureState:
    """Snapshot of one site's state."""
    consecutive_failures: int = 0
    alerted: bool = False


@dataclass(frozen=True)
class Transition:
    """Outcome of recording one round's verdict for a site."""
    consecutive_failures: int
    should_alert: bool = False
    should_recover: bool = False


class FailureTracker:
    """Consecutive-failure counters and alerted flags, keyed by site id.

    Both maps are guarded by one lock that is held across the whole
    read-decide-write step and never across notification I/O. Entries are
    created lazily and never removed; deleted sites simply stop being
    touched.
    """

    def __init__(self, alert_threshold: int = DEFAULT_ALERT_THRESHOLD):
        if alert_threshold <= 0:
            alert_threshold = DEFAULT_ALERT_THRESHOLD
        self.alert_threshold = alert_threshold
        self._failures: Dict[int, int] = {}
        self._alerted: Dict[int, bool] = {}
        self._lock = threading.Lock()

    def record(self, site_id: int, is_down: bool) -> Transition:
        if is_down:
            return self.record_down(site_id)
        return self.record_up(site_id)

    def record_down(self, site_id: int) -> Transition:
        """Count a down verdict; decide whether this round fires the alert.

        The alerted flag is set before the lock is released so a second
        concurrent check of the same site cannot fire again.
        """
        with self._lock:
            count = self._failures.get(site_id, 0) + 1
            self._failures[site_id] = count
            should_alert = False
            if count >= self.alert_threshold and not self._alerted.get(site_id, False):
                self._alerted[site_id] = True
                should_alert = True
            return Transition(consecutive_failures=count, should_alert=should_alert)

    def record_up(self, site_id: int) -> Transition:
        """Reset the streak; decide whether a recovery notice is due."""
        with self._lock:
            was_down = self._failures.get(site_id, 0) > 0
            alerted = self._alerted.get(site_id, False)
            self._failures[site_id] = 0
            self._alerted[site_id] = False
            return Transition(consecutive_failures=0, should_recover=was_down and alerted)

    def rollback_alert(self, site_id: int) -> None:
        """Clear the alerted flag so the next down round retries the alert.

        The failure counter is left alone.
        """
        with self._lock:
            self._alerted[site_id] = False

    def get(self, site_id: int) -> FailureState:
        with self._lock:
            return FailureState(
                consecutive_failures=self._failures.get(site_id, 0),
                alerted=self._alerted.get(site_id, False),
            )

    def snapshot(self) -> Dict[int, FailureState]:
        with self._lock:
            return {
                site_id: FailureState(count, self._alerted.get(site_id, False))
                for site_id, count in self._failures.items()
            }
