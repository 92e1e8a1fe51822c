"""
Priority Transfers Notify - Reminder Registry

In-memory table of pending reminder jobs keyed by booking id. State lives
as long as the server process; a restart drops every pending reminder.
"""
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from .config import isoformat_utc


@dataclass(frozen=True)
class ReminderJob:
    """A scheduled one-shot reminder. Never mutated after scheduling."""
    booking_id: str
    fire_at: datetime
    recipient: str
    display_name: str
    job_id: str

    def to_dict(self) -> Dict:
        return {
            "bookingId": self.booking_id,
            "reminderTime": isoformat_utc(self.fire_at),
            "driverEmail": self.recipient,
            "driverName": self.display_name,
        }


class ReminderRegistry:
    """Thread-safe booking_id -> ReminderJob mapping.

    Scheduler callbacks run on APScheduler worker threads while requests
    are handled elsewhere, so every access goes through the lock.
    """

    def __init__(self):
        self._jobs: Dict[str, ReminderJob] = {}
        self._lock = threading.Lock()

    def register(self, booking_id: str, job: ReminderJob) -> Optional[ReminderJob]:
        """Store job under booking_id and return the entry it replaced, if any.

        The caller owns the replaced job's timer and must dispose of it.
        """
        with self._lock:
            previous = self._jobs.get(booking_id)
            self._jobs[booking_id] = job
            return previous

    def get(self, booking_id: str) -> Optional[ReminderJob]:
        with self._lock:
            return self._jobs.get(booking_id)

    def remove(self, booking_id: str) -> Optional[ReminderJob]:
        with self._lock:
            return self._jobs.pop(booking_id, None)

    def remove_if(self, booking_id: str, job_id: str) -> bool:
        """Remove the entry only if it is still the job identified by job_id."""
        with self._lock:
            current = self._jobs.get(booking_id)
            if current is None or current.job_id != job_id:
                return False
            del self._jobs[booking_id]
            return True

    def remove_by_job_id(self, job_id: str) -> Optional[ReminderJob]:
        with self._lock:
            for booking_id, job in self._jobs.items():
                if job.job_id == job_id:
                    return self._jobs.pop(booking_id)
            return None

    def list(self) -> List[ReminderJob]:
        with self._lock:
            return list(self._jobs.values())

    def clear(self):
        with self._lock:
            self._jobs.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, booking_id) -> bool:
        with self._lock:
            return booking_id in self._jobs
