"""
Priority Transfers Notify - Test Infrastructure (conftest.py)
=============================================================
Provides:
  - Recording mail channel that can be told to fail
  - Frozen clock for deterministic reminder times
  - Started ReminderScheduler, workflow and FastAPI TestClient wired together
  - Booking payload helper
"""

import os
import sys
import threading
import datetime
import pytest

# Ensure project root is on path
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT_DIR)

from app.notifications.config import DEFAULT_CONFIG, override_config, reload_config
from app.notifications.delivery import DeliveryChannel, DeliveryResult
from app.notifications.registry import ReminderRegistry
from app.notifications.scheduler import ReminderScheduler
from app.notifications.workflow import BookingConfirmationWorkflow


# ============================================================================
# Fakes
# ============================================================================

class RecordingDelivery(DeliveryChannel):
    """Mail channel that records every send instead of delivering it."""

    channel_name = "recording"

    def __init__(self):
        self.sent = []
        self.fail_with = None
        self.raise_with = None
        self._lock = threading.Lock()

    def send(self, recipient, subject, body_text, body_html=None):
        with self._lock:
            self.sent.append({
                "to": recipient,
                "subject": subject,
                "text": body_text,
                "html": body_html,
            })
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return DeliveryResult.fail(recipient, self.channel_name, self.fail_with)
        return DeliveryResult.ok(recipient, self.channel_name, message_id=f"msg-{len(self.sent)}")

    def test_connection(self):
        return True

    def is_configured(self):
        return True

    def subjects(self):
        return [m["subject"] for m in self.sent]


class FrozenClock:
    """Callable clock pinned to a fixed instant until advanced."""

    def __init__(self, at=None):
        self.at = at or datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)

    def __call__(self):
        return self.at

    def advance(self, **kwargs):
        self.at = self.at + datetime.timedelta(**kwargs)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Every test starts from defaults with no real mail credentials."""
    for env_var, _, _, _ in DEFAULT_CONFIG.values():
        monkeypatch.delenv(env_var, raising=False)
    reload_config()
    override_config(timezone="UTC")
    yield
    reload_config()


@pytest.fixture
def mailer():
    return RecordingDelivery()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def scheduler():
    sched = ReminderScheduler(misfire_grace_time=300)
    sched.start()
    yield sched
    sched.shutdown()


@pytest.fixture
def registry():
    return ReminderRegistry()


@pytest.fixture
def workflow(mailer, scheduler, registry, clock):
    return BookingConfirmationWorkflow(
        channel=mailer,
        scheduler=scheduler,
        registry=registry,
        lead_hours=1,
        now=clock,
    )


@pytest.fixture
def app(workflow):
    from fastapi import FastAPI
    from app.notifications import register_notification_routes

    test_app = FastAPI()
    register_notification_routes(test_app, workflow)
    return test_app


@pytest.fixture
def client(app):
    from starlette.testclient import TestClient
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


# ============================================================================
# Helpers
# ============================================================================

def iso(dt):
    return dt.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def booking_payload(pickup_at, booking_id="B1", **overrides):
    """A complete confirm-booking body for a pickup at pickup_at."""
    data = {
        "bookingId": booking_id,
        "driverEmail": "driver@example.com",
        "driverName": "Dan Driver",
        "customer": "Acme Corp",
        "pickup": "Airport T1",
        "destination": "Grand Hotel",
        "pickupDateTime": pickup_at.isoformat() if hasattr(pickup_at, "isoformat") else pickup_at,
    }
    data.update(overrides)
    return data
