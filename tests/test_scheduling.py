"""
Priority Transfers Notify - Registry & Scheduler Tests
======================================================
"""

import datetime
import threading
import time
import pytest

from app.notifications.registry import ReminderJob, ReminderRegistry
from app.notifications.scheduler import ReminderScheduler, compute_fire_time, new_job_id

UTC = datetime.timezone.utc
T0 = datetime.datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _job(booking_id="B1", job_id="j1", minutes=60):
    return ReminderJob(
        booking_id=booking_id,
        fire_at=T0 + datetime.timedelta(minutes=minutes),
        recipient=f"{booking_id.lower()}@example.com",
        display_name="Driver",
        job_id=job_id,
    )


class TestReminderRegistry:

    def test_register_get_remove(self):
        reg = ReminderRegistry()
        assert reg.register("B1", _job()) is None
        assert reg.get("B1").job_id == "j1"
        assert "B1" in reg
        assert reg.remove("B1").job_id == "j1"
        assert reg.remove("B1") is None
        assert reg.get("B1") is None

    def test_register_returns_replaced_entry(self):
        reg = ReminderRegistry()
        reg.register("B1", _job(job_id="old"))
        previous = reg.register("B1", _job(job_id="new"))
        assert previous.job_id == "old"
        assert reg.get("B1").job_id == "new"
        assert len(reg) == 1

    def test_remove_if_matches_job(self):
        reg = ReminderRegistry()
        reg.register("B1", _job(job_id="new"))
        assert reg.remove_if("B1", "old") is False
        assert reg.remove_if("B1", "new") is True
        assert reg.remove_if("B1", "new") is False

    def test_remove_by_job_id(self):
        reg = ReminderRegistry()
        reg.register("B1", _job("B1", "j1"))
        reg.register("B2", _job("B2", "j2"))
        assert reg.remove_by_job_id("j2").booking_id == "B2"
        assert reg.remove_by_job_id("j2") is None
        assert [j.booking_id for j in reg.list()] == ["B1"]

    def test_list_is_a_snapshot(self):
        reg = ReminderRegistry()
        reg.register("B1", _job())
        snapshot = reg.list()
        reg.clear()
        assert len(snapshot) == 1
        assert reg.list() == []

    def test_to_dict(self):
        assert _job().to_dict() == {
            "bookingId": "B1",
            "reminderTime": "2026-03-01T13:00:00.000Z",
            "driverEmail": "b1@example.com",
            "driverName": "Driver",
        }

    def test_concurrent_register_and_remove(self):
        reg = ReminderRegistry()

        def worker(n):
            for i in range(200):
                bid = f"B{n}-{i}"
                reg.register(bid, _job(bid, f"j{n}-{i}"))
                if i % 2:
                    reg.remove(bid)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(reg) == 8 * 100


class TestFireTime:

    def test_subtracts_lead_hours(self):
        assert compute_fire_time(T0, 1) == T0 - datetime.timedelta(hours=1)
        assert compute_fire_time(T0, 0.25) == T0 - datetime.timedelta(minutes=15)
        assert compute_fire_time(T0, 0) == T0

    def test_negative_lead_rejected(self):
        with pytest.raises(ValueError):
            compute_fire_time(T0, -0.5)

    def test_job_ids_are_unique(self):
        assert new_job_id("B1") != new_job_id("B1")
        assert new_job_id("B1").startswith("reminder_B1_")


class TestReminderScheduler:

    def test_refuses_past_and_naive_times(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_at(T0, lambda: None, "past", now=T0)
        with pytest.raises(ValueError):
            scheduler.schedule_at(datetime.datetime(2030, 1, 1), lambda: None, "naive")

    def test_schedule_and_cancel(self, scheduler):
        fire_at = datetime.datetime.now(UTC) + datetime.timedelta(hours=1)
        scheduler.schedule_at(fire_at, lambda: None, "job-1")
        assert [j["job_id"] for j in scheduler.pending_jobs()] == ["job-1"]
        assert scheduler.get_job("job-1").next_run_time == fire_at

        assert scheduler.cancel("job-1") is True
        assert scheduler.cancel("job-1") is False
        assert scheduler.pending_jobs() == []

    def test_one_shot_fires_exactly_once(self, scheduler):
        fired = []
        done = threading.Event()

        def on_fire(tag):
            fired.append(tag)
            done.set()

        fire_at = datetime.datetime.now(UTC) + datetime.timedelta(milliseconds=300)
        scheduler.schedule_at(fire_at, on_fire, "once", args=["x"])
        assert done.wait(10)

        # APScheduler drops the finished DateTrigger job from its store
        deadline = time.time() + 2
        while scheduler.get_job("once") is not None and time.time() < deadline:
            time.sleep(0.02)
        assert scheduler.get_job("once") is None
        time.sleep(0.3)
        assert fired == ["x"]

    def test_missed_listener_called(self, scheduler):
        seen = []
        scheduler.on_missed(seen.append)

        class Event:
            job_id = "late-job"
            scheduled_run_time = T0

        scheduler._on_job_missed(Event())
        assert seen == ["late-job"]

    def test_lifecycle(self):
        sched = ReminderScheduler(misfire_grace_time=10)
        assert sched.running is False
        sched.start()
        sched.start()
        assert sched.running is True
        sched.shutdown()
        assert sched.running is False
        sched.shutdown()
