# ============================================================================
# Priority Transfers Notify - Booking Confirmation Workflow
# ============================================================================
# Confirmation email now, reminder email lead_hours before pickup.
#
#   validate -> send confirmation -> compute fire time -> register reminder
#
# A failed confirmation short-circuits the reminder. A second confirmation
# of the same booking cancels and replaces its pending reminder.
# ============================================================================

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from .config import get_config, get_timezone, isoformat_utc, parse_datetime, utc_now
from .delivery import DeliveryChannel, DeliveryResult, EmailDelivery
from .errors import NotFoundError, TransportError, ValidationError
from . import messages
from .registry import ReminderJob, ReminderRegistry
from .scheduler import ReminderScheduler, compute_fire_time, new_job_id

logger = logging.getLogger("notifications.workflow")

# (payload key, attribute) in the order they are reported when missing
REQUIRED_FIELDS = [
    ("bookingId", "booking_id"),
    ("driverEmail", "driver_email"),
    ("driverName", "driver_name"),
    ("customer", "customer"),
    ("pickup", "pickup"),
    ("destination", "destination"),
    ("pickupDateTime", "pickup_at"),
]

OPTIONAL_FIELDS = [
    ("vehicle", "vehicle"),
    ("price", "price"),
    ("journeyDistance", "journey_distance"),
    ("journeyDuration", "journey_duration"),
]


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def missing_fields(data: Dict[str, Any], keys: List[str]) -> List[str]:
    """Names from keys that are absent, null or blank in data."""
    return [key for key in keys if _is_blank(data.get(key))]


def _parse_pickup(value: Any) -> Optional[datetime]:
    # Numbers are epoch milliseconds, as a browser Date would send them
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return parse_datetime(value)


def _within_range(pickup_at: datetime, lead_hours: float) -> bool:
    """True when the pickup and its reminder time stay inside datetime's range.

    Covers the conversions made later on: UTC for responses and logs, the
    display timezone for emails, and pickup minus lead_hours for the reminder.
    """
    try:
        pickup_at.astimezone(timezone.utc)
        pickup_at.astimezone(get_timezone())
        (pickup_at - timedelta(hours=lead_hours)).astimezone(timezone.utc)
    except (OverflowError, ValueError):
        return False
    return True


@dataclass(frozen=True)
class ConfirmationRequest:
    booking_id: str
    driver_email: str
    driver_name: str
    customer: str
    pickup: str
    destination: str
    pickup_at: datetime
    booking_type: str = "transfer"
    vehicle: Optional[str] = None
    price: Optional[str] = None
    journey_distance: Optional[str] = None
    journey_duration: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any], lead_hours: Optional[float] = None) -> "ConfirmationRequest":
        """Build a request from a confirm-booking JSON body.

        Raises ValidationError listing every missing field, or naming
        pickupDateTime when it is not a valid ISO-8601 timestamp or lies so
        close to the ends of the calendar that its reminder time (lead_hours
        earlier) cannot be represented.
        """
        if not isinstance(data, dict):
            data = {}
        if lead_hours is None:
            lead_hours = get_config("reminder_hours_before_pickup", 1.0)

        missing = missing_fields(data, [key for key, _ in REQUIRED_FIELDS])
        if missing:
            raise ValidationError.missing(missing)

        pickup_at = _parse_pickup(data["pickupDateTime"])
        if pickup_at is None:
            raise ValidationError(
                f"Invalid pickupDateTime: {data['pickupDateTime']!r} is not an ISO-8601 timestamp",
                invalid_fields=["pickupDateTime"],
            )
        if not _within_range(pickup_at, lead_hours):
            raise ValidationError(
                f"Invalid pickupDateTime: {data['pickupDateTime']!r} is out of range",
                invalid_fields=["pickupDateTime"],
            )

        values = {attr: str(data[key]).strip() for key, attr in REQUIRED_FIELDS if attr != "pickup_at"}
        for key, attr in OPTIONAL_FIELDS:
            if not _is_blank(data.get(key)):
                values[attr] = str(data[key]).strip()

        booking_type = data.get("bookingType")
        if not _is_blank(booking_type):
            values["booking_type"] = str(booking_type).strip()

        return cls(pickup_at=pickup_at, **values)


@dataclass(frozen=True)
class ConfirmationResult:
    booking_id: str
    confirmation_sent: bool
    reminder_scheduled: bool
    reminder_time: Optional[datetime] = None
    replaced_existing: bool = False

    @property
    def message(self) -> str:
        if self.reminder_scheduled:
            return "Confirmation email sent and reminder scheduled"
        return "Confirmation email sent; reminder not scheduled because its time has already passed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "confirmationSent": self.confirmation_sent,
            "reminderScheduled": self.reminder_scheduled,
            "reminderTime": isoformat_utc(self.reminder_time) if self.reminder_time else None,
            "replacedExisting": self.replaced_existing,
        }


class BookingConfirmationWorkflow:
    """
    Orchestrates confirmation and reminder emails for bookings.

    Args:
        channel: Mail sender used for every outbound email.
        scheduler: One-shot job scheduler for reminders.
        registry: Pending reminders keyed by booking id.
        lead_hours: Hours before pickup the reminder fires (default from config).
        now: Clock returning an aware datetime; injectable for tests.
    """

    def __init__(
        self,
        channel: DeliveryChannel,
        scheduler: ReminderScheduler,
        registry: Optional[ReminderRegistry] = None,
        lead_hours: Optional[float] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        if lead_hours is None:
            lead_hours = get_config("reminder_hours_before_pickup", 1.0)
        if lead_hours < 0:
            raise ValueError(f"Reminder lead time must be non-negative, got {lead_hours}")

        self.channel = channel
        self.scheduler = scheduler
        self.registry = registry if registry is not None else ReminderRegistry()
        self.lead_hours = float(lead_hours)
        self._now = now or utc_now

        # Serializes replace/cancel of the same booking across requests
        self._lock = threading.Lock()

        self.scheduler.on_missed(self._on_job_missed)

    # ------------------------------------------------------------------
    # Immediate sends
    # ------------------------------------------------------------------

    def notify(self, driver_email: str, subject: str, message: str) -> DeliveryResult:
        """Send one email now."""
        missing = missing_fields(
            {"driverEmail": driver_email, "subject": subject, "message": message},
            ["driverEmail", "subject", "message"],
        )
        if missing:
            raise ValidationError.missing(missing)
        return self.channel.send(driver_email, subject, message)

    def send_test_email(self, address: str) -> DeliveryResult:
        if _is_blank(address):
            raise ValidationError("testEmail is required", missing_fields=["testEmail"])
        return self.channel.send(address, messages.TEST_EMAIL_SUBJECT, messages.TEST_EMAIL_BODY)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    def confirm_payload(self, data: Dict[str, Any]) -> ConfirmationResult:
        return self.confirm(ConfirmationRequest.from_payload(data, lead_hours=self.lead_hours))

    def confirm(self, request: ConfirmationRequest) -> ConfirmationResult:
        """Send the confirmation email, then schedule the reminder if it is still ahead.

        Raises TransportError if the confirmation could not be sent; in that
        case nothing is scheduled and any existing reminder is kept.
        """
        sent = self.channel.send(
            request.driver_email,
            messages.confirmation_subject(request),
            messages.confirmation_text(request),
            messages.confirmation_html(request),
        )
        if not sent.success:
            logger.error(f"Confirmation for booking {request.booking_id} failed: {sent.error}")
            raise TransportError("Failed to send confirmation email", reason=sent.error)

        fire_at = compute_fire_time(request.pickup_at, self.lead_hours)
        now = self._now()

        with self._lock:
            if fire_at <= now:
                replaced = self._discard(request.booking_id)
                logger.info(
                    f"Reminder for booking {request.booking_id} not scheduled: "
                    f"{isoformat_utc(fire_at)} is not after {isoformat_utc(now)}"
                )
                return ConfirmationResult(
                    booking_id=request.booking_id,
                    confirmation_sent=True,
                    reminder_scheduled=False,
                    replaced_existing=replaced,
                )

            job = ReminderJob(
                booking_id=request.booking_id,
                fire_at=fire_at,
                recipient=request.driver_email,
                display_name=request.driver_name,
                job_id=new_job_id(request.booking_id),
            )

            # Register before arming the timer so an early fire finds its entry
            previous = self.registry.register(request.booking_id, job)
            if previous is not None:
                self.scheduler.cancel(previous.job_id)
                logger.info(f"Replaced pending reminder {previous.job_id} for booking {request.booking_id}")

            try:
                self.scheduler.schedule_at(
                    fire_at, self._fire_reminder, job.job_id, args=[request, job.job_id], now=now,
                )
            except Exception:
                self.registry.remove_if(request.booking_id, job.job_id)
                raise

        logger.info(f"Scheduled reminder for booking {request.booking_id} at {isoformat_utc(fire_at)}")
        return ConfirmationResult(
            booking_id=request.booking_id,
            confirmation_sent=True,
            reminder_scheduled=True,
            reminder_time=fire_at,
            replaced_existing=previous is not None,
        )

    # ------------------------------------------------------------------
    # Reminder management
    # ------------------------------------------------------------------

    def cancel(self, booking_id: str) -> ReminderJob:
        """Cancel the pending reminder for booking_id or raise NotFoundError."""
        with self._lock:
            job = self.registry.remove(booking_id)
            if job is None:
                raise NotFoundError(booking_id)
            self.scheduler.cancel(job.job_id)

        logger.info(f"Reminder cancelled for booking {booking_id}")
        return job

    def list_reminders(self) -> List[ReminderJob]:
        return self.registry.list()

    def _discard(self, booking_id: str) -> bool:
        job = self.registry.remove(booking_id)
        if job is None:
            return False
        self.scheduler.cancel(job.job_id)
        logger.info(f"Dropped pending reminder {job.job_id} for booking {booking_id}")
        return True

    # ------------------------------------------------------------------
    # Scheduler callbacks
    # ------------------------------------------------------------------

    def _fire_reminder(self, request: ConfirmationRequest, job_id: str) -> Optional[DeliveryResult]:
        """Send the reminder, then deregister. Cleanup happens even if the send fails."""
        result = None
        try:
            result = self.channel.send(
                request.driver_email,
                messages.reminder_subject(request),
                messages.reminder_text(request, self.lead_hours),
            )
            if result.success:
                logger.info(f"Reminder sent for booking {request.booking_id}")
            else:
                logger.error(f"Reminder for booking {request.booking_id} failed: {result.error}")
        except Exception as e:
            logger.error(f"Reminder for booking {request.booking_id} raised: {e}", exc_info=True)
        finally:
            self.registry.remove_if(request.booking_id, job_id)
            self.scheduler.cancel(job_id)
        return result

    def _on_job_missed(self, job_id: str):
        job = self.registry.remove_by_job_id(job_id)
        if job is not None:
            logger.warning(f"Reminder for booking {job.booking_id} missed at {isoformat_utc(job.fire_at)}; dropped")


# ============================================================================
# Singleton access + initialization
# ============================================================================

_workflow: Optional[BookingConfirmationWorkflow] = None


def get_workflow() -> BookingConfirmationWorkflow:
    """Get the process-wide workflow, built from configuration on first use."""
    global _workflow
    if _workflow is None:
        _workflow = BookingConfirmationWorkflow(
            channel=EmailDelivery(),
            scheduler=ReminderScheduler(),
        )
    return _workflow


def init_notification_scheduler() -> BookingConfirmationWorkflow:
    """Start the reminder scheduler on application startup."""
    workflow = get_workflow()
    workflow.scheduler.start()
    logger.info(
        f"Notification workflow ready: provider={get_config('email_provider')}, "
        f"lead_hours={workflow.lead_hours}"
    )
    return workflow


def shutdown_notification_scheduler():
    if _workflow is not None:
        _workflow.scheduler.shutdown()
