"""
Priority Transfers Notify - Email Content

Subjects and bodies for confirmation, reminder and test emails.
"""
from pathlib import Path
from typing import List, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import format_time_for_display, get_config

TEMPLATES_DIR = Path(__file__).resolve().parent / "email_templates"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

TEST_EMAIL_SUBJECT = "Priority Transfers Email Test"
TEST_EMAIL_BODY = "This is a test email to verify your email configuration is working correctly."


def _team_name() -> str:
    return get_config("from_name") or "Priority Transfers Team"


def _format_hours(hours: float) -> str:
    return str(int(hours)) if float(hours).is_integer() else f"{hours:g}"


def _detail_lines(request) -> List[Tuple[str, str]]:
    return [
        ("Customer", request.customer),
        ("Type", request.booking_type),
        ("Pickup", request.pickup),
        ("Destination", request.destination),
    ]


def confirmation_subject(request) -> str:
    return f"Booking Confirmed: {request.pickup} → {request.destination}"


def confirmation_text(request) -> str:
    details = "\n".join(f"- {label}: {value}" for label, value in _detail_lines(request))
    return (
        f"Dear {request.driver_name},\n\n"
        f"Your booking has been confirmed!\n\n"
        f"Booking Details:\n"
        f"{details}\n"
        f"- Date & Time: {format_time_for_display(request.pickup_at)}\n\n"
        f"Please be ready at the pickup location on time.\n\n"
        f"Best regards,\n"
        f"{_team_name()}"
    )


def confirmation_html(request) -> str:
    rows = _detail_lines(request)
    rows.append(("Date & Time", format_time_for_display(request.pickup_at)))

    # Optional rows only when the booking carries them
    for label, value in (
        ("Vehicle", request.vehicle),
        ("Price", f"€{request.price}" if request.price else None),
        ("Distance", request.journey_distance),
        ("Duration", request.journey_duration),
    ):
        if value:
            rows.append((label, value))

    template = _env.get_template("booking_confirmation.html")
    return template.render(driver_name=request.driver_name, rows=rows, team_name=_team_name())


def reminder_subject(request) -> str:
    return f"Pickup Reminder: {request.pickup} → {request.destination}"


def reminder_text(request, lead_hours: float) -> str:
    details = "\n".join(f"- {label}: {value}" for label, value in _detail_lines(request))
    return (
        f"Dear {request.driver_name},\n\n"
        f"This is a friendly reminder about your upcoming booking:\n\n"
        f"Booking Details:\n"
        f"{details}\n"
        f"- Pickup Time: {format_time_for_display(request.pickup_at)}\n\n"
        f"Please prepare to depart soon. The pickup is in {_format_hours(lead_hours)} hour(s).\n\n"
        f"Safe travels!\n"
        f"{_team_name()}"
    )
