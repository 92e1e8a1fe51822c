"""
Priority Transfers Notify - API Routes
"""
import json
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .config import isoformat_utc, utc_now
from .errors import NotFoundError, TransportError, ValidationError
from .workflow import BookingConfirmationWorkflow, get_workflow

logger = logging.getLogger("notifications.routes")

HEALTH_MESSAGE = "Priority Transfers Admin Server is running"


async def _read_json(request: Request) -> dict:
    """Request body as a dict; anything else is treated as an empty body."""
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def _validation_response(e: ValidationError) -> JSONResponse:
    body = {"error": e.message}
    if e.missing_fields:
        body["missingFields"] = e.missing_fields
    if e.invalid_fields:
        body["invalidFields"] = e.invalid_fields
    return JSONResponse(body, status_code=400)


def _server_error(where: str, e: Exception) -> JSONResponse:
    logger.error(f"Error in {where}: {e}", exc_info=True)
    return JSONResponse({"error": str(e)}, status_code=500)


def register_notification_routes(app: FastAPI, workflow: Optional[BookingConfirmationWorkflow] = None):
    """Register driver notification and reminder endpoints."""

    def _workflow() -> BookingConfirmationWorkflow:
        return workflow if workflow is not None else get_workflow()

    @app.post("/api/notify-driver")
    async def api_notify_driver(request: Request):
        data = await _read_json(request)
        try:
            result = await run_in_threadpool(
                _workflow().notify,
                data.get("driverEmail"), data.get("subject"), data.get("message"),
            )
        except ValidationError as e:
            return _validation_response(e)
        except Exception as e:
            return _server_error("notify-driver", e)
        return result.to_dict()

    @app.post("/api/confirm-booking")
    async def api_confirm_booking(request: Request):
        data = await _read_json(request)
        try:
            result = await run_in_threadpool(_workflow().confirm_payload, data)
        except ValidationError as e:
            return _validation_response(e)
        except TransportError as e:
            return JSONResponse({"error": e.message, "details": e.reason}, status_code=500)
        except Exception as e:
            return _server_error("confirm-booking", e)
        return result.to_dict()

    @app.delete("/api/cancel-reminder/{booking_id}")
    async def api_cancel_reminder(booking_id: str):
        try:
            _workflow().cancel(booking_id)
        except NotFoundError as e:
            return JSONResponse({"error": e.message}, status_code=404)
        except Exception as e:
            return _server_error("cancel-reminder", e)
        return {"success": True, "message": f"Reminder cancelled for booking {booking_id}"}

    @app.get("/api/scheduled-reminders")
    async def api_scheduled_reminders():
        reminders = _workflow().list_reminders()
        return {"reminders": [job.to_dict() for job in reminders]}

    @app.post("/api/test-email")
    async def api_test_email(request: Request):
        data = await _read_json(request)
        try:
            result = await run_in_threadpool(_workflow().send_test_email, data.get("testEmail"))
        except ValidationError as e:
            return _validation_response(e)
        except Exception as e:
            return _server_error("test-email", e)
        return result.to_dict()

    @app.get("/api/health")
    async def api_health():
        return {
            "status": "OK",
            "message": HEALTH_MESSAGE,
            "timestamp": isoformat_utc(utc_now()),
        }
