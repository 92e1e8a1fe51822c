# ================================================================
# Priority Transfers Admin - Notification Server
# Driver confirmation emails + scheduled pickup reminders
# ================================================================

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.notifications import (
    init_notification_scheduler,
    register_notification_routes,
    shutdown_notification_scheduler,
)
from app.notifications.config import get_config

logger = logging.getLogger("notifications.server")

# ================================================================
# FASTAPI APP
# ================================================================

app = FastAPI(title="Priority Transfers Admin Server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

register_notification_routes(app)


@app.on_event("startup")
async def _notifications_startup():
    init_notification_scheduler()
    logger.info(f"Health check: http://localhost:{get_config('port')}/api/health")


@app.on_event("shutdown")
async def _notifications_shutdown():
    shutdown_notification_scheduler()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=get_config("log_level", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    logger.info(f"Priority Transfers Admin Server running on port {get_config('port')}")
    uvicorn.run(app, host=get_config("host"), port=get_config("port"))
