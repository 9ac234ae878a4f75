"""
Task wall API.

Serves the latest normalized ClickUp tasks to wall displays:
- GET /api/tasks returns the current poll snapshot
- /ws/tasks pushes a snapshot on connect and after every change

The poll controller lives on ``app.state.poll_controller`` between startup
and shutdown.
"""
from __future__ import annotations

import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import tasks
from api.websockets import websocket_endpoint
from config import DashboardConfig, log_missing_env_vars, settings
from services.poll_controller import PollController

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Task Wall Dashboard API", version="1.0.0")

# Wall displays run from the Vite dev server locally and FRONTEND_URL elsewhere
DISPLAY_ORIGINS: frozenset[str] = frozenset(
    origin.strip().rstrip("/")
    for origin in ("http://localhost:5173", "http://localhost:3000", settings.FRONTEND_URL)
    if origin and origin.strip()
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(DISPLAY_ORIGINS),
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer any uncaught error with a JSON 500 the display can read."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    origin = (request.headers.get("origin") or "").rstrip("/")
    headers = {"Access-Control-Allow-Origin": origin} if origin in DISPLAY_ORIGINS else {}
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
        headers=headers,
    )


app.include_router(tasks.router, prefix="/api/tasks", tags=["tasks"])
app.add_api_websocket_route("/ws/tasks", websocket_endpoint)


@app.on_event("startup")
async def start_polling() -> None:
    log_missing_env_vars(logging.getLogger("config"))
    config = DashboardConfig.from_settings(settings)
    controller = PollController(config)
    app.state.poll_controller = controller
    await controller.start()
    logger.info("Polling ClickUp via %s", config.api_base)


@app.on_event("shutdown")
async def stop_polling() -> None:
    controller: PollController | None = getattr(app.state, "poll_controller", None)
    if controller is None:
        return
    await controller.stop()
    app.state.poll_controller = None


@app.get("/", include_in_schema=False)
@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check; says nothing about the upstream list."""
    return {"status": "ok"}
