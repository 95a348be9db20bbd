from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from datetime import datetime

from bookrack.core.config import settings
from bookrack.routers import (
    genres,
    blocks,
    events,
    popular_books,
)
from bookrack.database import init_db
from bookrack.scheduler import PopularityScheduler

# ----------------------------
# Logging
# ----------------------------
logger = logging.getLogger("bookrack")
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Server fingerprint for debugging
SERVER_BOOT_ID = f"bookrack-backend::{os.getpid()}::{datetime.utcnow().isoformat()}"

app = FastAPI(debug=settings.DEBUG)

BUILD_ID = os.getenv("BUILD_ID", "missing")

# The process-wide scheduler; started and stopped by the lifecycle hooks below
popularity_scheduler = PopularityScheduler()


# ----------------------------
# CORS
# ----------------------------
cors_origins = settings.cors_origins_list
logger.info("[CORS] allow_origins=%s", cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_build_header(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Bookrack-Build"] = BUILD_ID
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("[UNHANDLED] %s %s", request.method, request.url.path)

    response = JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"}
    )

    # Ensure CORS headers are present in error responses
    origin = request.headers.get("origin")
    if origin and origin in cors_origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "*"
        response.headers["Access-Control-Allow-Headers"] = "*"

    return response


# ----------------------------
# Routers
# ----------------------------
app.include_router(genres.router, prefix="/api")
app.include_router(blocks.router, prefix="/api")
app.include_router(events.router, prefix="/api")
app.include_router(popular_books.router, prefix="/api")


@app.on_event("startup")
def on_startup() -> None:
    logger.info("[BOOT] %s", SERVER_BOOT_ID)
    init_db()
    if settings.SCHEDULER_ENABLED:
        popularity_scheduler.start_all()
    else:
        logger.info("Background scheduler disabled (SCHEDULER_ENABLED=false)")


@app.on_event("shutdown")
def on_shutdown() -> None:
    popularity_scheduler.stop_all()


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/api/health")
def api_health_check():
    return {
        "status": "ok",
        "scheduler": popularity_scheduler.state.value,
    }


@app.get("/api/_debug/server-id")
def server_id():
    return {"server_id": SERVER_BOOT_ID, "build_id": BUILD_ID}
