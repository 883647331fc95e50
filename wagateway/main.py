#!/usr/bin/env python3
"""
wagateway - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds the session controller
3. Runs the HTTP API

All session logic is in the modules, following black box principles.
"""

import asyncio
import logging
import logging.config as log_config
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psutil
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from wagateway import __version__
from wagateway.config.provider import ConfigProvider, EnvConfigProvider
from wagateway.logging_config import get_logging_config

# Import modules through their black box interfaces
from wagateway.modules.api import (
    AVAILABLE_ENDPOINTS,
    ENDPOINTS,
    EXAMPLE_SEND_BODY,
    PAIRING_INSTRUCTIONS,
    ChatItem,
    ChatListResponse,
    NumberInfoResponse,
    RestartResponse,
    SendMessageRequest,
    SendMessageResponse,
    StatusLabel,
    describe_send_failure,
)
from wagateway.modules.client import ClientFactory
from wagateway.modules.config import get_config
from wagateway.modules.session import (
    InvalidRequestError,
    NotReadyError,
    PairingStatus,
    SendFailedError,
    SendTimeoutError,
    SessionController,
    SessionError,
)

# Get configuration
config = get_config()

# Configure logging with health check suppression
log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger(__name__)

# Configuration provider (centralized config access)
config_provider: ConfigProvider = EnvConfigProvider()

# Module instances (initialized at startup)
session_controller: Optional[SessionController] = None

STARTED_AT = time.monotonic()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uptime() -> int:
    return int(time.monotonic() - STARTED_AT)


def _memory_usage() -> Dict[str, int]:
    info = psutil.Process(os.getpid()).memory_info()
    return {"rss": info.rss, "vms": info.vms}


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    """Log failures of background tasks nobody awaits."""
    error = context.get("exception") or context.get("message")
    logger.error(f"Unhandled error in background task: {error}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - start and tear down the WhatsApp session.
    """
    global session_controller

    # Startup
    logger.info(f"Starting WhatsApp API on port {config.get('port')} ({config.get('platform')})")
    asyncio.get_running_loop().set_exception_handler(_log_unhandled)

    session_controller = SessionController(
        ClientFactory.build(config_provider),
        config=config_provider.get_session_config(),
    )
    delay = session_controller.start()
    logger.info(f"WhatsApp will initialize in {delay:g} seconds")

    yield

    # Shutdown
    logger.info("Shutting down WhatsApp API...")
    if session_controller:
        await session_controller.close()
        session_controller = None
    logger.info("WhatsApp API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="WhatsApp API",
    description="WhatsApp Web session exposed over HTTP",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config_provider.get_api_config().cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept", "Authorization"],
)


# Dependency injection helpers
async def get_session_controller() -> SessionController:
    """Return the running session controller."""
    if not session_controller:
        raise HTTPException(503, "Service not initialized")
    return session_controller


# Health/Metadata Endpoints


@app.get("/health")
async def health_check():
    """
    Liveness check with readiness flag. Never touches the session.

    Returns:
        200: Process is up
    """
    ready = bool(session_controller and session_controller.snapshot().ready)
    return {
        "status": "healthy",
        "service": config.get("service_name"),
        "timestamp": _now_iso(),
        "uptime": _uptime(),
        "ready": ready,
        "memory": _memory_usage(),
        "version": __version__,
    }


@app.get("/")
async def root():
    """Service metadata and endpoint directory."""
    status = StatusLabel.INITIALIZING
    if session_controller:
        status = StatusLabel.from_snapshot(session_controller.snapshot())

    return {
        "success": True,
        "message": "WhatsApp API is running",
        "status": status.value,
        "version": __version__,
        "platform": config.get("platform"),
        "uptime": _uptime(),
        "endpoints": ENDPOINTS,
        "usage_example": {
            "send_message": {
                "method": "POST",
                "url": "/api/send-message",
                "body": EXAMPLE_SEND_BODY,
            }
        },
    }


# Session Endpoints


@app.get("/api/status")
async def get_status(controller: SessionController = Depends(get_session_controller)):
    """
    Current session phase, pairing presence and uptime.

    Returns:
        200: Status snapshot
        503: Service not initialized
    """
    snapshot = controller.snapshot()
    return {
        "success": True,
        "message": "Status retrieved",
        "status": StatusLabel.from_snapshot(snapshot).value,
        "phase": snapshot.phase.value,
        "ready": snapshot.ready,
        "hasQR": snapshot.has_pairing_code,
        "initializing": snapshot.launch_in_flight,
        "relaunchPending": snapshot.relaunch_pending,
        "lastError": snapshot.last_error,
        "platform": config.get("platform"),
        "timestamp": _now_iso(),
        "lastQrTime": snapshot.pairing_issued_at.isoformat() if snapshot.pairing_issued_at else None,
        "uptime": _uptime(),
        "memory": _memory_usage(),
    }


@app.get("/api/qr")
async def get_qr(controller: SessionController = Depends(get_session_controller)):
    """
    QR code for linking a device.

    Returns:
        200: QR code, already-connected notice, or waiting notice (success=false)
    """
    result = controller.get_pairing()

    if result.status is PairingStatus.CODE:
        return {
            "success": True,
            "qrCode": result.code,
            "message": "Scan this QR code with WhatsApp",
            "instructions": PAIRING_INSTRUCTIONS,
            "expiresAt": result.expires_at.isoformat(),
            "timeLeft": result.seconds_left,
        }

    if result.status is PairingStatus.ALREADY_CONNECTED:
        return {
            "success": True,
            "message": "WhatsApp is already connected",
            "status": "ready",
        }

    expired = result.status is PairingStatus.EXPIRED
    return {
        "success": False,
        "message": (
            "QR code expired, generating a new one..."
            if expired
            else "Generating QR code, wait a few seconds..."
        ),
        "status": "waiting",
        "initializing": result.initializing,
        "tip": "Reload this page in 10-30 seconds",
    }


@app.post("/api/send-message", response_model=SendMessageResponse)
async def send_message(
    payload: Optional[SendMessageRequest] = None,
    controller: SessionController = Depends(get_session_controller),
):
    """
    Send a text message.

    Returns:
        200: Message sent
        400: number or message missing
        500: Send failed or timed out
        503: WhatsApp not connected
    """
    payload = payload or SendMessageRequest()
    sent = await controller.send_message(payload.number, payload.message)

    return SendMessageResponse(
        to=payload.number,
        message_id=sent.id,
        timestamp=_now_iso(),
        platform=config.get("platform"),
    )


@app.get("/api/number-info/{number}", response_model=NumberInfoResponse)
async def number_info(number: str, controller: SessionController = Depends(get_session_controller)):
    """
    Check whether a number has WhatsApp.

    Returns:
        200: Lookup result
        500: Lookup failed
        503: WhatsApp not connected
    """
    info = await controller.resolve_recipient(number)

    return NumberInfoResponse(
        exists=info is not None,
        number_info=info.to_dict() if info else None,
        checked=number,
        message="Valid number" if info else "Number is not on WhatsApp",
    )


@app.get("/api/chats", response_model=ChatListResponse)
async def list_chats(
    limit: int = Query(20, description="Maximum chats to return"),
    controller: SessionController = Depends(get_session_controller),
):
    """
    List recent chats.

    Returns:
        200: Chat summaries
        500: Listing failed
        503: WhatsApp not connected
    """
    listing = await controller.list_chats(limit)
    chats = [ChatItem.from_summary(chat) for chat in listing.chats]

    return ChatListResponse(
        chats=chats,
        total=listing.total,
        showing=len(chats),
        platform=config.get("platform"),
    )


@app.post("/api/restart", response_model=RestartResponse)
async def restart(controller: SessionController = Depends(get_session_controller)):
    """
    Destroy the client and relaunch it after a short delay.

    Returns:
        200: Restart scheduled
    """
    delay = await controller.restart()
    return RestartResponse(timestamp=_now_iso(), delay_seconds=delay)


# Error handlers


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    """Translate session errors into the response envelope."""
    content: Dict[str, Any] = {"success": False, "message": exc.message}
    if exc.error:
        content["error"] = exc.error

    if isinstance(exc, NotReadyError):
        content["status"] = "not_ready"
        content["tip"] = "Go to /api/qr to connect WhatsApp first"
    elif isinstance(exc, InvalidRequestError) and request.url.path == "/api/send-message":
        content["example"] = EXAMPLE_SEND_BODY
    elif isinstance(exc, (SendTimeoutError, SendFailedError)):
        content["message"] = describe_send_failure(exc.error)
        content["tip"] = "Check that the number is correct and has WhatsApp"

    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle malformed requests."""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid request", "error": str(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Unknown routes get the endpoint directory."""
    if exc.status_code in (404, 405):
        return JSONResponse(
            status_code=404,
            content={
                "success": False,
                "message": "Endpoint not found",
                "availableEndpoints": AVAILABLE_ENDPOINTS,
            },
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Last resort: log and answer with the envelope."""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": str(exc)},
    )


def main() -> None:
    # Use dict config for logging, not file path
    uvicorn.run(
        "wagateway.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    main()
