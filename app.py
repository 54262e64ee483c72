"""
StatusPulse Gate - request gatekeeping and session refresh for the dashboard

Run locally:
    python app.py
"""

import logging
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from qstash import Receiver
from qstash.errors import SignatureError
from starlette.concurrency import run_in_threadpool
from supabase import Client, create_client

from config import Settings
from edge_gate import EdgeGateMiddleware, SessionRefresher
from error_handler import ErrorHandler
from security import sanitize_html, secure_compare
from session_refresher import SupabaseSessionRefresher

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

CRON_PATH = "/api/cron/check-monitors"
FAILURE_CALLBACK_PATH = "/api/cron/failure-callback"

SIGNATURE_HEADER = "upstash-signature"

SOURCE_QSTASH = "qstash"
SOURCE_BEARER = "bearer"
SOURCE_NONE = "none"

INCIDENT_STATUS_OPEN = 0

CheckRunner = Callable[[str], Awaitable[dict]]

_BASE36 = string.digits + string.ascii_lowercase


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )


def generate_request_id(prefix: str = "cron") -> str:
    """Unique id for tracing a trigger, e.g. cron_1738851234567_k3x9qa."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def verify_bearer_token(request: Request, expected_token: str) -> bool:
    """Check `Authorization: Bearer <secret>` in constant time."""
    auth_header = request.headers.get("authorization")
    if not auth_header or not expected_token:
        return False
    if not auth_header.startswith("Bearer "):
        return False
    return secure_compare(auth_header[len("Bearer "):], expected_token)


async def verify_qstash_signature(request: Request, receiver: Optional[Receiver]) -> bool:
    """Check the QStash signature over the raw request body."""
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature or receiver is None:
        return False

    body = (await request.body()).decode()
    try:
        receiver.verify(signature=signature, body=body)
    except SignatureError as e:
        logger.warning(f"QStash signature rejected: {e}")
        return False
    return True


def get_qstash_receiver(settings: Settings) -> Optional[Receiver]:
    if not settings.qstash_current_signing_key or not settings.qstash_next_signing_key:
        return None
    return Receiver(
        current_signing_key=settings.qstash_current_signing_key,
        next_signing_key=settings.qstash_next_signing_key,
    )


def get_supabase_admin(settings: Settings) -> Optional[Client]:
    """Get Supabase client with service key (admin access)."""
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    return create_client(settings.supabase_url, settings.supabase_service_key)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(
    settings: Optional[Settings] = None,
    refresher: Optional[SessionRefresher] = None,
    check_runner: Optional[CheckRunner] = None,
    error_handler: Optional[ErrorHandler] = None,
    receiver: Optional[Receiver] = None,
    supabase_admin: Optional[Client] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Loaded from the environment when omitted
        refresher: Session refresher the gate delegates to; defaults to Supabase
        check_runner: Coroutine performing the monitor checks for a cron trigger
        error_handler: Shared error recorder
        receiver: QStash signature verifier; built from the signing keys when omitted
        supabase_admin: Service-key client; built from the settings when omitted
    """
    settings = settings or Settings.from_env()
    supabase_admin = supabase_admin or get_supabase_admin(settings)
    receiver = receiver or get_qstash_receiver(settings)
    handler = error_handler or ErrorHandler("StatusPulseGate", supabase_admin)
    if refresher is None:
        refresher = SupabaseSessionRefresher(settings, error_handler=handler)

    app = FastAPI(
        title="StatusPulse Gate",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.error_handler = handler
    app.add_middleware(EdgeGateMiddleware, refresher=refresher)

    async def authenticate(request: Request) -> str:
        if SIGNATURE_HEADER in request.headers:
            return SOURCE_QSTASH if await verify_qstash_signature(request, receiver) else SOURCE_NONE
        return SOURCE_BEARER if verify_bearer_token(request, settings.cron_secret) else SOURCE_NONE

    async def trigger_checks(request: Request, request_id: str, source: str) -> JSONResponse:
        started = time.monotonic()

        if source == SOURCE_NONE:
            logger.warning(f"[{request_id}] Unauthorized {request.method} request")
            return JSONResponse({"error": "Unauthorized", "requestId": request_id}, status_code=401)

        if check_runner is None:
            logger.error(f"[{request_id}] No check runner configured")
            return JSONResponse(
                {"error": "Monitor checks are not configured", "requestId": request_id},
                status_code=503,
            )

        logger.info(f"[{request_id}] Starting monitor checks via {source}")
        try:
            result = await check_runner(request_id)
        except Exception as e:
            await run_in_threadpool(handler.handle, e, category="CRON", context={"requestId": request_id})
            return JSONResponse(
                {"error": str(e) or "Internal server error", "requestId": request_id},
                status_code=500,
            )

        return JSONResponse({
            **result,
            "requestId": request_id,
            "duration": f"{int((time.monotonic() - started) * 1000)}ms",
            "source": source,
            "timestamp": _now(),
        })

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": _now(), "version": __version__}

    @app.get("/api/session")
    async def current_session(request: Request):
        user = getattr(request.state, "user", None)
        if user is None:
            return JSONResponse({"authenticated": False}, status_code=401)
        return {"authenticated": True, "user_id": user.id, "email": user.email}

    @app.get(CRON_PATH)
    async def check_monitors(request: Request):
        request_id = generate_request_id()
        # Health check for schedulers, no auth
        if request.query_params.get("health") == "true":
            return {"status": "healthy", "timestamp": _now(), "requestId": request_id}
        source = SOURCE_BEARER if verify_bearer_token(request, settings.cron_secret) else SOURCE_NONE
        return await trigger_checks(request, request_id, source)

    @app.post(CRON_PATH)
    async def check_monitors_post(request: Request):
        return await trigger_checks(request, generate_request_id(), await authenticate(request))

    @app.get(FAILURE_CALLBACK_PATH)
    async def failure_callback_health():
        return {"status": "healthy", "endpoint": "failure-callback", "timestamp": _now()}

    @app.post(FAILURE_CALLBACK_PATH)
    async def failure_callback(request: Request):
        """QStash calls this once a scheduled check has exhausted its retries."""
        request_id = generate_request_id("failure")

        if not await verify_qstash_signature(request, receiver):
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        failed_url = request.headers.get("upstash-failed-url") or "unknown"
        failed_status = request.headers.get("upstash-failed-status") or "unknown"
        failed_message = request.headers.get("upstash-failed-message") or ""
        message_id = request.headers.get("upstash-message-id") or ""
        retried = request.headers.get("upstash-retried") or "0"

        logger.error(
            f"[{request_id}] QStash failure callback received: url={failed_url} "
            f"status={failed_status} retried={retried} message_id={message_id}"
        )

        if supabase_admin is None:
            logger.error(f"[{request_id}] SUPABASE_SERVICE_KEY not set, failure not recorded")
            return JSONResponse(
                {"error": "Supabase service client is not configured", "requestId": request_id},
                status_code=500,
            )

        content = sanitize_html(
            f"Monitor check cron job failed after {retried} retries.\n\n"
            f"URL: {failed_url}\nStatus: {failed_status}\n"
            f"Message: {failed_message}\nMessage ID: {message_id}"
        )
        incident = {
            "title": "Cron Job Failure",
            "content": content,
            "status": INCIDENT_STATUS_OPEN,
            "started_at": _now(),
        }
        try:
            await run_in_threadpool(
                lambda: supabase_admin.table("incidents").insert(incident).execute()
            )
        except APIError as e:
            logger.error(f"[{request_id}] Failed to log incident: {e}")

        return {"success": True, "message": "Failure logged", "requestId": request_id}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    configure_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
