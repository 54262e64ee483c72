"""
Standardized Error Handler for the StatusPulse gate

Usage:
    from error_handler import ErrorHandler

    handler = ErrorHandler("StatusPulseGate")

    try:
        # risky operation
    except AuthError as e:
        result = handler.handle(e, category="AUTH", context={"path": "/dashboard"})
        logger.info(result["error_code"])

    From a coroutine, run it with starlette.concurrency.run_in_threadpool so
    database persistence never blocks the event loop.
"""

import time
import logging
import traceback
from typing import Optional
from dataclasses import dataclass, asdict
from datetime import datetime

logger = logging.getLogger(__name__)

MAX_STORED_ERRORS = 1000


@dataclass
class ErrorDetails:
    """Full error details for logging/storage."""
    error_code: str
    app: str
    category: str
    error_type: str
    error_message: str
    traceback_str: str
    context: dict
    timestamp: int
    timestamp_human: str


class ErrorHandler:
    """
    Records unexpected failures under a lookup code.

    Categories:
        AUTH - Session validation / refresh
        CRON - Cron trigger and check runner
        CFG  - Missing or invalid configuration
        SYS  - System (unexpected errors)
    """

    USER_MESSAGES = {
        "AUTH": "Unable to validate your session. Please sign in again.",
        "CRON": "Monitor checks could not be completed.",
        "CFG": "The service is not configured correctly.",
        "SYS": "Something unexpected happened. Please try again."
    }

    def __init__(self, app_name: str, supabase_client=None):
        """
        Initialize error handler.

        Args:
            app_name: Name of the app (e.g., "StatusPulseGate")
            supabase_client: Optional Supabase client for persistent storage
        """
        self.app_name = app_name
        self.supabase = supabase_client
        self._error_log = {}  # In-memory fallback

    def handle(
        self,
        error: Exception,
        category: str = "SYS",
        context: Optional[dict] = None,
        custom_message: Optional[str] = None
    ) -> dict:
        """
        Handle an error and return a caller-safe response.

        Returns:
            dict: {
                "error_code": "ERR-AUTH-1738851234",
                "message": "Caller-safe message",
                "user_action": "How to report the error"
            }
        """
        timestamp = int(time.time())
        error_code = f"ERR-{category}-{timestamp}"

        details = ErrorDetails(
            error_code=error_code,
            app=self.app_name,
            category=category,
            error_type=type(error).__name__,
            error_message=str(error),
            traceback_str="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            context=context or {},
            timestamp=timestamp,
            timestamp_human=datetime.fromtimestamp(timestamp).isoformat()
        )

        logger.error(f"[{error_code}] {details.error_type}: {details.error_message}")
        logger.debug(f"[{error_code}] Full traceback:\n{details.traceback_str}")
        logger.debug(f"[{error_code}] Context: {details.context}")

        self._store_error(details)

        message = custom_message or self.USER_MESSAGES.get(category, self.USER_MESSAGES["SYS"])

        return {
            "error_code": error_code,
            "message": message,
            "user_action": f"If this persists, contact support with code {error_code}"
        }

    def _store_error(self, details: ErrorDetails):
        """Store error for later lookup."""
        self._error_log[details.error_code] = asdict(details)

        # Keep only the most recent errors in memory
        if len(self._error_log) > MAX_STORED_ERRORS:
            oldest_keys = sorted(self._error_log, key=lambda k: self._error_log[k]["timestamp"])[:100]
            for key in oldest_keys:
                del self._error_log[key]

        if self.supabase:
            try:
                self.supabase.table("error_logs").insert({
                    "error_code": details.error_code,
                    "app": details.app,
                    "category": details.category,
                    "error_type": details.error_type,
                    "error_message": details.error_message,
                    "traceback": details.traceback_str,
                    "context": details.context,
                    "created_at": details.timestamp_human
                }).execute()
            except Exception as e:
                logger.warning(f"Failed to persist error to database: {e}")

    def lookup(self, error_code: str) -> dict:
        """
        Look up error details by code.

        Returns:
            dict: Full error details or {"error": "Not found"}
        """
        if error_code in self._error_log:
            return self._error_log[error_code]

        if self.supabase:
            try:
                result = self.supabase.table("error_logs").select("*").eq("error_code", error_code).execute()
                if result.data:
                    return result.data[0]
            except Exception as e:
                logger.warning(f"Failed to lookup error in database: {e}")

        return {"error": "Not found", "error_code": error_code}


_default_handler = None

def get_handler(app_name: str = "StatusPulseGate") -> ErrorHandler:
    """Get or create the default error handler."""
    global _default_handler
    if _default_handler is None or _default_handler.app_name != app_name:
        _default_handler = ErrorHandler(app_name)
    return _default_handler
