"""Engine error taxonomy and FastAPI exception handlers.

QuotaExceeded and InvalidTransition are expected, user-facing outcomes and are
logged at INFO. Everything else is logged as an error.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class EngineError(Exception):
    code = "engine_error"
    status_code = 500
    expected = False

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def extra(self) -> Dict[str, Any]:
        return {}


class NotFound(EngineError):
    code = "not_found"
    status_code = 404


class QuotaExceeded(EngineError):
    code = "quota_exceeded"
    status_code = 403
    expected = True

    def __init__(self, used: int, limit: Optional[int], message: Optional[str] = None):
        super().__init__(message or f"You've used {used} of {limit} AI ratings this month.")
        self.used = used
        self.limit = limit

    def extra(self) -> Dict[str, Any]:
        return {"used": self.used, "limit": self.limit}


class InvalidTransition(EngineError):
    code = "invalid_transition"
    status_code = 409
    expected = True

    def __init__(self, from_status: str, event: str, reason: Optional[str] = None):
        message = f"Cannot {event} a post in status '{from_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_status = from_status
        self.event = event

    def extra(self) -> Dict[str, Any]:
        return {"from_status": self.from_status, "event": self.event}


class TransientStoreError(EngineError):
    code = "store_unavailable"
    status_code = 503


class ScoringError(EngineError):
    code = "scoring_failed"
    status_code = 502


class BillingError(EngineError):
    code = "billing_failed"
    status_code = 502


def error_payload(exc: EngineError) -> dict:
    return {
        "error": {"code": exc.code, "message": exc.message, **exc.extra()},
        "detail": exc.message,
    }


async def engine_error_handler(request: Request, exc: EngineError):
    log_level = logging.INFO if exc.expected else logging.ERROR
    logger.log(log_level, f"engine_error_handler: {exc.code} - path: {request.url.path}, message: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_payload(exc))


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(EngineError, engine_error_handler)
