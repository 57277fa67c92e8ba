"""
CampaignHQ API Response Utilities
Standardized error payloads for core exceptions
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
from typing import Any, Dict

from .errors import CoreError
from .logging_config import api_logger


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def error_body(exc: CoreError) -> Dict[str, Any]:
    return {
        "ok": False,
        "error": exc.message,
        "error_code": exc.code,
        "details": exc.details,
        "timestamp": _timestamp(),
    }


def deleted(message: str = "Deleted successfully", **extra) -> Dict[str, Any]:
    """200 Deleted response"""
    return {"ok": True, "message": message, "timestamp": _timestamp(), **extra}


async def core_exception_handler(request: Request, exc: CoreError) -> JSONResponse:
    """Map core exceptions to HTTP responses"""
    log = api_logger.error if exc.status_code >= 500 else api_logger.warning
    log(
        f"Core error: {exc.message}",
        status_code=exc.status_code,
        error_code=exc.code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc))
