"""
API Middleware - Security and error handling for the REST API.

Provides:
- Localhost-only access enforcement
- Unified error response formatting
- Request logging
"""

import time
import traceback
from typing import Any, Callable, Dict, Optional, Tuple

from aiohttp import web

from deckpilot.core.errors import RecorderNotFoundError, ShowFileError
from deckpilot.core.logging_utils import get_module_logger


logger = get_module_logger("APIMiddleware")

# Debug mode flag - set via APIServer
_debug_mode: bool = False

LOCALHOST_IPS = {"127.0.0.1", "::1", "::ffff:127.0.0.1"}


def set_debug_mode(enabled: bool) -> None:
    """Enable or disable debug mode for verbose error responses."""
    global _debug_mode
    _debug_mode = enabled
    logger.debug("API debug mode %s", "enabled" if enabled else "disabled")


def is_debug_mode() -> bool:
    return _debug_mode


@web.middleware
async def localhost_only_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Reject requests from any IP other than 127.0.0.1 or ::1."""
    peername = request.transport.get_extra_info("peername") if request.transport else None
    if peername:
        remote_ip = peername[0]
        if remote_ip not in LOCALHOST_IPS:
            logger.warning("Rejected request from non-localhost IP: %s", remote_ip)
            return create_error_response(
                "ACCESS_DENIED", "API access is restricted to localhost only", status=403
            )

    return await handler(request)


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """Log each request with its status and timing."""
    start_time = time.perf_counter()
    response = await handler(request)
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    if _debug_mode:
        logger.info("%s %s -> %d (%.1fms)", request.method, request.path, response.status, elapsed_ms)
    else:
        logger.debug("%s %s -> %d (%.1fms)", request.method, request.path, response.status, elapsed_ms)
    return response


@web.middleware
async def error_handling_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
    """
    Catch and format all errors as JSON responses.

    Unified error response format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable message",
            "details": { ... }  # Optional
        },
        "status": 500
    }
    """
    try:
        return await handler(request)
    except web.HTTPException as e:
        if e.status < 400:
            raise
        return create_error_response(
            e.reason.upper().replace(" ", "_") if e.reason else "HTTP_ERROR",
            e.text or str(e),
            status=e.status,
        )
    except RecorderNotFoundError as e:
        logger.warning("Unknown recorder: %s", e.recorder_id)
        return create_error_response("RECORDER_NOT_FOUND", str(e), status=404)
    except ShowFileError as e:
        logger.warning("Show file error: %s", e)
        return create_error_response("SHOW_FILE_ERROR", str(e), status=400)
    except ValueError as e:
        logger.warning("Validation error: %s", e)
        return create_error_response("VALIDATION_ERROR", str(e), status=400)
    except KeyError as e:
        logger.warning("Missing field: %s", e)
        return create_error_response("MISSING_FIELD", f"Missing required field: {e}", status=400)
    except Exception as e:
        tb = traceback.format_exc()
        logger.error("Unexpected error: %s\n%s", e, tb)

        details: Dict[str, Any] = {"type": type(e).__name__, "message": str(e)}
        if _debug_mode:
            details["traceback"] = tb.split("\n")
            details["request"] = {
                "method": request.method,
                "path": request.path,
                "query": dict(request.query) if request.query else None,
            }
        return create_error_response(
            "INTERNAL_ERROR", "An unexpected error occurred", status=500, details=details
        )


def create_error_response(
    code: str, message: str, status: int = 400, details: Optional[Dict[str, Any]] = None
) -> web.Response:
    """Create standardized error response."""
    error: Dict[str, Any] = {"error": {"code": code, "message": message}, "status": status}
    if details:
        error["error"]["details"] = details
    return web.json_response(error, status=status)


async def parse_json_body(
    request: web.Request, required: bool = True
) -> Tuple[Optional[Dict[str, Any]], Optional[web.Response]]:
    """Parse JSON body with error handling. Returns (body, error_response)."""
    if not request.can_read_body:
        if required:
            return None, create_error_response("EMPTY_BODY", "Request body must contain data", status=400)
        return {}, None
    try:
        body = await request.json()
    except ValueError:
        if required:
            return None, create_error_response("INVALID_BODY", "Request body must be valid JSON", status=400)
        return {}, None
    if not isinstance(body, dict):
        return None, create_error_response("INVALID_BODY", "Request body must be a JSON object", status=400)
    if required and not body:
        return None, create_error_response("EMPTY_BODY", "Request body must contain data", status=400)
    return body, None


def result_to_response(result: Any) -> web.Response:
    """Convert a controller result to a response, mapping ``success: false`` to 400."""
    if isinstance(result, dict) and "success" in result:
        return web.json_response(result, status=200 if result["success"] else 400)
    return web.json_response(result)
