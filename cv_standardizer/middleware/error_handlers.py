"""
Request id, error envelope and timing middleware for the CV standardizer API.

Every error leaves the API as::

    {"success": false, "timestamp": ..., "request_id": ..., "status_code": ..., "error": {...}, "message": ...}

with the request id echoed in ``X-Request-ID``.
"""
import time
import traceback
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from cv_standardizer.utils.exceptions import CVStandardizerBaseException, map_to_http_exception
from cv_standardizer.utils.logging_config import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Assigns a request id and turns exceptions into the JSON error envelope"""

    async def dispatch(self, request: Request, call_next):
        # reuse an upstream id so gateway and API logs line up
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        route = f"{request.method} {request.url.path}"
        logger.debug(f"Request started: {route}", extra={"request_id": request_id})

        try:
            response = await call_next(request)
        except CVStandardizerBaseException as exc:
            http_exc = map_to_http_exception(exc)
            level = logger.warning if http_exc.status_code < 500 else logger.error
            level(
                f"{exc.__class__.__name__} in {route}: {exc.message}",
                extra={"request_id": request_id, "error_code": exc.error_code, "details": exc.details},
            )
            return self._create_error_response(request_id, http_exc.status_code, http_exc.detail)
        except ValidationError as exc:
            # pydantic errors raised while building models inside a handler
            logger.warning(f"Model validation failed in {route}: {exc}", extra={"request_id": request_id})
            return self._create_error_response(request_id, 400, {
                "error": "Data validation failed",
                "validation_errors": exc.errors(include_url=False, include_context=False),
            })
        except HTTPException as exc:
            logger.warning(f"HTTP {exc.status_code} in {route}: {exc.detail}", extra={"request_id": request_id})
            return self._create_error_response(request_id, exc.status_code, exc.detail)
        except Exception as exc:
            logger.error(
                f"Unhandled {exc.__class__.__name__} in {route}: {exc}",
                extra={"request_id": request_id, "traceback": traceback.format_exc()},
                exc_info=True,
            )
            return self._create_error_response(request_id, 500, {
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            })

        logger.info(f"{route} -> {response.status_code}", extra={"request_id": request_id})
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _create_error_response(request_id: str, status_code: int, detail: Any) -> JSONResponse:
        """Standard error envelope"""
        if not isinstance(detail, dict):
            detail = {"message": str(detail)}

        body = {
            "success": False,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "status_code": status_code,
            **detail,
        }
        return JSONResponse(status_code=status_code, content=body, headers={REQUEST_ID_HEADER: request_id})


class PerformanceMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Processing-Time`` and warns about slow requests"""

    def __init__(self, app, slow_request_threshold: float = 2.0):
        super().__init__(app)
        self.slow_request_threshold = slow_request_threshold

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start

        if elapsed > self.slow_request_threshold:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.3f}s",
                extra={"request_id": getattr(request.state, "request_id", "-")},
            )
        response.headers["X-Processing-Time"] = f"{elapsed:.3f}"
        return response
