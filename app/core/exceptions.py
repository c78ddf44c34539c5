import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from app.core.middleware import CORS_HEADERS


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Build a safe error payload that avoids leaking internal details to clients."""
  payload: dict[str, Any] = {"detail": detail}
  # Attach a request id so support can correlate client reports to server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _error_headers(request_id: str | None) -> dict[str, str]:
  """Headers the middleware stack would have added; this handler runs outside it."""
  headers = dict(CORS_HEADERS)
  if request_id:
    headers["x-request-id"] = request_id
  return headers


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  """Global exception handler to catch unhandled errors."""
  logger = logging.getLogger("uvicorn.error")
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id), headers=_error_headers(request_id))
