"""Catch-all liveness response for every path without a dedicated route."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

RUNNING_MESSAGE = "Notification Service is Running\n"

router = APIRouter()


@router.api_route("/{full_path:path}", methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def service_status(full_path: str) -> PlainTextResponse:
  """Report that the relay process is up."""
  return PlainTextResponse(RUNNING_MESSAGE)
