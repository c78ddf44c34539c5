"""Account deletion endpoint backed by Firebase Authentication."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError

from app.services.accounts import delete_account_by_email

logger = logging.getLogger(__name__)

router = APIRouter()


class DeleteUserRequest(BaseModel):
  """Payload naming the account to remove."""

  email: str | None = None
  model_config = ConfigDict(extra="ignore")


def _error_message(exc: Exception) -> str:
  """Return a single-line client message for a failed deletion."""
  if isinstance(exc, ValidationError):
    errors = exc.errors(include_url=False)
    return str(errors[0]["msg"]) if errors else "Invalid request body"

  return str(exc) or type(exc).__name__


@router.post("/delete-user")
async def delete_user(request: Request) -> JSONResponse:
  """Delete the Firebase Auth account for an email; an already-absent account is reported as success."""
  # Parse inside the try block so malformed bodies share the 500 error contract.
  try:
    payload = DeleteUserRequest.model_validate_json(await request.body())
    result = await delete_account_by_email(payload.email)
  except Exception as exc:  # noqa: BLE001
    logger.error("[Auth] Error deleting user: %s", exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"success": False, "error": _error_message(exc)})

  return JSONResponse(status_code=status.HTTP_200_OK, content={"success": True, "message": result.message})
