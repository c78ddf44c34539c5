"""Account removal against Firebase Authentication."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from firebase_admin import auth
from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountDeletionResult:
  """Outcome of a deletion request; an absent account counts as deleted."""

  deleted: bool
  already_absent: bool
  uid: str | None = None

  @property
  def message(self) -> str:
    return "User already deleted" if self.already_absent else "User deleted from Auth"


async def delete_account_by_email(email: str | None) -> AccountDeletionResult:
  """Look the account up by email and delete it.

  Raises ValueError when no email is given; other Firebase errors propagate.
  """
  if not email or not email.strip():
    raise ValueError("Email is required")

  email = email.strip()
  logger.info("[Auth] Attempting to delete user by email: %s", email)
  try:
    user_record = await run_in_threadpool(auth.get_user_by_email, email)
    await run_in_threadpool(auth.delete_user, user_record.uid)
  except auth.UserNotFoundError:
    # The account is gone either way; callers treat this as success.
    logger.info("[Auth] User %s not found; treating as already deleted.", email)
    return AccountDeletionResult(deleted=True, already_absent=True)

  logger.info("[Auth] Successfully deleted user %s (%s)", email, user_record.uid)
  return AccountDeletionResult(deleted=True, already_absent=False, uid=user_record.uid)
