"""Write-back of the idempotency flag onto delivered records."""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import ChangeFeed

logger = logging.getLogger(__name__)

PROCESSED_FIELD = "processed"


class CompletionMarker:
  """Flag a record as processed with a partial update that leaves sibling fields intact."""

  def __init__(self, *, feed: ChangeFeed, root_path: str = "notifications") -> None:
    self._feed = feed
    self._root_path = root_path.strip("/")

  def record_path(self, user_id: str, notification_id: str) -> str:
    return f"{self._root_path}/{user_id}/{notification_id}"

  async def mark_processed(self, user_id: str, notification_id: str) -> bool:
    """Return True once the flag is written; failures are logged and reported as False."""
    path = self.record_path(user_id, notification_id)
    try:
      await run_in_threadpool(self._feed.update, path, {PROCESSED_FIELD: True})
    except Exception as exc:  # noqa: BLE001
      # The push already went out; a restart inside the staleness window may redeliver it.
      logger.error("Failed to mark notification %s for user %s as processed: %s", notification_id, user_id, exc, exc_info=True)
      return False

    logger.info("Marked notification %s as processed.", notification_id)
    return True
