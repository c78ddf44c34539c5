"""Staleness and dedup decision for incoming notification records."""

from __future__ import annotations

import time

from app.config import DEFAULT_STALENESS_WINDOW_MS
from app.notifications.contracts import Decision
from app.schema.notifications import NotificationRecord


def current_time_ms() -> int:
  """Return the current wall-clock time in epoch milliseconds."""
  return int(time.time() * 1000)


def decide(record: NotificationRecord, *, now_ms: int, window_ms: int = DEFAULT_STALENESS_WINDOW_MS) -> Decision:
  """Decide whether a record should be dispatched.

  Already-processed records are skipped first, then records older than the
  window. Records timestamped in the future proceed.
  """
  if record.processed:
    return Decision.SKIP_PROCESSED

  if now_ms - record.timestamp > window_ms:
    return Decision.SKIP_STALE

  return Decision.PROCEED
