"""Per-record processing: filter, resolve, dispatch, mark."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from app.config import DEFAULT_STALENESS_WINDOW_MS
from app.notifications.contracts import Decision, ProcessOutcome, ProfileLookupError
from app.notifications.dispatch import DispatchEngine
from app.notifications.filters import current_time_ms, decide
from app.notifications.marker import CompletionMarker
from app.notifications.resolver import RecipientResolver
from app.schema.notifications import NotificationRecord

logger = logging.getLogger(__name__)


class NotificationPipeline:
  """Runs one notification record through Filter -> Resolver -> Dispatch -> Marker.

  `process` never raises: every fault is logged and reported as a
  `ProcessOutcome` so a failing record cannot disturb the listeners or other
  in-flight records. Only a successful dispatch followed by a successful
  write-back yields `DELIVERED`.
  """

  def __init__(
    self, *, resolver: RecipientResolver, dispatcher: DispatchEngine, marker: CompletionMarker, window_ms: int = DEFAULT_STALENESS_WINDOW_MS, clock: Callable[[], int] = current_time_ms
  ) -> None:
    self._resolver = resolver
    self._dispatcher = dispatcher
    self._marker = marker
    self._window_ms = window_ms
    self._clock = clock
    # Keys currently between the filter and the write-back; only touched from the event loop.
    self._in_flight: set[tuple[str, str]] = set()

  async def process(self, user_id: str, notification_id: str, raw: Any) -> ProcessOutcome:
    try:
      record = NotificationRecord.model_validate(raw)
    except ValidationError as exc:
      logger.warning("Skipping malformed notification %s for user %s: %s", notification_id, user_id, exc.errors(include_url=False))
      return ProcessOutcome.INVALID_RECORD

    decision = decide(record, now_ms=self._clock(), window_ms=self._window_ms)
    if decision is Decision.SKIP_PROCESSED:
      return ProcessOutcome.SKIPPED_PROCESSED
    if decision is Decision.SKIP_STALE:
      logger.debug("Skipping stale notification %s for user %s (timestamp=%s)", notification_id, user_id, record.timestamp)
      return ProcessOutcome.SKIPPED_STALE

    # Claim the record before the first suspension so a duplicate event cannot send twice.
    key = (user_id, notification_id)
    if key in self._in_flight:
      logger.info("Notification %s for user %s is already being processed.", notification_id, user_id)
      return ProcessOutcome.IN_FLIGHT

    self._in_flight.add(key)
    stages: list[str] = []
    try:
      return await self._deliver(user_id, notification_id, record, stages)
    except Exception as exc:  # noqa: BLE001
      stage = stages[-1] if stages else "prepare"
      logger.error("Unexpected failure processing notification %s for user %s at stage=%s: %s", notification_id, user_id, stage, exc, exc_info=True)
      return ProcessOutcome.FAILED
    finally:
      self._in_flight.discard(key)

  async def _deliver(self, user_id: str, notification_id: str, record: NotificationRecord, stages: list[str]) -> ProcessOutcome:
    """Run resolve, dispatch and mark; `stages` records the step in progress for failure logs."""
    logger.info("Processing notification for user %s: %s", user_id, json.dumps(record.model_dump(), ensure_ascii=False))

    stages.append("resolve")
    try:
      profile = await self._resolver.resolve(user_id)
    except ProfileLookupError as exc:
      logger.error("Error fetching user data: %s", exc, exc_info=True)
      return ProcessOutcome.RESOLUTION_FAILED

    if profile is None:
      logger.info("User document %s does not exist.", user_id)
      return ProcessOutcome.NO_PROFILE

    if not profile.push_token:
      logger.info("No FCM token for user %s", user_id)
      return ProcessOutcome.NO_TOKEN

    stages.append("dispatch")
    result = await self._dispatcher.dispatch(profile.push_token, record, user_id=user_id)
    if not result.delivered:
      return ProcessOutcome.DISPATCH_FAILED

    stages.append("mark")
    if not await self._marker.mark_processed(user_id, notification_id):
      return ProcessOutcome.MARK_FAILED

    return ProcessOutcome.DELIVERED
