"""Listener lifecycle for the two-level notification change-feed."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from functools import partial
from typing import Any

from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import ChangeFeed, ProcessOutcome, Watch
from app.notifications.pipeline import NotificationPipeline

logger = logging.getLogger(__name__)

FatalHandler = Callable[[BaseException], None]


class _PendingWatch:
  """Hand a watch opened on a worker thread to the loop, or close it once the loop has given up on it."""

  def __init__(self) -> None:
    self._lock = threading.Lock()
    self._watch: Watch | None = None
    self._claimed = False

  def opened(self, watch: Watch) -> None:
    """Called on the worker thread once the subscription is live."""
    with self._lock:
      if not self._claimed:
        self._watch = watch
        return

    watch.close()

  def claim(self) -> Watch | None:
    """Take the opened watch; a watch opened after this call is closed by the worker thread."""
    with self._lock:
      self._claimed = True
      watch, self._watch = self._watch, None
    return watch


class ListenerManager:
  """Attach one sub-tree watch per user and run the pipeline for every new notification.

  Feed callbacks arrive on the feed client's threads. Each one is handed to the
  event loop with `call_soon_threadsafe`, so the registration set and the task
  set are only ever touched from the loop thread and the check-and-add on the
  registration set cannot interleave.
  """

  def __init__(self, *, feed: ChangeFeed, pipeline: NotificationPipeline, root_path: str = "notifications", on_fatal: FatalHandler | None = None) -> None:
    self._feed = feed
    self._pipeline = pipeline
    self._root_path = root_path.strip("/")
    self._on_fatal = on_fatal
    self._loop: asyncio.AbstractEventLoop | None = None
    self._root_watch: Watch | None = None
    self._registered: set[str] = set()
    self._user_watches: dict[str, Watch] = {}
    self._tasks: set[asyncio.Task[Any]] = set()
    self._stopped = False

  @property
  def registered_users(self) -> frozenset[str]:
    return frozenset(self._registered)

  @property
  def in_flight(self) -> int:
    return sum(1 for task in self._tasks if not task.done())

  async def start(self) -> None:
    """Subscribe to the top-level collection; subscription failures propagate to the caller."""
    if self._root_watch is not None:
      raise RuntimeError("ListenerManager is already started.")

    self._loop = asyncio.get_running_loop()
    self._stopped = False
    logger.info("Listening for new notifications under %s", self._root_path)
    self._root_watch = await run_in_threadpool(self._feed.watch_children, self._root_path, self._on_user_child)

  async def stop(self) -> None:
    """Close every watch and abandon in-flight records; they stay unprocessed and are safe to replay."""
    self._stopped = True
    self._loop = None
    watches = [watch for watch in (self._root_watch, *self._user_watches.values()) if watch is not None]
    self._root_watch = None
    self._user_watches.clear()
    # A later start() replays every user child and must attach fresh watches.
    self._registered.clear()
    for watch in watches:
      try:
        await run_in_threadpool(watch.close)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to close feed watch: %s", exc)

    pending = [task for task in self._tasks if not task.done()]
    for task in pending:
      task.cancel()
    if pending:
      await asyncio.gather(*pending, return_exceptions=True)
    logger.info("Listener manager stopped; abandoned %d in-flight task(s).", len(pending))

  async def drain(self) -> None:
    """Wait until every scheduled registration and notification task has finished."""
    while True:
      # Let callbacks queued from feed threads create their tasks first.
      await asyncio.sleep(0)
      pending = [task for task in self._tasks if not task.done()]
      if not pending:
        return
      await asyncio.gather(*pending, return_exceptions=True)

  def register_user(self, user_id: str) -> bool:
    """Attach the per-user watch unless one exists; returns True when a new watch is scheduled."""
    if self._stopped or user_id in self._registered:
      return False

    self._registered.add(user_id)
    logger.info("Attaching listener for user %s", user_id)
    self._track(asyncio.get_running_loop().create_task(self._attach_user(user_id)))
    return True

  def handle_notification(self, user_id: str, notification_id: str, value: Any) -> asyncio.Task[ProcessOutcome]:
    """Schedule the pipeline for one record and return the task so callers can await its outcome."""
    task = asyncio.get_running_loop().create_task(self._pipeline.process(user_id, notification_id, value))
    self._track(task)
    return task

  async def _attach_user(self, user_id: str) -> None:
    path = f"{self._root_path}/{user_id}"
    pending = _PendingWatch()

    def _open() -> None:
      pending.opened(self._feed.watch_children(path, partial(self._on_notification_child, user_id)))

    try:
      await run_in_threadpool(_open)
    except asyncio.CancelledError:
      # The worker thread may still be subscribing; whatever it opens is closed.
      watch = pending.claim()
      if watch is not None:
        await run_in_threadpool(watch.close)
      raise
    except Exception as exc:  # noqa: BLE001
      logger.critical("Failed to attach listener for user %s: %s", user_id, exc, exc_info=True)
      if self._on_fatal is not None:
        self._on_fatal(exc)
      return

    watch = pending.claim()
    if watch is None:
      return

    if self._stopped:
      await run_in_threadpool(watch.close)
      return

    self._user_watches[user_id] = watch

  def _on_user_child(self, user_id: str, _value: Any) -> None:
    self._call_in_loop(self.register_user, user_id)

  def _on_notification_child(self, user_id: str, notification_id: str, value: Any) -> None:
    self._call_in_loop(self.handle_notification, user_id, notification_id, value)

  def _call_in_loop(self, callback: Callable[..., Any], *args: Any) -> None:
    loop = self._loop
    if loop is None or loop.is_closed():
      logger.debug("Dropping feed event after shutdown args=%s", args[:2])
      return

    try:
      loop.call_soon_threadsafe(callback, *args)
    except RuntimeError:
      # The loop closed between the check and the call.
      logger.debug("Dropping feed event after loop close args=%s", args[:2])

  def _track(self, task: asyncio.Task[Any]) -> None:
    self._tasks.add(task)
    task.add_done_callback(self._task_done)

  def _task_done(self, task: asyncio.Task[Any]) -> None:
    """Forget finished tasks and log any exception so failures are never silent."""
    self._tasks.discard(task)
    if task.cancelled():
      return

    exc = task.exception()
    if exc is not None:
      logger.error("Background relay task failed: %s", exc, exc_info=exc)
