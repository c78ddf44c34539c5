"""Firebase Realtime Database change-feed with child-added semantics.

How/Why:
- The Admin SDK streams `put`/`patch` events for a whole sub-tree instead of
  per-child `child_added` events, so each watch keeps the set of child keys it
  has already reported and emits only keys it has not seen.
- The first event of every stream is a `put` at "/" carrying the full snapshot,
  which replays every existing child as "added" on a fresh subscription.
- Callbacks run on the SDK's listener thread; an exception escaping the callback
  would kill that thread, so handler failures are logged and contained.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import firebase_admin
from firebase_admin import db

from app.notifications.contracts import ChangeFeed, ChildHandler, FeedSubscriptionError, Watch

logger = logging.getLogger(__name__)


class ChildAddedTranslator:
  """Convert sub-tree stream events into handler(child_key, value) calls, once per child."""

  def __init__(self, handler: ChildHandler, *, fetch_child: Callable[[str], Any] | None = None, label: str = "") -> None:
    self._handler = handler
    self._fetch_child = fetch_child
    self._label = label
    self._known: set[str] = set()

  def __call__(self, event: db.Event) -> None:
    """Entry point for `Reference.listen` callbacks."""
    try:
      self.translate(event.event_type, event.path, event.data)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to translate feed event path=%s%s: %s", self._label, event.path, exc, exc_info=True)

  @property
  def known_children(self) -> frozenset[str]:
    return frozenset(self._known)

  def translate(self, event_type: str, path: str | None, data: Any) -> None:
    segments = [segment for segment in (path or "/").split("/") if segment]
    if event_type == "put":
      if not segments:
        self._replace_all(data)
      elif len(segments) == 1:
        self._set_child(segments[0], data)
      else:
        self._touch_child(segments[0])
      return

    if event_type == "patch":
      if not segments:
        # A root-level multi-path update: each key is a child receiving a new value.
        for key, value in _as_mapping(data).items():
          self._set_child(key, value)
      else:
        self._touch_child(segments[0])
      return

    logger.debug("Ignoring feed event type=%s path=%s%s", event_type, self._label, path)

  def _replace_all(self, data: Any) -> None:
    children = _as_mapping(data)
    # Forget removed children so a later re-add is reported again.
    self._known.intersection_update(children.keys())
    for key in sorted(children):
      self._set_child(key, children[key])

  def _set_child(self, key: str, value: Any) -> None:
    if value is None:
      self._known.discard(key)
      return

    if key in self._known:
      return

    self._known.add(key)
    self._emit(key, value)

  def _touch_child(self, key: str) -> None:
    """Handle a write below a child; only unseen children need their full value."""
    if key in self._known or self._fetch_child is None:
      return

    value = self._fetch_child(key)
    if value is not None:
      self._set_child(key, value)

  def _emit(self, key: str, value: Any) -> None:
    try:
      self._handler(key, value)
    except Exception as exc:  # noqa: BLE001
      logger.error("Child-added handler failed path=%s/%s: %s", self._label, key, exc, exc_info=True)


class RealtimeDatabaseFeed(ChangeFeed):
  """ChangeFeed backed by `firebase_admin.db` references."""

  def __init__(self, *, app: firebase_admin.App | None = None) -> None:
    self._app = app

  def _reference(self, path: str) -> db.Reference:
    return db.reference(path, app=self._app)

  def watch_children(self, path: str, handler: ChildHandler) -> Watch:
    """Open a streaming listener on path; blocks until the stream is connected."""
    reference = self._reference(path)
    translator = ChildAddedTranslator(handler, fetch_child=lambda key: reference.child(key).get(), label=path)
    try:
      return reference.listen(translator)
    except Exception as exc:  # noqa: BLE001
      raise FeedSubscriptionError(f"Failed to subscribe to {path}: {exc}") from exc

  def update(self, path: str, fields: Mapping[str, Any]) -> None:
    self._reference(path).update(dict(fields))


def _as_mapping(data: Any) -> Mapping[str, Any]:
  # Realtime Database returns sparse integer-keyed nodes as lists.
  if isinstance(data, list):
    return {str(index): value for index, value in enumerate(data) if value is not None}
  if isinstance(data, Mapping):
    return data
  return {}
