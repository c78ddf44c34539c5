"""Factory helpers for the notification relay."""

from __future__ import annotations

from app.config import Settings
from app.core.firebase import get_firestore_client
from app.notifications.contracts import ChangeFeed, ProfileStore, PushSender
from app.notifications.dispatch import DispatchEngine
from app.notifications.feed import RealtimeDatabaseFeed
from app.notifications.manager import FatalHandler, ListenerManager
from app.notifications.marker import CompletionMarker
from app.notifications.pipeline import NotificationPipeline
from app.notifications.push_sender import FcmPushSender, NullPushSender
from app.notifications.resolver import FirestoreProfileStore, RecipientResolver


def build_push_sender(settings: Settings) -> PushSender:
  """Pick the FCM sender, or the no-op sender when dry runs are enabled."""
  if settings.push_dry_run:
    return NullPushSender()

  return FcmPushSender(app_base_url=settings.app_base_url)


def build_pipeline(settings: Settings, *, feed: ChangeFeed, profile_store: ProfileStore, push_sender: PushSender) -> NotificationPipeline:
  """Assemble Filter -> Resolver -> Dispatch -> Marker from explicit collaborators."""
  resolver = RecipientResolver(store=profile_store)
  dispatcher = DispatchEngine(sender=push_sender, icon_url=settings.notification_icon_url)
  marker = CompletionMarker(feed=feed, root_path=settings.notifications_path)
  return NotificationPipeline(resolver=resolver, dispatcher=dispatcher, marker=marker, window_ms=settings.staleness_window_ms)


def build_listener_manager(settings: Settings, *, on_fatal: FatalHandler | None = None) -> ListenerManager:
  """Construct the Firebase-backed listener manager; Firebase must already be initialized."""
  feed = RealtimeDatabaseFeed()
  profile_store = FirestoreProfileStore(client=get_firestore_client(), collection=settings.profile_collection, token_field=settings.push_token_field)
  pipeline = build_pipeline(settings, feed=feed, profile_store=profile_store, push_sender=build_push_sender(settings))
  return ListenerManager(feed=feed, pipeline=pipeline, root_path=settings.notifications_path, on_fatal=on_fatal)
