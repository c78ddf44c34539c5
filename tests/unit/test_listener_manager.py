from __future__ import annotations

import asyncio
import threading

import pytest
from app.notifications.contracts import FeedSubscriptionError, ProcessOutcome, RecipientProfile
from app.notifications.dispatch import DispatchEngine
from app.notifications.manager import ListenerManager
from app.notifications.marker import CompletionMarker
from app.notifications.pipeline import NotificationPipeline
from app.notifications.resolver import RecipientResolver

NOW = 1_700_000_000_000


def _manager(feed, profile_store, push_sender, **kwargs) -> ListenerManager:
  pipeline = NotificationPipeline(resolver=RecipientResolver(store=profile_store), dispatcher=DispatchEngine(sender=push_sender), marker=CompletionMarker(feed=feed), clock=lambda: NOW)
  return ListenerManager(feed=feed, pipeline=pipeline, **kwargs)


def _record(**overrides) -> dict:
  record = {"title": "Hi", "body": "New grade posted", "timestamp": NOW}
  record.update(overrides)
  return record


@pytest.mark.anyio
async def test_replayed_user_events_attach_a_single_watch(feed, profile_store, push_sender):
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()

  for _ in range(5):
    feed.add_child("notifications", "user-1", {})
  await manager.drain()

  assert len(feed.watches_for("notifications/user-1")) == 1
  assert manager.registered_users == frozenset({"user-1"})
  await manager.stop()


@pytest.mark.anyio
async def test_register_user_is_idempotent(feed, profile_store, push_sender):
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()

  results = [manager.register_user("user-2") for _ in range(3)]
  await manager.drain()

  assert results == [True, False, False]
  assert len(feed.watches_for("notifications/user-2")) == 1
  await manager.stop()


@pytest.mark.anyio
async def test_existing_records_are_replayed_on_start(feed, profile_store, push_sender):
  feed.data = {"notifications": {"user-1": {"n-1": _record(), "n-2": _record(processed=True), "n-3": _record(timestamp=NOW - 600_000)}}}
  manager = _manager(feed, profile_store, push_sender)

  await manager.start()
  await manager.drain()

  assert push_sender.send.call_count == 1
  assert feed.updates == [("notifications/user-1/n-1", {"processed": True})]
  assert feed.get("notifications/user-1/n-3").get("processed") is None
  await manager.stop()


@pytest.mark.anyio
async def test_new_records_for_known_and_new_users_are_dispatched(feed, push_sender, make_profile_store):
  store = make_profile_store({"user-1": RecipientProfile(user_id="user-1", push_token="tok-1"), "user-2": RecipientProfile(user_id="user-2", push_token="tok-2")})
  feed.data = {"notifications": {"user-1": {}}}
  manager = _manager(feed, store, push_sender)
  await manager.start()
  await manager.drain()

  feed.add_child("notifications/user-1", "n-1", _record())
  feed.add_child("notifications", "user-2", {"n-9": _record()})
  feed.add_child("notifications/user-2", "n-10", _record(body="second"))
  await manager.drain()

  addresses = sorted(call.args[0].address for call in push_sender.send.call_args_list)
  assert addresses == ["tok-1", "tok-2", "tok-2"]
  assert feed.get("notifications/user-2/n-9")["processed"] is True
  assert feed.get("notifications/user-2/n-10")["processed"] is True
  await manager.stop()


@pytest.mark.anyio
async def test_handle_notification_returns_awaitable_outcome(feed, profile_store, push_sender):
  manager = _manager(feed, profile_store, push_sender)

  task = manager.handle_notification("user-1", "n-1", _record(processed=True))

  assert await task is ProcessOutcome.SKIPPED_PROCESSED


@pytest.mark.anyio
async def test_top_level_subscription_failure_propagates(feed, profile_store, push_sender):
  feed.fail_paths.add("notifications")
  manager = _manager(feed, profile_store, push_sender)

  with pytest.raises(FeedSubscriptionError):
    await manager.start()


@pytest.mark.anyio
async def test_per_user_attach_failure_is_fatal(feed, profile_store, push_sender):
  failures: list[BaseException] = []
  feed.fail_paths.add("notifications/user-1")
  manager = _manager(feed, profile_store, push_sender, on_fatal=failures.append)
  await manager.start()

  feed.add_child("notifications", "user-1", {})
  await manager.drain()

  assert len(failures) == 1
  assert isinstance(failures[0], FeedSubscriptionError)
  await manager.stop()


@pytest.mark.anyio
async def test_stop_closes_watches_and_ignores_late_events(feed, profile_store, push_sender):
  feed.data = {"notifications": {"user-1": {}}}
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()
  await manager.drain()

  await manager.stop()

  assert feed.watches and all(watch.closed for watch in feed.watches)
  # A straggling callback from a feed thread after shutdown is dropped.
  feed.watches[-1].handler("n-late", _record())
  await manager.drain()
  assert push_sender.send.call_count == 0
  assert manager.register_user("user-3") is False


@pytest.mark.anyio
async def test_start_twice_is_rejected(feed, profile_store, push_sender):
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()

  with pytest.raises(RuntimeError):
    await manager.start()
  await manager.stop()


@pytest.mark.anyio
async def test_restart_after_stop_reattaches_user_watches(feed, profile_store, push_sender):
  feed.data = {"notifications": {"user-1": {}}}
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()
  await manager.drain()
  await manager.stop()

  assert manager.registered_users == frozenset()

  await manager.start()
  await manager.drain()

  user_watches = feed.watches_for("notifications/user-1")
  assert len(user_watches) == 2
  assert user_watches[0].closed and not user_watches[1].closed
  assert manager.registered_users == frozenset({"user-1"})
  await manager.stop()


@pytest.mark.anyio
async def test_stop_during_attach_closes_the_late_watch(feed, profile_store, push_sender):
  entered = threading.Event()
  release = threading.Event()
  subscribe = feed.watch_children

  def _slow_watch_children(path, handler):
    if path == "notifications/user-1":
      entered.set()
      release.wait(5)
    return subscribe(path, handler)

  feed.watch_children = _slow_watch_children
  manager = _manager(feed, profile_store, push_sender)
  await manager.start()
  manager.register_user("user-1")
  for _ in range(500):
    if entered.is_set():
      break
    await asyncio.sleep(0.01)

  stopping = asyncio.create_task(manager.stop())
  await asyncio.sleep(0.05)
  release.set()
  await stopping

  for _ in range(500):
    watches = feed.watches_for("notifications/user-1")
    if watches and all(watch.closed for watch in watches):
      break
    await asyncio.sleep(0.01)

  watches = feed.watches_for("notifications/user-1")
  assert len(watches) == 1
  assert watches[0].closed
