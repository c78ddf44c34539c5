"""Contracts for the notification relay pipeline."""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

ChildHandler = Callable[[str, Any], None]


class Decision(str, enum.Enum):
  """Result of the staleness and dedup filter."""

  SKIP_PROCESSED = "skip_processed"
  SKIP_STALE = "skip_stale"
  PROCEED = "proceed"


class ProcessOutcome(str, enum.Enum):
  """Terminal state of one per-record pipeline run."""

  SKIPPED_PROCESSED = "skipped_processed"
  SKIPPED_STALE = "skipped_stale"
  INVALID_RECORD = "invalid_record"
  IN_FLIGHT = "in_flight"
  NO_PROFILE = "no_profile"
  NO_TOKEN = "no_token"
  RESOLUTION_FAILED = "resolution_failed"
  DISPATCH_FAILED = "dispatch_failed"
  MARK_FAILED = "mark_failed"
  DELIVERED = "delivered"
  FAILED = "failed"


@dataclass(frozen=True)
class RecipientProfile:
  """Represents the delivery address stored on a user's profile."""

  user_id: str
  push_token: str | None


@dataclass(frozen=True)
class DispatchMessage:
  """Represents a data-only push payload addressed to a single device token."""

  address: str
  payload: dict[str, str]
  delivery_hint: str


@dataclass(frozen=True)
class DispatchResult:
  """Outcome reported by the dispatch engine."""

  delivered: bool
  message_id: str | None = None
  reason: str | None = None


class NotificationError(Exception):
  """Base class for all notification relay failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when an external provider (e.g. FCM) returns a delivery error."""


class PushProviderError(NotificationProviderError):
  """Exception raised when the push gateway fails for reasons other than the token."""


class InvalidPushTokenError(NotificationProviderError):
  """Exception raised when a push token is unregistered, malformed or bound to another sender."""


class ProfileLookupError(NotificationError):
  """Exception raised when the profile store cannot be read."""


class FeedSubscriptionError(NotificationError):
  """Exception raised when the change-feed refuses a subscription."""


class Watch(Protocol):
  """Handle for an active change-feed subscription."""

  def close(self) -> None:
    """Detach the subscription."""


class ChangeFeed(Protocol):
  """Hierarchical store that pushes child-added events to subscribers."""

  def watch_children(self, path: str, handler: ChildHandler) -> Watch:
    """Invoke handler(child_key, value) for every existing and every newly added child of path."""

  def update(self, path: str, fields: Mapping[str, Any]) -> None:
    """Apply a partial update to the node at path without touching sibling fields."""


class ProfileStore(Protocol):
  """Read-only lookup of recipient profiles."""

  def get_profile(self, user_id: str) -> RecipientProfile | None:
    """Return the profile for user_id, or None when no profile document exists."""


class PushSender(Protocol):
  """Delivery contract for sending push notifications."""

  def send(self, message: DispatchMessage) -> str:
    """Send a push message synchronously and return the provider message id."""
