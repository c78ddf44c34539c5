"""Push notification delivery implementations."""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlparse

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from app.notifications.contracts import DispatchMessage, InvalidPushTokenError, PushProviderError, PushSender

logger = logging.getLogger(__name__)

_INVALID_TOKEN_ERRORS: tuple[type[Exception], ...] = (messaging.UnregisteredError, messaging.SenderIdMismatchError, firebase_exceptions.InvalidArgumentError)


class FcmPushSender(PushSender):
  """Firebase Cloud Messaging sender for data-only Web Push messages."""

  def __init__(self, *, app_base_url: str | None = None) -> None:
    self._app_base_url = app_base_url

  def build_message(self, message: DispatchMessage) -> messaging.Message:
    """Translate a dispatch message into an FCM message without a notification block."""
    # Leaving `notification` unset keeps the payload silent so the client renders it.
    webpush = None
    link = resolve_delivery_link(message.delivery_hint, self._app_base_url)
    if link is not None:
      webpush = messaging.WebpushConfig(fcm_options=messaging.WebpushFCMOptions(link=link))

    return messaging.Message(token=message.address, data=dict(message.payload), webpush=webpush)

  def send(self, message: DispatchMessage) -> str:
    """Send through FCM and classify provider failures."""
    fcm_message = self.build_message(message)
    try:
      return messaging.send(fcm_message)
    except _INVALID_TOKEN_ERRORS as exc:
      raise InvalidPushTokenError(f"Push token rejected by FCM ({type(exc).__name__}): {exc}") from exc
    except firebase_exceptions.FirebaseError as exc:
      raise PushProviderError(f"FCM delivery failed ({exc.code}): {exc}") from exc
    except ValueError as exc:
      # The SDK validates payload shape locally before any network call.
      raise PushProviderError(f"FCM rejected message payload: {exc}") from exc


class NullPushSender(PushSender):
  """No-op push sender used for dry runs."""

  def send(self, message: DispatchMessage) -> str:
    """Drop the message while recording a debug log."""
    logger.info("Push dry run enabled; dropping message title=%s token_present=%s", message.payload.get("title"), bool(message.address))
    return "dry-run"


def resolve_delivery_link(hint: str, base_url: str | None) -> str | None:
  """Return an absolute HTTPS link for the Web Push click action, or None if one cannot be formed.

  FCM only accepts HTTPS links for `webpush.fcm_options.link`, so relative
  targets such as "/" are resolved against the app base URL.
  """
  candidate = urljoin(base_url.rstrip("/") + "/", hint) if base_url else hint
  parsed = urlparse(candidate)
  if parsed.scheme != "https" or not parsed.netloc:
    return None

  return candidate
