"""Build and send push messages for notification records."""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from app.config import DEFAULT_ICON_URL
from app.notifications.contracts import DispatchMessage, DispatchResult, InvalidPushTokenError, NotificationProviderError, PushSender
from app.schema.notifications import NotificationRecord

logger = logging.getLogger(__name__)


def build_dispatch_message(address: str, record: NotificationRecord, *, icon_url: str = DEFAULT_ICON_URL) -> DispatchMessage:
  """Build the data-only payload for a record; every value is a string as FCM requires."""
  target_url = record.target_url
  payload = {"title": record.title, "body": record.body, "url": target_url, "type": record.notification_type, "icon": icon_url}
  return DispatchMessage(address=address, payload=payload, delivery_hint=target_url)


class DispatchEngine:
  """Send one record to the push gateway and report Delivered or Failed without raising."""

  def __init__(self, *, sender: PushSender, icon_url: str = DEFAULT_ICON_URL) -> None:
    self._sender = sender
    self._icon_url = icon_url

  async def dispatch(self, address: str, record: NotificationRecord, *, user_id: str | None = None) -> DispatchResult:
    message = build_dispatch_message(address, record, icon_url=self._icon_url)
    try:
      logger.info("Sending FCM message to %s...", user_id or "<unknown user>")
      message_id = await run_in_threadpool(self._sender.send, message)
    except InvalidPushTokenError as exc:
      # Stale tokens are the client's to refresh; nothing is written back here.
      logger.warning("Push token rejected user_id=%s error=%s", user_id, exc)
      return DispatchResult(delivered=False, reason=str(exc))
    except NotificationProviderError as exc:
      logger.error("Push notification delivery failed (provider error) user_id=%s: %s", user_id, exc)
      return DispatchResult(delivered=False, reason=str(exc))
    except Exception as exc:  # noqa: BLE001
      logger.error("Push notification delivery failed user_id=%s: %s", user_id, exc, exc_info=True)
      return DispatchResult(delivered=False, reason=str(exc) or type(exc).__name__)

    logger.info("Successfully sent message: %s", message_id)
    return DispatchResult(delivered=True, message_id=message_id)
