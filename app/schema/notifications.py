"""Pydantic model for notification records stored in the change-feed."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_TARGET_URL = "/"
DEFAULT_NOTIFICATION_TYPE = "info"


class NotificationRecord(BaseModel):
  """A pending notification at notifications/{userId}/{notificationId}."""

  title: str
  body: str
  link: str | None = None
  type: str | None = None
  timestamp: int
  processed: bool | None = None
  # Producers may attach extra fields; they are ignored.
  model_config = ConfigDict(extra="ignore", frozen=True)

  @field_validator("timestamp", mode="before")
  @classmethod
  def coerce_timestamp(cls, value: Any) -> Any:
    """Accept float epoch millis by truncating the fractional part."""
    if isinstance(value, float):
      return int(value)

    return value

  @property
  def target_url(self) -> str:
    """Return the link to open, falling back to the site root."""
    return self.link or DEFAULT_TARGET_URL

  @property
  def notification_type(self) -> str:
    return self.type or DEFAULT_NOTIFICATION_TYPE
