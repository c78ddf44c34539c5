"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_DATABASE_URL = "https://education-ai-af34e-default-rtdb.firebaseio.com"
DEFAULT_ICON_URL = "https://educationfyp.vercel.app/report.png"
DEFAULT_STALENESS_WINDOW_MS = 5 * 60 * 1000
DEFAULT_KEEPALIVE_INTERVAL_SECONDS = 14 * 60


@dataclass(frozen=True)
class Settings:
  """Typed settings for the notification relay."""

  environment: str
  debug: bool
  port: int
  firebase_service_account: dict[str, Any] = field(hash=False, repr=False)
  firebase_database_url: str
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  notifications_path: str
  profile_collection: str
  push_token_field: str
  staleness_window_ms: int
  notification_icon_url: str
  app_base_url: str | None
  push_dry_run: bool
  keepalive_url: str | None
  keepalive_interval_seconds: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _parse_positive_int(name: str, raw: str | None, default: int) -> int:
  if raw is None or raw.strip() == "":
    return default

  value = int(raw)
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")

  return value


def parse_service_account(raw: str | None) -> dict[str, Any]:
  """Decode the service-account JSON blob; raise ValueError when missing or malformed."""
  if raw is None or raw.strip() == "":
    raise ValueError("FIREBASE_SERVICE_ACCOUNT environment variable is missing.")

  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError as exc:
    raise ValueError(f"FIREBASE_SERVICE_ACCOUNT is not valid JSON: {exc.msg}.") from exc

  if not isinstance(parsed, dict):
    raise ValueError("FIREBASE_SERVICE_ACCOUNT must be a JSON object.")

  return parsed


def _origin_of(url: str) -> str | None:
  parsed = urlparse(url)
  if not parsed.scheme or not parsed.netloc:
    return None
  return f"{parsed.scheme}://{parsed.netloc}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("RELAY_ENV", "development").lower()
  debug = _parse_bool(os.getenv("RELAY_DEBUG"))
  port = _parse_positive_int("PORT", os.getenv("PORT"), 3000)

  # The credential blob is the only hard requirement; everything else has a default.
  firebase_service_account = parse_service_account(os.getenv("FIREBASE_SERVICE_ACCOUNT"))
  firebase_database_url = (os.getenv("FIREBASE_DATABASE_URL") or DEFAULT_DATABASE_URL).strip()

  log_max_bytes = _parse_positive_int("RELAY_LOG_MAX_BYTES", os.getenv("RELAY_LOG_MAX_BYTES"), 5242880)  # 5MB default
  log_backup_count = int(os.getenv("RELAY_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("RELAY_LOG_BACKUP_COUNT must be zero or a positive integer.")

  notifications_path = (os.getenv("RELAY_NOTIFICATIONS_PATH") or "notifications").strip().strip("/")
  if not notifications_path:
    raise ValueError("RELAY_NOTIFICATIONS_PATH must not be empty.")

  staleness_window_ms = _parse_positive_int("RELAY_STALENESS_WINDOW_MS", os.getenv("RELAY_STALENESS_WINDOW_MS"), DEFAULT_STALENESS_WINDOW_MS)

  notification_icon_url = (os.getenv("RELAY_NOTIFICATION_ICON_URL") or DEFAULT_ICON_URL).strip()
  # Delivery hints default to the site that hosts the notification icon.
  app_base_url = _optional_str(os.getenv("RELAY_APP_BASE_URL")) or _origin_of(notification_icon_url)

  keepalive_url = _optional_str(os.getenv("RELAY_KEEPALIVE_URL"))
  if keepalive_url and urlparse(keepalive_url).scheme not in {"http", "https"}:
    raise ValueError("RELAY_KEEPALIVE_URL must be an http(s) URL.")

  keepalive_interval_seconds = _parse_positive_int("RELAY_KEEPALIVE_INTERVAL_SECONDS", os.getenv("RELAY_KEEPALIVE_INTERVAL_SECONDS"), DEFAULT_KEEPALIVE_INTERVAL_SECONDS)

  return Settings(
    environment=environment,
    debug=debug,
    port=port,
    firebase_service_account=firebase_service_account,
    firebase_database_url=firebase_database_url,
    log_dir=_optional_str(os.getenv("RELAY_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    notifications_path=notifications_path,
    profile_collection=(os.getenv("RELAY_PROFILE_COLLECTION") or "users").strip(),
    push_token_field=(os.getenv("RELAY_PUSH_TOKEN_FIELD") or "fcmToken").strip(),
    staleness_window_ms=staleness_window_ms,
    notification_icon_url=notification_icon_url,
    app_base_url=app_base_url,
    push_dry_run=_parse_bool(os.getenv("RELAY_PUSH_DRY_RUN")),
    keepalive_url=keepalive_url,
    keepalive_interval_seconds=keepalive_interval_seconds,
  )


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
