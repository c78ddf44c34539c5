"""Recipient lookups against the Firestore profile store."""

from __future__ import annotations

import logging

from google.cloud.firestore import Client as FirestoreClient
from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import ProfileLookupError, ProfileStore, RecipientProfile

logger = logging.getLogger(__name__)


class FirestoreProfileStore(ProfileStore):
  """Read push tokens from `{collection}/{userId}` documents."""

  def __init__(self, *, client: FirestoreClient, collection: str = "users", token_field: str = "fcmToken") -> None:
    self._client = client
    self._collection = collection
    self._token_field = token_field

  def get_profile(self, user_id: str) -> RecipientProfile | None:
    """Fetch the profile document; None when it does not exist."""
    try:
      snapshot = self._client.collection(self._collection).document(user_id).get()
    except Exception as exc:  # noqa: BLE001
      raise ProfileLookupError(f"Failed to read profile for user {user_id}: {exc}") from exc

    if not snapshot.exists:
      return None

    data = snapshot.to_dict() or {}
    token = data.get(self._token_field)
    # Treat blank or non-string tokens the same as a missing token.
    if not isinstance(token, str) or not token.strip():
      token = None

    return RecipientProfile(user_id=user_id, push_token=token)


class RecipientResolver:
  """Resolve a user's current push address without blocking the event loop."""

  def __init__(self, *, store: ProfileStore) -> None:
    self._store = store

  async def resolve(self, user_id: str) -> RecipientProfile | None:
    """Return the recipient profile, or None when the user has no profile document.

    Store failures surface as ProfileLookupError.
    """
    logger.info("Fetching user document for %s...", user_id)
    try:
      profile = await run_in_threadpool(self._store.get_profile, user_id)
    except ProfileLookupError:
      raise
    except Exception as exc:  # noqa: BLE001
      raise ProfileLookupError(f"Failed to read profile for user {user_id}: {exc}") from exc

    if profile is not None:
      logger.info("User %s found. Token exists: %s", user_id, bool(profile.push_token))

    return profile
