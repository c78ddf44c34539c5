import logging

import firebase_admin
from app.config import Settings, get_settings
from firebase_admin import credentials, firestore
from google.cloud.firestore import Client as FirestoreClient

logger = logging.getLogger(__name__)


def initialize_firebase(settings: Settings | None = None) -> None:
  """Initializes the Firebase Admin SDK with the service-account credential and database URL."""
  if firebase_admin._apps:
    return

  settings = settings or get_settings()
  # A bad credential is a configuration fault; let it propagate so startup fails.
  cred = credentials.Certificate(settings.firebase_service_account)
  firebase_admin.initialize_app(cred, {"databaseURL": settings.firebase_database_url})
  logger.info("Firebase Admin SDK initialized for project %s.", settings.firebase_service_account.get("project_id", "<unknown>"))


def get_firestore_client() -> FirestoreClient:
  """Returns a Firestore client instance. Lazily initializes if needed."""
  if not firebase_admin._apps:
    initialize_firebase()

  return firestore.client()
