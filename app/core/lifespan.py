import logging
import os
import signal
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import get_settings
from app.core.env_contract import EnvContractError, validate_runtime_env_or_raise
from app.core.firebase import initialize_firebase
from app.core.logging import _initialize_logging
from app.notifications.factory import build_listener_manager
from app.services.keepalive import KeepAlivePinger

logger = logging.getLogger("app.core.lifespan")


def _terminate_process(exc: BaseException) -> None:
  """Treat a lost feed subscription as fatal: ask uvicorn to shut the process down."""
  logger.critical("Change-feed connectivity lost; terminating process: %s", exc)
  os.kill(os.getpid(), signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Validate configuration, start the notification listeners and the keep-alive loop."""
  try:
    # Enforce startup env contracts before any Firebase client is created.
    validate_runtime_env_or_raise(logger=logger)
  except EnvContractError:
    # Fail-fast when required startup configuration is missing or invalid.
    logger.error("Environment contract failed; refusing to start the service.", exc_info=True)
    raise

  settings = get_settings()
  _initialize_logging(settings)

  initialize_firebase(settings)
  manager = build_listener_manager(settings, on_fatal=_terminate_process)
  # A failed top-level subscription is a connectivity fault; let startup fail.
  await manager.start()
  app.state.listener_manager = manager
  logger.info("Notification Server Started...")

  pinger: KeepAlivePinger | None = None
  if settings.keepalive_url:
    pinger = KeepAlivePinger(url=settings.keepalive_url, interval_seconds=settings.keepalive_interval_seconds)
    pinger.start()
    logger.info("Keep-alive ping scheduled every %ss to %s", settings.keepalive_interval_seconds, settings.keepalive_url)

  try:
    yield
  finally:
    if pinger is not None:
      await pinger.stop()
    await manager.stop()
