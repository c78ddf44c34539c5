"""Periodic self-ping that keeps idle-sleeping hosts awake."""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class KeepAlivePinger:
  """GET a URL on a fixed interval and log the result; failures never stop the loop."""

  def __init__(self, *, url: str, interval_seconds: float, timeout_seconds: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self.url = url
    self.interval_seconds = interval_seconds
    self._timeout_seconds = timeout_seconds
    self._transport = transport
    self._task: asyncio.Task[None] | None = None

  async def ping_once(self) -> int | None:
    """Send one ping and return the status code, or None when the request failed."""
    logger.info("Sending keep-alive ping to %s", self.url)
    try:
      async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout_seconds, follow_redirects=True) as client:
        response = await client.get(self.url)
    except httpx.HTTPError as exc:
      logger.error("Keep-alive ping failed: %s", exc)
      return None

    logger.info("Keep-alive ping status: %s", response.status_code)
    return response.status_code

  async def run(self) -> None:
    while True:
      await asyncio.sleep(self.interval_seconds)
      await self.ping_once()

  def start(self) -> asyncio.Task[None]:
    if self._task is None or self._task.done():
      self._task = asyncio.get_running_loop().create_task(self.run())
    return self._task

  async def stop(self) -> None:
    task, self._task = self._task, None
    if task is None:
      return
    task.cancel()
    try:
      await task
    except asyncio.CancelledError:
      pass
