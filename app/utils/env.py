"""Local .env support for the relay.

The Firebase credential is a JSON document. Pasted into a .env file it is
usually quoted and often pretty-printed over several lines, so a quoted value
may continue until the line holding its closing quote. Escape sequences such
as the `\\n` inside `private_key` are kept verbatim for `json.loads`.
"""

from __future__ import annotations

import os
from pathlib import Path

_QUOTES = {'"', "'"}


def default_env_path() -> Path:
  """Return the .env path at the repo root."""
  return Path(__file__).resolve().parents[2] / ".env"


def parse_env_text(text: str) -> dict[str, str]:
  """Parse KEY=value lines, joining quoted values that span several lines."""
  values: dict[str, str] = {}
  lines = iter(text.splitlines())
  for raw_line in lines:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
      continue

    key, value = line.removeprefix("export ").split("=", 1)
    key = key.strip()
    value = value.strip()
    if not key:
      continue

    quote = value[:1]
    if quote in _QUOTES:
      # Keep reading until the closing quote; an unterminated value runs to the end of the file.
      parts = [value[1:]]
      while not parts[-1].endswith(quote):
        next_line = next(lines, None)
        if next_line is None:
          break
        parts.append(next_line.rstrip())
      value = "\n".join(parts)
      if value.endswith(quote):
        value = value[:-1]

    values[key] = value

  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export the file's values into os.environ and return the keys that were set.

  Variables already present in the environment win unless override is set.
  """
  if not path.is_file():
    return []

  loaded: list[str] = []
  for key, value in parse_env_text(path.read_text(encoding="utf-8")).items():
    if not override and key in os.environ:
      continue
    os.environ[key] = value
    loaded.append(key)

  return loaded
