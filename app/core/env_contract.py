"""Runtime environment contract checks for the relay process.

How/Why:
- Keep runtime configuration explicit so deploy-time mistakes fail immediately.
- Prevent secret leakage by redacting sensitive values in startup logs.
- Share one registry between the entrypoint script and the ASGI lifespan.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

EnvValidator = Callable[[str, dict[str, str]], str | None]


@dataclass(frozen=True)
class EnvVarDefinition:
  """Describe how an environment variable must be validated."""

  name: str
  required: bool
  secret: bool
  validator: EnvValidator | None = None


class EnvContractError(RuntimeError):
  """Raised when required runtime environment keys are missing or invalid."""


def _validate_service_account(value: str, _: dict[str, str]) -> str | None:
  """Ensure the credential blob decodes to a service-account JSON object."""
  try:
    parsed = json.loads(value)
  except json.JSONDecodeError:
    return "must be valid JSON."

  if not isinstance(parsed, dict):
    return "must be a JSON object."

  # Certificate credentials cannot be built without these keys.
  missing = [key for key in ("project_id", "private_key", "client_email") if not parsed.get(key)]
  if missing:
    return f"missing keys: {', '.join(missing)}."

  return None


def _validate_https_url(value: str, _: dict[str, str]) -> str | None:
  parsed = urlparse(value.strip())
  if parsed.scheme != "https" or not parsed.netloc:
    return "must be an https URL."

  return None


def _validate_port(value: str, _: dict[str, str]) -> str | None:
  """Reject ports that uvicorn cannot bind."""
  try:
    port = int(value)
  except ValueError:
    return "must be an integer."

  if not 0 < port < 65536:
    return "must be between 1 and 65535."

  return None


def _validate_positive_int(value: str, _: dict[str, str]) -> str | None:
  try:
    parsed = int(value)
  except ValueError:
    return "must be an integer."

  if parsed <= 0:
    return "must be a positive integer."

  return None


REQUIRED_ENV_REGISTRY: tuple[EnvVarDefinition, ...] = (
  EnvVarDefinition(name="FIREBASE_SERVICE_ACCOUNT", required=True, secret=True, validator=_validate_service_account),
  EnvVarDefinition(name="FIREBASE_DATABASE_URL", required=False, secret=False, validator=_validate_https_url),
  EnvVarDefinition(name="PORT", required=False, secret=False, validator=_validate_port),
  EnvVarDefinition(name="RELAY_ENV", required=False, secret=False),
  EnvVarDefinition(name="RELAY_STALENESS_WINDOW_MS", required=False, secret=False, validator=_validate_positive_int),
  EnvVarDefinition(name="RELAY_KEEPALIVE_URL", required=False, secret=False),
)


def list_required_env_names() -> tuple[str, ...]:
  """Expose required key names for deploy automation and script guardrails."""
  return tuple(definition.name for definition in REQUIRED_ENV_REGISTRY if definition.required)


def validate_env_values(*, env_map: dict[str, str]) -> list[str]:
  """Validate a provided env map against contract rules."""
  errors: list[str] = []
  for definition in REQUIRED_ENV_REGISTRY:
    value = env_map.get(definition.name, "")
    if definition.required and value.strip() == "":
      errors.append(f"{definition.name}: required variable is missing.")
      continue

    if definition.validator and value.strip() != "":
      validation_error = definition.validator(value, env_map)
      if validation_error:
        errors.append(f"{definition.name}: {validation_error}")

  return errors


def validate_runtime_env_or_raise(*, logger: logging.Logger) -> None:
  """Validate and log runtime env values using the centralized contract."""
  resolved_values: dict[str, str] = {}
  for definition in REQUIRED_ENV_REGISTRY:
    value = os.getenv(definition.name, "")
    resolved_values[definition.name] = value
    if definition.secret:
      logger.info("ENV_CHECK key=%s value=%s", definition.name, "<redacted>" if value else "<missing>")
    else:
      if value == "":
        logger.info("ENV_CHECK key=%s value=<missing>", definition.name)
      else:
        logger.info("ENV_CHECK key=%s value=%s", definition.name, value)

  errors = validate_env_values(env_map=resolved_values)

  if not errors:
    logger.info("ENV_CHECK status=ok checked=%d", len(REQUIRED_ENV_REGISTRY))
    return

  message = "ENV_CHECK status=failed violations:\n- {errors}".format(errors="\n- ".join(errors))
  logger.error(message)
  raise EnvContractError(message)
