import logging
import os
import sys

from app.core.env_contract import EnvContractError, validate_runtime_env_or_raise

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Validate configuration, then hand the process over to uvicorn."""
  try:
    validate_runtime_env_or_raise(logger=logger)
  except EnvContractError:
    logger.error("ERROR: refusing to start; fix the environment and retry.")
    sys.exit(1)

  port = os.getenv("PORT") or "3000"
  logger.info("Starting notification relay on port %s...", port)
  # Use os.execvp to replace the current process with uvicorn.
  # This ensures signals (SIGTERM, etc.) are handled correctly by uvicorn.
  args = ["uvicorn", "app.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"]
  os.execvp("uvicorn", args)


if __name__ == "__main__":
  main()
