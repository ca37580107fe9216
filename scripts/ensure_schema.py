"""Bring the database schema up to date before the service starts.

Runs `alembic upgrade head` with a bounded number of retries and exponential backoff.
The script always exits 0 so orchestrators relying on health checks can still start
the service; operators diagnose failures from the logs.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import time
from collections.abc import Callable, Sequence
from pathlib import Path

logger = logging.getLogger("scripts.ensure_schema")

MAX_ATTEMPTS = 3
BASE_DELAY_SECONDS = 2.0
COMMAND_TIMEOUT_SECONDS = 30
REPO_ROOT = Path(__file__).resolve().parents[1]


def _upgrade_command() -> list[str]:
  return [sys.executable, "-m", "alembic", "upgrade", "head"]


def _run_upgrade(command: Sequence[str]) -> None:
  subprocess.run(list(command), check=True, cwd=REPO_ROOT, timeout=COMMAND_TIMEOUT_SECONDS)


def ensure_schema(*, run: Callable[[Sequence[str]], None] = _run_upgrade, sleep: Callable[[float], None] = time.sleep) -> bool:
  """Return True once the upgrade succeeds, False after all attempts failed."""
  command = _upgrade_command()
  for attempt in range(1, MAX_ATTEMPTS + 1):
    logger.info("Attempt %s/%s: %s", attempt, MAX_ATTEMPTS, " ".join(command[1:]))
    try:
      run(command)
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
      logger.error("Attempt %s failed: %s", attempt, exc)
      if attempt < MAX_ATTEMPTS:
        delay = BASE_DELAY_SECONDS * (2 ** (attempt - 1))
        logger.info("Retrying in %.0fs...", delay)
        sleep(delay)
      continue

    logger.info("Schema upgrade succeeded.")
    return True

  logger.error("All attempts failed. The service will start without a schema upgrade.")
  logger.error("Run `python -m alembic current` against TASKNATOR_PG_DSN to diagnose, then `python -m alembic upgrade head` to recover.")
  return False


def main() -> None:
  logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
  ensure_schema()
  sys.exit(0)


if __name__ == "__main__":
  main()
