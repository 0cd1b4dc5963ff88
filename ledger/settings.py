"""
ledger/settings.py

Environment-driven configuration.

Variables
---------
LEDGER_DB_PATH       SQLite file (see storage.db.default_db_path)
LEDGER_OWNER         Identity of the admin authority (required by from_env)
LEDGER_START_HEIGHT  Initial logical clock height, default 0
"""

import logging
import os
from functools import lru_cache

logger = logging.getLogger(__name__)

_ENV_OWNER = "LEDGER_OWNER"
_ENV_START_HEIGHT = "LEDGER_START_HEIGHT"


@lru_cache(maxsize=1)
def get_owner() -> str:
    """
    Return the owner identity from ``LEDGER_OWNER``.

    Raises:
        RuntimeError: If the variable is unset or empty.
    """
    owner = os.environ.get(_ENV_OWNER, "").strip()
    if not owner:
        raise RuntimeError(
            f"{_ENV_OWNER} environment variable is not set. "
            "The ledger needs a fixed owner identity at initialisation."
        )
    logger.debug("Owner identity loaded from '%s'.", _ENV_OWNER)
    return owner


@lru_cache(maxsize=1)
def get_start_height() -> int:
    """Return ``LEDGER_START_HEIGHT`` as an int (default 0)."""
    raw = os.environ.get(_ENV_START_HEIGHT)
    if not raw:
        return 0
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{_ENV_START_HEIGHT} must be an integer, got '{raw}'") from exc
