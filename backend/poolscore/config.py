import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _parse_int(env_var: str, default: int, *, minimum: int = 0) -> int:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d",
            env_var,
            raw_value,
            default,
        )
        return default

    if value < minimum:
        logger.warning(
            "%s must be >= %d; defaulting to %d", env_var, minimum, default
        )
        return default

    return value


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

DEFAULT_TARGET_GOAL = _parse_int("DEFAULT_TARGET_GOAL", 125, minimum=1)
INTENTIONAL_FOUL_PENALTY = _parse_int("INTENTIONAL_FOUL_PENALTY", 2, minimum=1)

# Persisted in-progress match snapshots
SNAPSHOT_KEY = (os.getenv("SNAPSHOT_KEY") or "poolGame").strip() or "poolGame"
SNAPSHOT_DEBOUNCE_SECONDS = _parse_int("SNAPSHOT_DEBOUNCE_MS", 100) / 1000.0
SNAPSHOT_BACKEND = (os.getenv("SNAPSHOT_BACKEND") or "redis").strip().lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
