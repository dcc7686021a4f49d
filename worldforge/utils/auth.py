import os
import time
from typing import List, Optional

from dotenv import load_dotenv

from worldforge.config import get_settings
from worldforge.utils.logging_config import get_logger

load_dotenv()

# Silence "Both GOOGLE_API_KEY and GEMINI_API_KEY are set" warning
if "GEMINI_API_KEY" in os.environ:
    del os.environ["GEMINI_API_KEY"]

logger = get_logger("worldforge.auth")


def _keys_from_env() -> List[str]:
    keys_str = os.getenv("GOOGLE_API_KEYS", "")
    if keys_str:
        return [k.strip() for k in keys_str.split(",") if k.strip()]
    single_key = os.getenv("GOOGLE_API_KEY")
    if single_key:
        return [single_key]
    raise ValueError("No GOOGLE_API_KEYS or GOOGLE_API_KEY found in environment.")


class KeyRotator:
    """Round-robin over API keys, skipping keys that hit a rate limit recently."""

    def __init__(self, keys: Optional[List[str]] = None, clock=time.time, sleep=time.sleep):
        self.keys = list(keys) if keys else _keys_from_env()
        self._clock = clock
        self._sleep = sleep
        self._cooldowns = {k: 0.0 for k in self.keys}
        self._current_index = 0

    def get_next_key(self) -> str:
        # Try to find a key not in cooldown
        for _ in range(len(self.keys)):
            key = self.keys[self._current_index]
            self._current_index = (self._current_index + 1) % len(self.keys)

            if self._clock() > self._cooldowns[key]:
                logger.debug("Selected key: %s...", key[:8])
                return key

        # All keys in cooldown, wait for the one that frees up first
        best_key = min(self._cooldowns, key=self._cooldowns.get)
        wait_time = max(0.1, self._cooldowns[best_key] - self._clock())
        logger.warning("All keys exhausted. Waiting %.1fs for earliest key...", wait_time)
        self._sleep(wait_time)
        return best_key

    def mark_exhausted(self, key: str, duration: Optional[int] = None):
        if duration is None:
            duration = get_settings().key_cooldown_seconds
        logger.info("Marking key %s... as exhausted for %ds.", key[:8], duration)
        self._cooldowns[key] = self._clock() + duration


_rotator: Optional[KeyRotator] = None


def get_rotator() -> KeyRotator:
    global _rotator
    if _rotator is None:
        _rotator = KeyRotator()
    return _rotator


def get_api_key() -> str:
    return get_rotator().get_next_key()


def mark_key_exhausted(key: str):
    get_rotator().mark_exhausted(key)
