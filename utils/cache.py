import hashlib
import json
import time
from pathlib import Path
from typing import Optional
from utils.logger import logger


class Cache:
    """
    A simple file-based cache for API responses that change rarely,
    such as the model catalog.
    """

    def __init__(self, cache_dir: str, ttl_sec: int):
        """
        Initializes the cache.

        Args:
            cache_dir: The directory to store cache files.
            ttl_sec: The time-to-live for cache entries in seconds. If <= 0, cache is disabled.
        """
        self.cache_dir = Path(cache_dir).expanduser()
        self.ttl_sec = ttl_sec
        if self.is_enabled():
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Could not create cache directory at {self.cache_dir}: {e}. Caching will be disabled.")
                self.ttl_sec = 0

    def is_enabled(self) -> bool:
        """Checks if the cache is enabled."""
        return self.ttl_sec > 0

    def _get_key(self, name: str) -> str:
        return hashlib.sha256(name.encode("utf-8")).hexdigest()

    def get(self, name: str) -> Optional[str]:
        """
        Retrieves an item from the cache if it exists and is not expired.

        Returns:
            The cached string, or None if not found or expired.
        """
        if not self.is_enabled():
            return None

        key = self._get_key(name)
        cache_file = self.cache_dir / key
        if not cache_file.exists():
            logger.debug(f"Cache miss (key not found): {name}")
            return None

        try:
            with open(cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)

            timestamp = data.get("timestamp", 0)
            if time.time() - timestamp > self.ttl_sec:
                logger.debug(f"Cache miss (expired): {name}")
                cache_file.unlink()
                return None

            logger.debug(f"Cache hit: {name}")
            return data.get("value")
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read or decode cache file {cache_file}: {e}")
            return None

    def set(self, name: str, value: str):
        """Saves an item to the cache under the given name."""
        if not self.is_enabled():
            return

        cache_file = self.cache_dir / self._get_key(name)
        data = {
            "timestamp": time.time(),
            "value": value
        }
        try:
            with open(cache_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            logger.debug(f"Cached new item: {name}")
        except OSError as e:
            logger.warning(f"Could not write to cache file {cache_file}: {e}")
