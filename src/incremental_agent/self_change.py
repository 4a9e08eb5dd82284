"""Suppression of changes caused by the scanner's own writes."""

import logging
import os
import threading
import time
from collections import OrderedDict
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

_SEPARATORS = tuple({"/", os.sep})


def prefix_matches(prefix: str, path: str) -> bool:
    """
    Check whether a path falls under a registered prefix.

    A prefix matches itself exactly or as a directory, so ``/a/b`` covers
    ``/a/b/c`` but not ``/a/bc``. A trailing separator is optional:
    ``/a/b/`` also covers the directory ``/a/b`` itself.
    """
    if path == prefix:
        return True
    if prefix.endswith(_SEPARATORS):
        return path.startswith(prefix) or path == prefix.rstrip("".join(_SEPARATORS))
    return any(path.startswith(prefix + sep) for sep in _SEPARATORS)


class SelfChangeFilter:
    """
    Registry of (path prefix, expiry) pairs the scanner populates before
    writing, so those writes are not reported back as changes.

    Entries expire lazily on lookup and in bulk via sweep(). The registry
    is capped; registering past the cap evicts the oldest registration.
    """

    def __init__(self, default_ttl: float = 30.0, max_entries: int = 10000):
        """
        Initialize the filter.

        Args:
            default_ttl: Seconds an entry lives when no ttl is given
            max_entries: Registry cap, oldest-first eviction beyond it
        """
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be positive: {default_ttl}")
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive: {max_entries}")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def register(
        self,
        path_prefix: str,
        ttl: Optional[float] = None,
        now: Optional[float] = None,
    ) -> float:
        """
        Add or refresh a suppression entry.

        Args:
            path_prefix: Path or directory prefix to suppress
            ttl: Lifetime in seconds (defaults to default_ttl)
            now: Current timestamp

        Returns:
            The expiry timestamp of the entry
        """
        if not path_prefix:
            raise ValueError("path_prefix must not be empty")
        if ttl is None:
            ttl = self.default_ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be positive: {ttl}")
        now = time.time() if now is None else now
        expiry = now + ttl

        with self._lock:
            self._entries.pop(path_prefix, None)
            self._entries[path_prefix] = expiry
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.warning(f"Self-change registry full, evicted oldest entry: {evicted}")

        logger.debug(f"Registered self-change {path_prefix} until {expiry:.3f}")
        return expiry

    def should_drop(self, path: str, now: Optional[float] = None) -> bool:
        """
        Check whether an event for path was caused by the scanner.

        Args:
            path: Path of the incoming event
            now: Current timestamp

        Returns:
            True if a live entry covers the path
        """
        now = time.time() if now is None else now

        with self._lock:
            if not self._entries:
                return False

            expired: List[str] = []
            matched = False
            for prefix, expiry in self._entries.items():
                if expiry <= now:
                    expired.append(prefix)
                    continue
                if prefix_matches(prefix, path):
                    matched = True
                    break

            for prefix in expired:
                del self._entries[prefix]

            return matched

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Remove all expired entries.

        Args:
            now: Current timestamp

        Returns:
            Number of entries removed
        """
        now = time.time() if now is None else now

        with self._lock:
            expired = [p for p, expiry in self._entries.items() if expiry <= now]
            for prefix in expired:
                del self._entries[prefix]

        if expired:
            logger.debug(f"Swept {len(expired)} expired self-change entries")
        return len(expired)

    def entries(self) -> Dict[str, float]:
        """Get a copy of the registry (prefix -> expiry)."""
        with self._lock:
            return dict(self._entries)

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
