"""Temporary files tracked with an explicit expiry instead of timers."""

import os
import time
from typing import Callable, Dict, List, Optional

__all__ = [
    "TTL_TEMP_FILE",
    "ExpiringFileRegistry",
]

TTL_TEMP_FILE = 24 * 60 * 60  # 1 day


class ExpiringFileRegistry:
    """Files written under ``directory`` that are deleted once their TTL lapses.

    Expired entries are removed by :meth:`sweep`, which also runs on every
    :meth:`save` and :meth:`get`.
    """

    def __init__(
        self,
        directory: str = "/tmp",
        ttl: int = TTL_TEMP_FILE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.directory = directory
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Dict[str, object]] = {}

    def save(self, data: bytes, filename: str) -> str:
        self.sweep()
        path = os.path.join(self.directory, os.path.basename(filename))
        with open(path, "wb") as handle:
            handle.write(data)
        now = self._clock()
        self._entries[path] = {
            "path": path,
            "created_at": now,
            "expires_at": now + max(self.ttl, 0),
        }
        return path

    def get(self, filename: str) -> Optional[str]:
        self.sweep()
        path = os.path.join(self.directory, os.path.basename(filename))
        if path in self._entries and os.path.exists(path):
            return path
        return None

    def sweep(self) -> List[str]:
        now = self._clock()
        removed: List[str] = []
        for path, entry in list(self._entries.items()):
            if now < float(entry["expires_at"]):  # type: ignore[arg-type]
                continue
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                print(f"Error deleting temporary file {path}: {e}")
                continue
            del self._entries[path]
            removed.append(path)
        return removed

    def __len__(self) -> int:
        return len(self._entries)
