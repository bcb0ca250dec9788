"""In-memory gate for unsolicited group replies."""

import time
from typing import Any, Callable, Dict, Optional

GROUP_COOLDOWN_SECONDS = 2 * 60


class CooldownGate:
    """Allow at most one reply per chat every ``interval`` seconds.

    State lives in process memory only and is lost on restart.
    """

    def __init__(
        self,
        interval: float = GROUP_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._last_reply: Dict[str, float] = {}

    def allow(self, chat_id: Any) -> bool:
        key = str(chat_id)
        now = self._clock()
        last = self._last_reply.get(key)
        if last is None or now - last > self.interval:
            self._last_reply[key] = now
            return True
        return False

    def last_reply(self, chat_id: Any) -> Optional[float]:
        return self._last_reply.get(str(chat_id))

    def reset(self) -> None:
        self._last_reply.clear()
