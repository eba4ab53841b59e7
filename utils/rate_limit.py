# =============================================================================
# ⏱️ utils/rate_limit.py
# -----------------------------------------------------------------------------
# Login-Sperre pro Client (IP): nach N Fehlversuchen für X Minuten gesperrt.
# Zustand liegt nur im Speicher (app.state), die Uhr ist injizierbar.
# =============================================================================

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict

from utils.errors import RateLimited

logger = logging.getLogger(__name__)


@dataclass
class _Attempts:
    count: int
    last_attempt: float


class LoginRateLimiter:
    def __init__(
        self,
        max_attempts: int = 5,
        lockout_seconds: int = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self.clock = clock
        self._attempts: Dict[str, _Attempts] = {}

    def _remaining(self, attempts: _Attempts, now: float) -> float:
        return self.lockout_seconds - (now - attempts.last_attempt)

    def check(self, client: str) -> None:
        """Wirft RateLimited, solange der Client gesperrt ist."""
        attempts = self._attempts.get(client)
        if attempts is None or attempts.count < self.max_attempts:
            return
        remaining = self._remaining(attempts, self.clock())
        if remaining > 0:
            raise RateLimited(math.ceil(remaining))
        # Sperre abgelaufen
        del self._attempts[client]

    def record(self, client: str, success: bool) -> None:
        if success:
            self._attempts.pop(client, None)
            return
        now = self.clock()
        attempts = self._attempts.get(client)
        if attempts is None:
            self._attempts[client] = _Attempts(count=1, last_attempt=now)
        else:
            attempts.count += 1
            attempts.last_attempt = now
        if self._attempts[client].count >= self.max_attempts:
            logger.warning(f"🔒 Login gesperrt für {client}")

    def is_locked(self, client: str) -> bool:
        attempts = self._attempts.get(client)
        return (
            attempts is not None
            and attempts.count >= self.max_attempts
            and self._remaining(attempts, self.clock()) > 0
        )

    def stats(self) -> Dict[str, object]:
        return {
            "total_failed_attempts": sum(a.count for a in self._attempts.values()),
            "currently_locked": sum(1 for client in self._attempts if self.is_locked(client)),
            "lockout_settings": {
                "max_attempts": self.max_attempts,
                "lockout_minutes": self.lockout_seconds // 60,
            },
        }

    def clear(self) -> int:
        cleared = len(self._attempts)
        self._attempts.clear()
        logger.info(f"🧹 Login-Versuche gelöscht: {cleared}")
        return cleared
