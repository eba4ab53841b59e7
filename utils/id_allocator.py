# =============================================================================
# 🆔 utils/id_allocator.py
# -----------------------------------------------------------------------------
# Vergibt eindeutige QR-IDs: Millisekunden-Zeitstempel + 9 Hex-Zeichen.
# Vor der Vergabe wird im Repository auf Kollision geprüft.
# =============================================================================

from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Optional

from utils.errors import AllocationExhausted

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


def generate_candidate() -> str:
    return f"{int(time.time() * 1000)}{uuid.uuid4().hex[:9]}"


class IdAllocator:
    def __init__(
        self,
        repo,
        generator: Optional[Callable[[], str]] = None,
        max_attempts: int = MAX_ATTEMPTS,
    ) -> None:
        self.repo = repo
        self.generator = generator or generate_candidate
        self.max_attempts = max_attempts

    def allocate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generator()
            if not self.repo.exists(candidate):
                return candidate
            logger.warning(f"⚠️ ID-Kollision ({candidate}), Versuch {attempt}/{self.max_attempts}")
        raise AllocationExhausted(self.max_attempts)
