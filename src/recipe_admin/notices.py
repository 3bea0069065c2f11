from __future__ import annotations

import logging
from typing import Optional

from .models import Notice

logger = logging.getLogger(__name__)


class NoticeBoard:
    """Holds the single dismissible error message shown to the operator."""

    def __init__(self) -> None:
        self._current: Optional[Notice] = None

    @property
    def current(self) -> Optional[Notice]:
        return self._current

    def report(self, source: str, message: str) -> Notice:
        # A newer message replaces the older one.
        notice = Notice(message=message, source=source)
        self._current = notice
        logger.error(f"[{source}] {message}")
        return notice

    def dismiss(self) -> None:
        self._current = None
