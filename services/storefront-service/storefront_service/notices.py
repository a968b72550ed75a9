from __future__ import annotations

import logging

from .schemas import Notice

logger = logging.getLogger("storefront-service.notices")

OFFLINE_NOTICE = "Backend server is not available. Using offline data."

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class NoticeBoard:
    """Non-fatal messages for the UI to show as toasts."""

    def __init__(self) -> None:
        self._pending: list[Notice] = []

    def post(self, level: str, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self._pending.append(notice)
        logger.log(_LOG_LEVELS[level], message)
        return notice

    def info(self, message: str) -> Notice:
        return self.post("info", message)

    def success(self, message: str) -> Notice:
        return self.post("success", message)

    def warning(self, message: str) -> Notice:
        return self.post("warning", message)

    def error(self, message: str) -> Notice:
        return self.post("error", message)

    def peek(self) -> list[Notice]:
        return list(self._pending)

    def drain(self) -> list[Notice]:
        notices, self._pending = self._pending, []
        return notices


class ConnectionState:
    """Degraded-mode flag shared by everything that talks to the WildEats API.

    Any call that finds the API unreachable marks the state degraded and posts
    a warning; the next successful call from any store clears it.
    """

    def __init__(self, notices: NoticeBoard) -> None:
        self._notices = notices
        self._degraded = False

    @property
    def degraded(self) -> bool:
        return self._degraded

    def mark_online(self) -> None:
        if self._degraded:
            logger.info("WildEats API reachable again, leaving degraded mode")
        self._degraded = False

    def mark_degraded(self, message: str = OFFLINE_NOTICE) -> None:
        if not self._degraded:
            logger.warning("WildEats API unreachable, entering degraded mode")
        self._degraded = True
        self._notices.warning(message)
