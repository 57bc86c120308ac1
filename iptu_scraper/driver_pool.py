from __future__ import annotations

import logging
from typing import List

from .errors import PoolStartupError, SessionError
from .session import SessionFactory, SessionSlot, fingerprint_for

logger = logging.getLogger(__name__)


class DriverPool:
    """Fixed arena of indexed session slots.

    Slots are created eagerly. The engine assigns at most one task per slot
    index per chunk, so the pool itself takes no locks. A slot marked broken
    is recreated the next time it is borrowed."""

    def __init__(self, size: int, factory: SessionFactory) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._slots: List[SessionSlot] = [
            SessionSlot(i, fingerprint_for(i), factory) for i in range(size)
        ]
        self._closed = False
        self._start()

    def _start(self) -> None:
        ready = 0
        for slot in self._slots:
            try:
                slot.open()
                ready += 1
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not create session slot %d: %s", slot.index, exc)
        if ready == 0:
            raise PoolStartupError(f"none of the {len(self._slots)} browser sessions could be created")
        if ready < len(self._slots):
            logger.warning("Driver pool started with %d/%d sessions", ready, len(self._slots))

    @property
    def size(self) -> int:
        return len(self._slots)

    @property
    def closed(self) -> bool:
        return self._closed

    def borrow(self, index: int) -> SessionSlot:
        """Return slot ``index``, recreating its session if it was marked broken."""
        if self._closed:
            raise SessionError("driver pool is shut down")
        slot = self._slots[index]
        if slot.broken:
            logger.info("Recreating session slot %d", index)
            slot.open()
        return slot

    def mark_broken(self, index: int) -> None:
        self._slots[index].mark_broken()

    def shutdown(self) -> None:
        """Close every session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for slot in self._slots:
            slot.close()
        logger.info("Driver pool shut down")

    def __enter__(self) -> "DriverPool":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
