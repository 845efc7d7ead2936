"""Signal bus: per-pot, single-slot, best-effort stop/resume channels.

Every pot gets its own slot in each channel, so a stop addressed to pot A
can never be consumed by pot B's capture task.  Sends and receives never
block: a send into an occupied slot is dropped (the pending signal already
says the same thing) and a receive from an empty slot returns ``False``.
A slot is created by the first send to its pot and dropped by ``discard``
once the pot is gone.
"""

from __future__ import annotations

import logging
import queue
import threading

logger = logging.getLogger(__name__)


class SignalChannel:
    """A keyed map of capacity-1 queues, one per pot name."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._slots: dict[str, queue.Queue[str]] = {}
        self._lock = threading.Lock()

    def _slot(self, pot_name: str) -> queue.Queue[str]:
        with self._lock:
            slot = self._slots.get(pot_name)
            if slot is None:
                slot = queue.Queue(maxsize=1)
                self._slots[pot_name] = slot
            return slot

    # ------------------------------------------------------------------
    # Send / receive
    # ------------------------------------------------------------------

    def send(self, pot_name: str) -> bool:
        """Post a signal for *pot_name*.

        Returns ``True`` if delivered to the slot, ``False`` if the slot
        already held a pending signal and this one was dropped.
        """
        try:
            self._slot(pot_name).put_nowait(pot_name)
        except queue.Full:
            logger.warning(
                "%s signal for pot %s dropped: a signal is already pending",
                self.name,
                pot_name,
            )
            return False
        logger.debug("%s signal sent for pot %s", self.name, pot_name)
        return True

    def poll(self, pot_name: str) -> bool:
        """Consume the pending signal for *pot_name*, if any."""
        with self._lock:
            slot = self._slots.get(pot_name)
        if slot is None:
            return False
        try:
            slot.get_nowait()
        except queue.Empty:
            return False
        return True

    def drain(self, pot_name: str) -> int:
        """Discard any stale signal for *pot_name*; return how many."""
        drained = 0
        while self.poll(pot_name):
            drained += 1
        return drained

    def discard(self, pot_name: str) -> int:
        """Drop *pot_name*'s slot; return how many pending signals went with it."""
        with self._lock:
            slot = self._slots.pop(pot_name, None)
        return 0 if slot is None else slot.qsize()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_pending(self, pot_name: str) -> bool:
        with self._lock:
            slot = self._slots.get(pot_name)
        return slot is not None and not slot.empty()

    def slots(self) -> list[str]:
        """Pot names that currently own a slot."""
        with self._lock:
            return sorted(self._slots)

    def pending(self) -> list[str]:
        """Pot names that currently have a signal waiting."""
        with self._lock:
            slots = list(self._slots.items())
        return sorted(name for name, slot in slots if not slot.empty())


class SignalBus:
    """The two channels coordinating capture lifecycle with rotation."""

    def __init__(self) -> None:
        self.stop = SignalChannel("stop")
        self.resume = SignalChannel("resume")
