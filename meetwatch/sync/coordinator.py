"""Per-mailbox serialization of sync runs with burst coalescing."""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from meetwatch.models.sync import SyncResult
from meetwatch.sync.engine import SyncEngine
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.sync.coordinator")


@dataclass
class _MailboxSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    rerun: bool = False
    running: bool = False


class SyncCoordinator:
    """At most one sync per mailbox at a time.

    A trigger arriving while a run is in flight only sets a rerun flag; the running task
    makes one more pass when it finishes. Any burst therefore costs at most one extra pass.
    """

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self._slots: dict[int, _MailboxSlot] = {}

    def _slot(self, mailbox_id: int) -> _MailboxSlot:
        slot = self._slots.get(mailbox_id)
        if slot is None:
            slot = self._slots[mailbox_id] = _MailboxSlot()
        return slot

    def is_running(self, mailbox_id: int) -> bool:
        slot = self._slots.get(mailbox_id)
        return bool(slot and slot.running)

    async def request_sync(self, mailbox_id: int) -> Optional[SyncResult]:
        """Run (or schedule a rerun of) the mailbox sync.

        Returns the last pass's result, or None when the request was coalesced into a run
        already in flight.
        """
        slot = self._slot(mailbox_id)
        if slot.running:
            slot.rerun = True
            logger.debug("sync.coordinator.coalesced", mailbox_id=mailbox_id)
            return None

        async with slot.lock:
            slot.running = True
            try:
                passes = 0
                while True:
                    slot.rerun = False
                    passes += 1
                    result = await self.engine.sync_mailbox(mailbox_id)
                    if not slot.rerun:
                        break
                    logger.info("sync.coordinator.rerun", mailbox_id=mailbox_id, passes=passes)
            finally:
                slot.running = False
        return result
