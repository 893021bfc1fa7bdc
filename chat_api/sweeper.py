import asyncio
import logging
import time

from .errors import ChatError
from .stores import Clock, MessageStore, ParticipantStore

logger = logging.getLogger(__name__)


class PresenceSweeper:
    """Evicts participants whose last heartbeat is older than ``stale_after``.

    Each eviction leaves a status notice in the message log. Failures are
    logged and never abort the loop: there is no caller to report them to.
    """

    def __init__(
        self,
        participants: ParticipantStore,
        messages: MessageStore,
        stale_after: float,
        interval: float,
        clock: Clock = time.time,
    ):
        self.participants = participants
        self.messages = messages
        self.stale_after = stale_after
        self.interval = interval
        self._clock = clock

    async def tick(self) -> list[str]:
        cutoff = self._clock() - self.stale_after
        try:
            removed = await self.participants.remove_stale(cutoff)
        except ChatError:
            logger.exception("sweep failed to remove stale participants")
            return []

        for name in removed:
            try:
                await self.messages.announce_leave(name)
            except ChatError:
                logger.exception("sweep removed %s but could not record the leave notice", name)
        if removed:
            logger.info("swept %d stale participant(s): %s", len(removed), ", ".join(removed))
        return removed

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:  # noqa: BLE001 - background loop must not die
                logger.exception("unexpected error during presence sweep")
