import asyncio
import json
import logging
from typing import Awaitable, Callable

from services.engine import NotActive
from services.game import GameService, RoundNotFound

log = logging.getLogger(__name__)

Publish = Callable[[str, str], Awaitable[None]]


def channel(round_id: str) -> str:
    return f"round:{round_id}"


class RoundDriver:
    """Timer that advances every live round by one tick per interval."""

    def __init__(self, game: GameService, publish: Publish, interval_ms: int = 50):
        self.game = game
        self.publish = publish
        self.interval = interval_ms / 1000

    async def tick(self) -> int:
        advanced = 0
        for table in self.game.active_tables():
            try:
                # Settlement hits the store, which may block on the database.
                await asyncio.to_thread(self.game.advance, table.round_id, 1)
            except (NotActive, RoundNotFound):
                # Cashed out or replaced since the table list was taken.
                continue
            except Exception:
                log.exception("could not advance round %s", table.round_id)
                continue
            advanced += 1
            await self.publish(channel(table.round_id), json.dumps(table.snapshot()))
        return advanced

    async def run(self) -> None:
        log.info("round driver ticking every %sms", int(self.interval * 1000))
        while True:
            try:
                await self.tick()
            except Exception:
                log.exception("round driver tick failed")
            await asyncio.sleep(self.interval)
