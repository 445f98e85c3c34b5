"""
Background reaper for abandoned reservation holds.

A checkout that reserves a window and then never commits (client gone,
process killed between RESERVING and COMMITTING) leaves an unclaimed hold
behind. The reaper runs ``capacity_ledger.reap_stale_holds`` periodically in
a worker thread so those slots return to the pool.
"""

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..config import RESERVATION_HOLD_TTL_SECONDS, RESERVATION_REAPER_INTERVAL_SECONDS
from .capacity_ledger import reap_stale_holds


logger = logging.getLogger(__name__)


class ReservationReaper:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        interval_seconds: int = RESERVATION_REAPER_INTERVAL_SECONDS,
        max_age_seconds: int = RESERVATION_HOLD_TTL_SECONDS,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.max_age_seconds = max_age_seconds
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> int:
        db = self.session_factory()
        try:
            return reap_stale_holds(db, max_age_seconds=self.max_age_seconds)
        finally:
            db.close()

    async def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("Reservation reaper disabled")
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Started reservation reaper (every %ds, holds older than %ds)",
            self.interval_seconds, self.max_age_seconds,
        )

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Stopped reservation reaper")

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await asyncio.to_thread(self.run_once)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in reservation reaper: %s", e, exc_info=True)
