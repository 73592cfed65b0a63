"""
In-process ticker that persists scheduled phase transitions.

Booking limit checks never depend on it (phases are resolved lazily), so a
missed or late tick only delays what `current_phase` shows, never what a
student may book. Several API workers may run a ticker each; the phase
compare-and-swap lets exactly one of them apply each transition.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interview_booking.core.logging import get_logger
from interview_booking.services.phase_service import advance_all_phases

logger = get_logger(__name__)


class PhaseTicker:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], interval_seconds: float):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def tick(self) -> int:
        """One pass over all date-based events. Returns the number of transitions applied."""
        async with self.session_factory() as session:
            transitions = await advance_all_phases(session)
        if transitions:
            logger.info("phase_tick", transitions=len(transitions))
        return len(transitions)

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Keep ticking; the next pass retries whatever failed
                logger.error("phase_tick_failed", error=str(e), exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="phase-ticker")
            logger.info("phase_ticker_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("phase_ticker_stopped")
