"""
Market Poller

Background service driving the refresh cycle of every registered exchange:

- every `poll_interval_seconds`: fetch snapshots and normalize them
- every `state_check_interval_seconds`: re-read deposit/withdraw states

Exchanges are polled concurrently through the ExchangeManager; each exchange's
updates are still applied in order by its own writer.
"""

import asyncio
import contextlib
from typing import Optional

from core.config import settings
from core.exchange_manager import ExchangeManager, get_manager
from core.logging import get_logger


class MarketPoller:
    """
    Background polling loop over all exchanges of an ExchangeManager.

    Args:
        manager: Manager to poll (defaults to the global manager)
        poll_interval: Seconds between snapshot cycles
        state_check_interval: Seconds between asset-state checks
    """

    def __init__(
        self,
        manager: Optional[ExchangeManager] = None,
        poll_interval: Optional[float] = None,
        state_check_interval: Optional[float] = None,
    ) -> None:
        self.manager = manager or get_manager()
        self._poll_interval = poll_interval if poll_interval is not None else settings.poll_interval_seconds
        self._state_interval = (
            state_check_interval if state_check_interval is not None
            else settings.state_check_interval_seconds
        )
        self._logger = get_logger(__name__)
        self._running = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._next_state_check = 0.0
        self.cycles = 0

    @property
    def running(self) -> bool:
        return self._running.is_set()

    async def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._logger.info(f"Starting market poller for {len(self.manager)} exchange(s)...")
        self._task = asyncio.create_task(self._run(), name="market_poller")

    async def stop(self) -> None:
        if not self._running.is_set():
            return
        self._logger.info("Stopping market poller...")
        self._running.clear()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    # ============================================
    # Core Loop
    # ============================================

    async def run_cycle(self) -> None:
        """Run one polling cycle, checking asset states first when they are due."""
        loop = asyncio.get_running_loop()

        if loop.time() >= self._next_state_check:
            merged = await self.manager.verify_all_states()
            self._logger.debug(f"Asset states merged: {merged}")
            self._next_state_check = loop.time() + self._state_interval

        reports = await self.manager.poll_all()
        for name, report in reports.items():
            if report is not None:
                self._logger.debug(
                    f"{name}: updated={report.updated} rolled={report.volume_rolled} "
                    f"unresolved={report.unresolved} failed={report.failed}"
                )
        self.cycles += 1

    async def _run(self) -> None:
        while self._running.is_set():
            cycle_start = asyncio.get_running_loop().time()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._logger.error(f"Market poller cycle error: {e}")

            elapsed = asyncio.get_running_loop().time() - cycle_start
            await asyncio.sleep(max(0.0, self._poll_interval - elapsed))
