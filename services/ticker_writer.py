"""
Ticker-Set Writer

Single writer for one TickerSet. Adapters fetch concurrently, but every
mutation of the set (cross-rate updates, snapshot batches, network-state
feeds) is queued here and applied by one background task, strictly in
submission order. Per-symbol samples therefore always reach the Volume
Window Tracker in the order they were fetched, and no two updates of the
same set ever interleave.

Each submit returns a future resolved with the job's result (RefreshReport,
merged record count, ...) once the writer has applied it.
"""

import asyncio
import contextlib
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from core.asset_state import apply_network_states
from core.config import settings
from core.logging import get_logger
from core.schemas import RefreshReport, TickerSet
from core.snapshot_normalizer import MarketSnapshotNormalizer


Job = Tuple[str, Callable[[], Any], asyncio.Future]


class TickerSetWriter:
    """
    Background single-writer for a TickerSet.

    Args:
        ticker_set: The set this writer exclusively mutates
        normalizer: Snapshot normalizer (defaults to one built from settings)
        max_queue_size: Maximum pending jobs before submitters wait

    Example:
        >>> writer = TickerSetWriter(tickers)
        >>> await writer.start()
        >>> report = await (await writer.submit_snapshots(snapshots))
        >>> await writer.stop()
    """

    def __init__(
        self,
        ticker_set: TickerSet,
        normalizer: Optional[MarketSnapshotNormalizer] = None,
        max_queue_size: Optional[int] = None,
    ) -> None:
        self.ticker_set = ticker_set
        self.normalizer = normalizer or MarketSnapshotNormalizer()
        self._queue: asyncio.Queue = asyncio.Queue(
            maxsize=max_queue_size if max_queue_size is not None else settings.writer_queue_size
        )
        self._task: Optional[asyncio.Task] = None
        self._logger = get_logger(__name__)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._logger.debug(f"Starting writer for {self.ticker_set.exchange}")
        self._task = asyncio.create_task(self._run(), name=f"ticker_writer:{self.ticker_set.exchange}")

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the writer.

        Args:
            drain: Apply every job already queued before stopping
        """
        if not self.running:
            return
        if drain:
            await self._queue.join()
        self._logger.debug(f"Stopping writer for {self.ticker_set.exchange}")
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def join(self) -> None:
        """Wait until every queued job has been applied."""
        await self._queue.join()

    # ============================================
    # Submission
    # ============================================

    async def _submit(self, kind: str, apply: Callable[[], Any]) -> asyncio.Future:
        if not self.running:
            raise RuntimeError(f"Writer for {self.ticker_set.exchange} is not running. Call start() first.")
        future = asyncio.get_running_loop().create_future()
        await self._queue.put((kind, apply, future))
        return future

    async def submit_cross_rates(self, exchg_rate: float, btc_fiat_price: float) -> asyncio.Future:
        return await self._submit(
            "cross_rates",
            lambda: self.ticker_set.set_cross_rates(exchg_rate, btc_fiat_price),
        )

    async def submit_snapshots(self, snapshots: Mapping[str, Any]) -> "asyncio.Future[RefreshReport]":
        return await self._submit(
            "snapshots",
            lambda: self.normalizer.refresh(self.ticker_set, snapshots),
        )

    async def submit_network_states(self, records: Iterable[Any]) -> "asyncio.Future[int]":
        records = list(records)
        return await self._submit(
            "network_states",
            lambda: apply_network_states(self.ticker_set, records),
        )

    # ============================================
    # Core Loop
    # ============================================

    async def _run(self) -> None:
        while True:
            kind, apply, future = await self._queue.get()
            try:
                result = apply()
            except Exception as e:
                self._logger.error(f"{self.ticker_set.exchange}: {kind} job failed: {e}")
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._queue.task_done()

    def stats(self) -> Dict[str, Any]:
        return {
            "exchange": self.ticker_set.exchange,
            "running": self.running,
            "pending": self._queue.qsize(),
        }
