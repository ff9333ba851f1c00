"""Interval scheduler for sync cycles."""

import asyncio
import inspect
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

from deskbridge.core.config import settings
from deskbridge.core.logging import logger
from deskbridge.platform.sync.engine import SyncStats, run_sync_cycle
from deskbridge.platform.sync.exceptions import SyncFailureError

CycleFn = Callable[[], Awaitable[Any]]
Callback = Callable[[Any], Any]


class SyncWorker:
    """Runs a cycle immediately, then again every ``interval`` seconds.

    Cycles never overlap: the next wait only starts once the previous cycle
    has finished. A failing cycle is reported through ``on_error`` and the
    worker keeps going. ``stop()`` cancels the pending wait only; a cycle
    that is already running completes first.
    """

    def __init__(
        self,
        cycle: CycleFn,
        interval: float,
        on_cycle: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
        max_cycles: Optional[int] = None,
        name: str = "sync",
    ):
        """Initialize the worker.

        Args:
            cycle: Coroutine function running one cycle
            interval: Seconds between the end of one cycle and the start of the next
            on_cycle: Called with the result of every cycle (sync or async)
            on_error: Called with the exception of a failed cycle (sync or async)
            max_cycles: Stop after this many cycles
            name: Label for log messages
        """
        self.cycle = cycle
        self.interval = interval
        self.on_cycle = on_cycle
        self.on_error = on_error
        self.max_cycles = max_cycles
        self.cycles_run = 0
        self.logger = logger.with_context(worker=name)

        self._stopped = False
        self._task: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Whether the worker loop is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the worker loop on the running event loop."""
        if self.is_running:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Stop scheduling cycles; an in-flight cycle is not interrupted."""
        self._stopped = True
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()

    async def wait_closed(self) -> None:
        """Wait until the loop has exited."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        self.logger.info(f"Worker started (interval {self.interval}s)")
        try:
            while not self._stopped:
                await self._run_once()
                if self.max_cycles is not None and self.cycles_run >= self.max_cycles:
                    break
                if self._stopped:
                    break
                self._timer = asyncio.create_task(asyncio.sleep(self.interval))
                try:
                    await asyncio.wait({self._timer})
                finally:
                    if not self._timer.done():
                        self._timer.cancel()
        finally:
            self.logger.info(f"Worker stopped after {self.cycles_run} cycles")

    async def _run_once(self) -> None:
        self.cycles_run += 1
        try:
            result = await self.cycle()
        except Exception as e:
            self.logger.error(f"Cycle {self.cycles_run} failed: {e}", exc_info=True)
            await self._notify(self.on_error, e)
            return

        await self._notify(self.on_cycle, result)
        error = getattr(result, "error", None)
        if error:
            await self._notify(self.on_error, SyncFailureError(error))

    async def _notify(self, callback: Optional[Callback], value: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(value)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            self.logger.error(f"Worker callback failed: {e}", exc_info=True)


def start_sync_worker(
    connector: str,
    interval: Optional[float] = None,
    on_cycle: Optional[Callable[[SyncStats], Any]] = None,
    on_error: Optional[Callback] = None,
    max_cycles: Optional[int] = None,
    out_dir: Optional[Union[str, Path]] = None,
) -> SyncWorker:
    """Start a worker running incremental sync cycles for a connector.

    Must be called from a running event loop.
    """

    async def cycle() -> SyncStats:
        return await run_sync_cycle(connector, out_dir=out_dir)

    worker = SyncWorker(
        cycle,
        interval=interval if interval is not None else settings.SYNC_INTERVAL_SECONDS,
        on_cycle=on_cycle,
        on_error=on_error,
        max_cycles=max_cycles if max_cycles is not None else settings.SYNC_MAX_CYCLES,
        name=connector,
    )
    worker.start()
    return worker
