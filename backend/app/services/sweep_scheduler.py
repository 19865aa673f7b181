"""
In-process trigger for the reconciliation sweep.

Runs the sweep every `interval` seconds on a worker thread, each time with
a fresh database session. A failed tick is logged; the next tick is the
retry. stop() cancels the loop and tells an in-flight sweep to stop issuing
per-match work.
"""
import asyncio
import logging
import threading
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from app.services.errors import StoreError
from app.services.match_store import SqlMatchStore
from app.services.reconciliation import DEFAULT_GRACE, ReconciliationEngine, SweepReport

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(
        self,
        engine: Engine,
        interval_seconds: float = 60,
        grace: timedelta = DEFAULT_GRACE,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.grace = grace
        self.session_factory = session_factory or (lambda: Session(self.engine))
        self._stop = threading.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_report: Optional[SweepReport] = None

    def run_once(self) -> Optional[SweepReport]:
        """One sweep in its own session. Store failures are logged, not raised."""
        with self.session_factory() as session:
            engine = ReconciliationEngine(SqlMatchStore(session), grace=self.grace)
            try:
                report = engine.run(should_stop=self._stop.is_set)
            except StoreError as exc:
                logger.error("Reconciliation sweep aborted: %s", exc)
                return None
        self.last_report = report
        return report

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await run_in_threadpool(self.run_once)
            except Exception:
                # Keep ticking; the next sweep is the retry
                logger.exception("Reconciliation tick failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._stop.clear()
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info("Reconciliation scheduler started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        self._stop.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("Reconciliation scheduler task had already failed")
        self._task = None
        logger.info("Reconciliation scheduler stopped")
