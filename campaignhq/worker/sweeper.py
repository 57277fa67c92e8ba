"""
Sweep Driver

Background thread that calls the scheduling engine's sweep at a fixed
interval. The engine itself never schedules sweeps.
"""
import threading
from typing import Optional

from ..logging_config import get_logger
from ..scheduler import SchedulingEngine, SweepReport

logger = get_logger("worker.sweeper")


class SweepDriver:
    """Runs ``engine.sweep()`` every ``interval`` seconds until stopped."""

    def __init__(self, engine: SchedulingEngine, interval: float = 30.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.engine = engine
        self.interval = interval
        self.running = False
        self.sweeps = 0
        self.last_report: Optional[SweepReport] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> SweepReport:
        report = self.engine.sweep()
        self.sweeps += 1
        self.last_report = report
        if report.exhausted:
            logger.warning(
                "Entries exhausted their retries",
                entries=[e.id for e in report.exhausted],
            )
        return report

    def _loop(self):
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error("Sweep failed", error=e)
            self._stop.wait(self.interval)

    def start_background(self) -> bool:
        """Start sweeping in a background thread (non-blocking for FastAPI)"""
        if self.running:
            return False

        self.running = True
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="schedule-sweeper")
        self._thread.start()
        logger.info("Sweep driver started", interval=self.interval)
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> bool:
        """Stop sweeping and wait for the current sweep to finish"""
        if not self.running:
            return False

        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self.running = False
        logger.info("Sweep driver stopped", sweeps=self.sweeps)
        return True

    def get_status(self) -> dict:
        report = self.last_report
        return {
            "running": self.running,
            "interval_seconds": self.interval,
            "sweeps": self.sweeps,
            "last_sweep_at": report.swept_at.isoformat() if report and report.swept_at else None,
            "last_dispatched": len(report.dispatched) if report else 0,
            "last_exhausted": len(report.exhausted) if report else 0,
        }
