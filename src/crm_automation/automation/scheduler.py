"""Periodic idle sweep that feeds LEAD_UNTOUCHED rules."""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from ..storage.models import Lead
from ..workflows.engine import EventOutcome, RuleEngine
from ..workflows.events import IdleScanTick

logger = logging.getLogger(__name__)


class IdleScanScheduler:
    """Emit one IdleScanTick per lead every ``interval_minutes``.

    ``lead_provider`` returns the current lead snapshots; it is called
    once per sweep.
    """

    def __init__(
        self,
        engine: RuleEngine,
        lead_provider: Callable[[], Iterable[Lead]],
        interval_minutes: int = 15,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.engine = engine
        self.lead_provider = lead_provider
        self.interval_minutes = interval_minutes
        self.clock = clock
        self.last_run: Optional[datetime] = None

        self._running = False
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> List[EventOutcome]:
        """Sweep all leads now."""
        now = self.clock()
        outcomes = []
        for lead in self.lead_provider():
            outcomes.append(self.engine.on_event(IdleScanTick(lead=lead, occurred_at=now)))
        self.last_run = now
        fired = sum(len(o.requests) for o in outcomes)
        logger.info(f"Idle scan checked {len(outcomes)} leads, {fired} action(s) executed")
        return outcomes

    def start(self):
        """Start the sweep background thread."""
        if self._running:
            return

        self._running = True
        self._stop.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True)
        self._thread.start()
        logger.info(f"Idle scan started (every {self.interval_minutes} min)")

    def stop(self):
        self._running = False
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5)
        logger.info("Idle scan stopped")

    def _run_loop(self):
        while self._running:
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Idle scan failed: {e}")
            self._stop.wait(self.interval_minutes * 60)
