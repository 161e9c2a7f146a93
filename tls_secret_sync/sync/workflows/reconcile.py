"""Polling loop that fetches the credential and fans it out to every target."""
import logging
import threading
from typing import List, Optional

from ..domains.constants import POLL_INTERVAL_SECONDS
from ..domains.metrics import SyncMetrics
from ..domains.models import Fetcher, Syncer

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    """
    Drives one source and an ordered list of targets.

    Iterations run one after another on the calling thread; targets within
    an iteration run in order and a failing target does not stop the rest.
    """

    def __init__(self, source: Fetcher, targets: List[Syncer], metrics: SyncMetrics,
                 interval: float = POLL_INTERVAL_SECONDS):
        self.source = source
        self.targets = list(targets)
        self.metrics = metrics
        self.interval = interval

    def run_once(self) -> bool:
        """
        Run a single fetch + sync pass and record its outcome.

        Returns:
            True if the fetch and every sync succeeded
        """
        logger.info("Start Sync")
        success = True
        try:
            credential = self.source.fetch()
        except Exception as e:
            logger.error(f"failed to get secret: {e}")
            success = False
        else:
            for target in self.targets:
                try:
                    target.sync(credential.cert, credential.key)
                except Exception as e:
                    logger.error(f"failed to sync secret with {type(target).__name__}: {e}")
                    success = False

        if success:
            logger.info("Success")
        else:
            logger.info("Failed")
        self.metrics.record(success)
        return success

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Loop until stop_event is set.

        The first iteration starts immediately; the stop event is checked
        between iterations and ends the inter-iteration wait early.
        """
        stop_event = stop_event or threading.Event()
        while not stop_event.is_set():
            self.run_once()
            stop_event.wait(timeout=self.interval)
        logger.info("Reconciliation loop stopped")
