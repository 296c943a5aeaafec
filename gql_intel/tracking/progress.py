"""Progress counters for one capture run, plus the periodic reporter task."""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import List, Optional

from gql_intel.models.operation_schema import OperationKind
from gql_intel.utils.logger import get_logger

logger = get_logger(__name__)


def format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    if minutes < 60:
        return f"{minutes}m {secs:.0f}s"
    hours = minutes // 60
    mins = minutes % 60
    return f"{hours}h {mins}m {secs:.0f}s"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Read-only view of the counters at one instant."""

    elapsed: float
    assets_found: int
    assets_downloaded: int
    assets_processed: int
    bytes_downloaded: int
    queries_found: int
    mutations_found: int
    subscriptions_found: int
    network_captures: int
    currently_processing: Optional[str] = None

    @property
    def elapsed_str(self) -> str:
        return format_elapsed(self.elapsed)

    @property
    def megabytes_downloaded(self) -> float:
        return self.bytes_downloaded / (1024 * 1024)


class ProgressTracker:
    """
    Counters shared by the producer, the download workers and the reporter.

    Every update holds the lock, so a snapshot never sees half of a
    multi-counter update. Downloads update it from worker threads.
    """

    def __init__(self):
        self.start_time = time.time()
        self._lock = threading.Lock()
        self._assets: List[str] = []
        self.assets_found = 0
        self.assets_downloaded = 0
        self.assets_processed = 0
        self.bytes_downloaded = 0
        self.queries_found = 0
        self.mutations_found = 0
        self.subscriptions_found = 0
        self.network_captures = 0

    def add_asset(self, url: str) -> None:
        with self._lock:
            self._assets.append(url)
            self.assets_found += 1

    def record_download(self, nbytes: int) -> None:
        with self._lock:
            self.assets_downloaded += 1
            self.bytes_downloaded += nbytes

    def record_processed(self) -> None:
        with self._lock:
            self.assets_processed += 1

    def record_operations(self, operations) -> None:
        queries = mutations = subscriptions = 0
        for op in operations:
            if op.kind == OperationKind.QUERY:
                queries += 1
            elif op.kind == OperationKind.MUTATION:
                mutations += 1
            elif op.kind == OperationKind.SUBSCRIPTION:
                subscriptions += 1
        with self._lock:
            self.queries_found += queries
            self.mutations_found += mutations
            self.subscriptions_found += subscriptions

    def record_capture(self) -> None:
        with self._lock:
            self.network_captures += 1

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            current = None
            if self.assets_processed < self.assets_found and self.assets_processed < len(self._assets):
                current = self._assets[self.assets_processed]
            return ProgressSnapshot(
                elapsed=time.time() - self.start_time,
                assets_found=self.assets_found,
                assets_downloaded=self.assets_downloaded,
                assets_processed=self.assets_processed,
                bytes_downloaded=self.bytes_downloaded,
                queries_found=self.queries_found,
                mutations_found=self.mutations_found,
                subscriptions_found=self.subscriptions_found,
                network_captures=self.network_captures,
                currently_processing=current,
            )

    def report(self) -> ProgressSnapshot:
        snap = self.snapshot()
        logger.info(f"Progress Report [{snap.elapsed_str} elapsed]:")
        logger.info(
            f"  JS Files: {snap.assets_found} found, {snap.assets_downloaded} downloaded, "
            f"{snap.assets_processed} processed"
        )
        logger.info(f"  Data: {snap.megabytes_downloaded:.2f} MB downloaded")
        logger.info(
            f"  GraphQL: {snap.queries_found} queries, {snap.mutations_found} mutations, "
            f"{snap.subscriptions_found} subscriptions found"
        )
        logger.info(f"  Network: {snap.network_captures} GraphQL requests captured")
        if snap.currently_processing:
            logger.info(f"  Currently processing: {snap.currently_processing}")
        return snap


async def run_progress_reporter(tracker: ProgressTracker, interval: float) -> None:
    """Log a progress report every `interval` seconds until cancelled."""
    if interval <= 0:
        return
    while True:
        await asyncio.sleep(interval)
        tracker.report()
