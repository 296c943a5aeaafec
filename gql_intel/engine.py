"""
Capture Engine - Main Orchestrator

Runs one extraction session over a network event source:
1. Correlate: network events -> GraphQL captures + JavaScript asset URLs
2. Download: each new asset URL fetched once, bounded concurrency
3. Extract: heuristic operation recovery from every asset
4. Merge: static operations + operations parsed from captured queries
5. Dedupe + Export: GraphQL text, structured JSON, detailed log

Task graph (asyncio):
- correlator  drains the source's request/response channels
- collector   sole owner of the capture list until its done event fires
- reporter    periodic progress report
- poller      session liveness probe, sets session_ended
- main loop   (the caller's task) consumes asset URLs until the deadline,
              the end of the session, or the end of the asset stream
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from gql_intel.collectors.asset_fetcher import AssetFetcher
from gql_intel.errors import CaptureRunError, EventSourceError
from gql_intel.extractors.operation_extract import OperationExtractor, parse_operation
from gql_intel.models.operation_schema import Capture, Operation
from gql_intel.processors.dedupe import OperationDedupe
from gql_intel.processors.exporter import ExportReport, OperationExporter, build_base_name
from gql_intel.probers.network_sniffer import NetworkCorrelator
from gql_intel.tracking.progress import ProgressSnapshot, ProgressTracker, run_progress_reporter
from gql_intel.utils.channel import Channel
from gql_intel.utils.logger import get_logger
from gql_intel.utils.settings import merge_settings

logger = get_logger(__name__)

# Type recorded for variables known only from a capture's variables object
PLACEHOLDER_TYPE = "Any"

TIMEOUT = "timeout"
SESSION_ENDED = "session_ended"
STREAM_CLOSED = "stream_closed"
SOURCE_FAILED = "source_failed"


@dataclass
class AssetJob:
    url: str
    task: Optional[asyncio.Task] = None
    started: bool = False


@dataclass
class CaptureResult:
    target: str
    operations: List[Operation]
    static_operations: int
    captures: List[Capture]
    report: ExportReport
    progress: ProgressSnapshot
    terminated_by: str
    skipped_assets: int = 0
    audit: list = field(default_factory=list)


def operations_from_captures(captures: List[Capture]) -> List[Operation]:
    """
    Parse each captured query into an Operation.

    When the parsed operation declares no variables but the capture sent
    some, the variable names are back-filled with PLACEHOLDER_TYPE.
    """
    operations = []
    for capture in captures:
        if not capture.query:
            continue
        operation = parse_operation(capture.query)
        if operation is None:
            continue
        if capture.variables and not operation.variables:
            operation = operation.model_copy(
                update={"variables": {name: PLACEHOLDER_TYPE for name in capture.variables}}
            )
        operations.append(operation)
    return operations


class CaptureEngine:
    def __init__(self, settings=None, fetcher=None, extractor=None, progress=None):
        self.settings = merge_settings(settings)
        capture_cfg = self.settings["capture"]
        crawler_cfg = self.settings["crawler"]
        output_cfg = self.settings["output"]

        self.timeout = float(capture_cfg["timeout"])
        self.progress_interval = float(capture_cfg["progress_interval"])
        self.liveness_interval = float(capture_cfg["liveness_interval"])
        self.shutdown_grace = float(capture_cfg["shutdown_grace"])
        self.channel_size = int(capture_cfg["channel_size"])
        self.max_concurrent_downloads = max(1, int(crawler_cfg["max_concurrent_downloads"]))
        self.output_dir = output_cfg["dir"]
        self.log_truncate_bytes = int(output_cfg["log_truncate_bytes"])

        self.progress = progress or ProgressTracker()
        self.fetcher = fetcher or AssetFetcher(self.settings, progress=self.progress)
        self.extractor = extractor or OperationExtractor()

    # =========================================================================
    # TASKS
    # =========================================================================

    async def _collect(self, channel: Channel, captures: List[Capture], done: asyncio.Event) -> None:
        try:
            async for capture in channel:
                captures.append(capture)
        finally:
            done.set()

    async def _poll_liveness(self, source, session_ended: asyncio.Event) -> None:
        if self.liveness_interval <= 0:
            return
        while True:
            await asyncio.sleep(self.liveness_interval)
            try:
                alive = await source.is_alive()
            except Exception as e:
                logger.debug(f"Liveness probe failed: {e}")
                alive = False
            if not alive:
                logger.info("Browser session ended")
                session_ended.set()
                return

    async def _download_and_extract(self, job: AssetJob, slots: asyncio.Semaphore) -> List[Operation]:
        async with slots:
            job.started = True
            try:
                content = await asyncio.to_thread(self.fetcher.fetch, job.url)
                operations = await asyncio.to_thread(self.extractor.extract, content)
            except Exception as e:
                logger.warning(f"Error processing JS from {job.url}: {e}")
                return []

        self.progress.record_operations(operations)
        self.progress.record_processed()
        logger.info(f"Found {len(operations)} operations in {job.url}")
        return operations

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    async def _process_assets(self, asset_urls, session_ended, deadline, jobs, slots):
        """
        Consume asset URLs until a termination condition fires.

        Returns the termination reason and the receive still in flight (if
        any), which the shutdown drain picks up so no URL is lost.
        """
        loop = asyncio.get_running_loop()
        seen = set()
        recv_task = None

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info("Timeout reached, stopping processing")
                return TIMEOUT, recv_task
            if session_ended.is_set():
                logger.info("Browser closed by user, finishing up...")
                return SESSION_ENDED, recv_task

            if recv_task is None:
                recv_task = asyncio.ensure_future(asset_urls.recv())
            ended_task = asyncio.ensure_future(session_ended.wait())
            done, _ = await asyncio.wait(
                {recv_task, ended_task}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if not ended_task.done():
                ended_task.cancel()
            if recv_task not in done:
                continue

            url = recv_task.result()
            recv_task = None
            if url is None:
                logger.info("Network event stream closed")
                return STREAM_CLOSED, None
            if url in seen:
                continue
            seen.add(url)

            job = AssetJob(url=url)
            job.task = asyncio.create_task(self._download_and_extract(job, slots))
            jobs.append(job)

    async def _drain_assets(self, asset_urls: Channel, recv_task) -> int:
        skipped = 0
        if recv_task is not None:
            if await recv_task is not None:
                skipped += 1
        async for _ in asset_urls:
            skipped += 1
        return skipped

    async def _finish_downloads(self, jobs: List[AssetJob], cancel_queued: bool) -> List[Operation]:
        """Await every download; results in discovery order. Past the deadline, queued ones are cancelled."""
        if cancel_queued:
            for job in jobs:
                if not job.started:
                    job.task.cancel()
        results = await asyncio.gather(*(job.task for job in jobs), return_exceptions=True)

        operations = []
        unstarted = 0
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                unstarted += 1
            elif isinstance(result, BaseException):
                logger.warning(f"Asset task failed: {result}")
            else:
                operations.extend(result)
        if unstarted:
            logger.info(f"Skipped {unstarted} queued asset downloads")
        return operations

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self, source, target: str, timeout: Optional[float] = None) -> CaptureResult:
        """
        Run one capture session against `source` and export the results.

        Args:
            source: EventSource (browser session, HAR replay, ...). If it has
                an async `start(target)` it is called once the consumers run.
            target: Target URL or name; determines the output file names
            timeout: Overall deadline in seconds (defaults to settings)

        Raises:
            CaptureRunError: the event source failed; `.result` holds the
                partial results, which have already been exported
        """
        loop = asyncio.get_running_loop()
        timeout = self.timeout if timeout is None else float(timeout)
        deadline = loop.time() + max(timeout, 0.0)

        asset_urls = Channel(self.channel_size)
        capture_channel = Channel(self.channel_size)
        correlator = NetworkCorrelator(asset_urls, capture_channel, progress=self.progress)
        captures: List[Capture] = []
        captures_done = asyncio.Event()
        session_ended = asyncio.Event()
        slots = asyncio.Semaphore(self.max_concurrent_downloads)
        jobs: List[AssetJob] = []
        fatal: Optional[BaseException] = None

        producer = asyncio.create_task(correlator.run(source))
        collector = asyncio.create_task(self._collect(capture_channel, captures, captures_done))
        reporter = asyncio.create_task(run_progress_reporter(self.progress, self.progress_interval))
        poller = asyncio.create_task(self._poll_liveness(source, session_ended))

        recv_task = None
        starter = getattr(source, "start", None)
        try:
            if starter is not None:
                await starter(target)
            logger.info("Processing JavaScript files...")
            terminated_by, recv_task = await self._process_assets(
                asset_urls, session_ended, deadline, jobs, slots
            )
        except EventSourceError as e:
            logger.error(f"Event source failed: {e}")
            fatal = e
            terminated_by = SOURCE_FAILED

        # ---- shutdown ------------------------------------------------------
        for task in (reporter, poller):
            task.cancel()
        await asyncio.gather(reporter, poller, return_exceptions=True)

        drain = asyncio.create_task(self._drain_assets(asset_urls, recv_task))
        try:
            await source.close()
        except Exception as e:
            logger.warning(f"Error closing event source: {e}")

        try:
            await asyncio.wait_for(correlator.done.wait(), timeout=self.shutdown_grace)
        except asyncio.TimeoutError:
            logger.warning("Network capture did not stop in time, cancelling it")
            producer.cancel()
        producer_result = (await asyncio.gather(producer, return_exceptions=True))[0]
        if isinstance(producer_result, Exception):
            logger.error(f"Network capture failed: {producer_result}")
            fatal = fatal or producer_result

        await captures_done.wait()
        await collector
        skipped = await drain
        if skipped:
            logger.info(f"Skipped {skipped} asset URLs received after processing stopped")

        static_operations = await self._finish_downloads(jobs, cancel_queued=terminated_by == TIMEOUT)

        # ---- merge, dedupe, export -------------------------------------------
        capture_operations = operations_from_captures(captures)
        deduper = OperationDedupe()
        unique = deduper.dedupe(static_operations + capture_operations)

        exporter = OperationExporter(
            output_dir=self.output_dir,
            base_name=build_base_name(target),
            log_truncate_bytes=self.log_truncate_bytes,
        )
        logger.info("Saving results...")
        report = exporter.export_all(unique, captures)

        snapshot = self.progress.report()
        logger.info("Extraction complete!")
        logger.info(f"Total JS files processed: {snapshot.assets_processed}")
        logger.info(f"Total data downloaded: {snapshot.megabytes_downloaded:.2f} MB")
        logger.info(f"Total queries found: {snapshot.queries_found}")
        logger.info(f"Total mutations found: {snapshot.mutations_found}")
        logger.info(f"Total network captures: {snapshot.network_captures}")
        logger.info(f"Total unique operations: {len(unique)}")
        logger.info(f"Results saved to {self.output_dir}/ with base name: {exporter.base_name}")

        result = CaptureResult(
            target=target,
            operations=unique,
            static_operations=len(static_operations),
            captures=list(captures),
            report=report,
            progress=snapshot,
            terminated_by=terminated_by,
            skipped_assets=skipped,
            audit=deduper.audit,
        )

        source_error = getattr(source, "error", None)
        fatal = fatal or source_error
        if fatal is not None:
            raise CaptureRunError(f"capture run failed: {fatal}", result=result)
        return result
