"""
Reindex - Bulk indexing of the whole vault with bounded retries.

The vault is listed (skipping excluded folders), every document is sent in
batches, and the documents that failed are sent again, pass after pass,
until none are left or the retry limit is reached. Documents still failing
at the end are reported, not added to the pending set.
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Set

from .config import get_config, SyncConfig
from .dispatcher import BatchDispatcher, partition
from .errors import ReindexInProgressError
from .models import ReindexReport


logger = logging.getLogger(__name__)


class RetryController:
    """Runs bulk reindex passes through the dispatcher's batch primitive."""

    def __init__(
        self,
        dispatcher: BatchDispatcher,
        config: SyncConfig | None = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        self.config = config or get_config()
        self.dispatcher = dispatcher
        self.on_progress = on_progress
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def _run_pass(self, identifiers: List[str], report: ReindexReport) -> Set[str]:
        """Send the given documents once; return the ones that still failed."""
        remaining: Set[str] = set()
        total = len(identifiers)
        done = 0

        # Read each batch just before sending it
        for chunk in partition(identifiers, self.config.batch_size):
            resolved = await self.dispatcher.resolve(chunk)
            report.documents_excluded += len(resolved.excluded)

            failed = await self.dispatcher.dispatch_batch(resolved.records)
            report.documents_indexed += len(resolved.records) - len(failed)
            remaining |= failed | resolved.retry

            done += len(chunk)
            if self.on_progress:
                self.on_progress(done, total)

        return remaining

    async def reindex_all(self) -> ReindexReport:
        """
        Index every document in the vault.

        Raises:
            ReindexInProgressError: if a bulk reindex is already running
        """
        if self._lock.locked():
            raise ReindexInProgressError("A full reindex is already running")

        async with self._lock:
            start_time = time.monotonic()
            report = ReindexReport()
            exclusion = self.dispatcher.exclusion

            identifiers = await self.dispatcher.vault.list_identifiers(
                exclude_prefixes=exclusion.path_prefixes
            )
            report.documents_found = len(identifiers)
            logger.info(f"Starting full reindex of {len(identifiers)} documents...")

            remaining = await self._run_pass(identifiers, report)
            report.passes = 1

            while remaining and report.retries < self.config.max_retry_attempts:
                logger.info(
                    f"Retry {report.retries + 1}/{self.config.max_retry_attempts}: "
                    f"{len(remaining)} documents"
                )
                remaining = await self._run_pass(sorted(remaining), report)
                report.passes += 1

            report.failed = sorted(remaining)
            report.duration_seconds = time.monotonic() - start_time

            if remaining:
                logger.warning(f"Full reindex gave up on {len(remaining)} documents")
            logger.info(f"Full reindex complete: {report}")
            return report
