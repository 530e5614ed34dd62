"""
Dispatcher - Periodic batch indexing of pending documents.

Each tick takes the whole pending set (new changes keep accumulating in a
fresh set), reads the documents, sends them to the indexing service in
bounded batches one after another, and puts whatever failed back into the
pending set. A document is only forgotten once the service has accepted it,
or when it is gone or excluded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

from .client import RemoteIndexClient
from .config import get_config, SyncConfig
from .errors import ClientResult, ErrorAction, handle_error, log_task_exception
from .exclusion import ExclusionFilter
from .models import DispatchStats, DocumentRecord
from .pending import PendingSet
from .vault import Vault


logger = logging.getLogger(__name__)

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Split items into ordered chunks of at most `size`."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


@dataclass
class Resolved:
    """Documents read for one dispatch pass."""
    records: List[DocumentRecord] = field(default_factory=list)
    retry: Set[str] = field(default_factory=set)      # read failed, try again later
    excluded: Set[str] = field(default_factory=set)
    missing: Set[str] = field(default_factory=set)


class BatchDispatcher:
    """
    Drains the pending set into the indexing service on a fixed interval.

    Ticks never overlap: a tick that starts while another is still waiting
    on the network returns immediately.
    """

    def __init__(
        self,
        pending: PendingSet,
        vault: Vault,
        client: RemoteIndexClient,
        exclusion: ExclusionFilter,
        config: SyncConfig | None = None,
    ):
        self.config = config or get_config()
        self.pending = pending
        self.vault = vault
        self.client = client
        self.exclusion = exclusion

        self._in_flight: Optional[Set[str]] = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def busy(self) -> bool:
        return self._in_flight is not None

    @property
    def in_flight(self) -> Set[str]:
        """Identifiers held by the running tick that are not yet indexed."""
        return set(self._in_flight or ())

    async def resolve(self, identifiers: Iterable[str]) -> Resolved:
        """Read documents, dropping ones that vanished or are now excluded."""
        resolved = Resolved()

        for identifier in identifiers:
            if self.exclusion.excludes_path(identifier):
                resolved.excluded.add(identifier)
                continue

            try:
                record = await self.vault.read_record(identifier)
            except OSError as e:
                action = handle_error(e, identifier, "resolve")
                if action is ErrorAction.RETRY:
                    resolved.retry.add(identifier)
                else:
                    resolved.missing.add(identifier)
                continue

            if self.exclusion.excludes(identifier, record.tags):
                resolved.excluded.add(identifier)
                continue

            resolved.records.append(record)

        if resolved.excluded:
            logger.debug(f"Dropped {len(resolved.excluded)} excluded documents")
        return resolved

    async def dispatch_batch(self, batch: Sequence[DocumentRecord]) -> Set[str]:
        """
        Send one batch and return the identifiers that still need indexing.

        A failed request counts every document in the batch as failed.
        Failures reported for documents that were not in the batch are
        ignored.
        """
        sent = {record.identifier for record in batch}
        if not sent:
            return set()

        try:
            result = await self.client.batch_process_documents(batch)
        except Exception as e:
            handle_error(e, f"batch of {len(sent)}", "dispatch_batch")
            return sent

        if not result.success:
            handle_error(result.error, f"batch of {len(sent)}", "dispatch_batch")
            return sent

        failed = set(result.value.failed_documents)
        unknown = failed - sent
        if unknown:
            logger.warning(
                f"Indexing service reported {len(unknown)} failures for documents "
                f"not in the batch: {sorted(unknown)[:5]}"
            )
        failed &= sent
        if failed:
            logger.info(f"{len(failed)} of {len(sent)} documents failed to index; requeueing")
        return failed

    async def tick(self) -> Optional[DispatchStats]:
        """
        Run one dispatch cycle.

        Returns None when there was nothing to do or a previous tick is still
        running.
        """
        if self._in_flight is not None:
            logger.debug("Previous dispatch still running; skipping tick")
            return None
        if not self.pending:
            return None

        start_time = time.monotonic()
        working = self.pending.drain()
        self._in_flight = set(working)
        stats = DispatchStats(documents_pending=len(working))

        try:
            resolved = await self.resolve(sorted(working))
            stats.documents_excluded = len(resolved.excluded)
            stats.documents_missing = len(resolved.missing)
            self._in_flight -= resolved.excluded | resolved.missing

            for batch in partition(resolved.records, self.config.batch_size):
                sent = {record.identifier for record in batch}
                failed = await self.dispatch_batch(batch)
                self._in_flight -= sent - failed
                stats.batches += 1
                stats.documents_sent += len(sent)
        finally:
            remaining = self._in_flight
            self._in_flight = None
            self.pending.update(remaining)
            self.pending.persist()
            stats.requeued = len(remaining)
            stats.duration_seconds = time.monotonic() - start_time

        logger.info(f"Dispatch complete: {stats}")
        return stats

    async def index_one(self, identifier: str) -> Optional[ClientResult]:
        """
        Index a single document right away, bypassing the queue.

        Returns None if the document is excluded. Read errors propagate.
        """
        if self.exclusion.excludes_path(identifier):
            return None
        record = await self.vault.read_record(identifier)
        if self.exclusion.excludes(identifier, record.tags):
            return None
        return await self.client.process_document(record.identifier, record.encoded())

    # --- Timer ---

    async def run(self):
        """Tick every interval until stopped."""
        interval = self.config.interval_seconds
        logger.info(f"Dispatching pending documents every {interval:.0f}s")

        while self._running:
            await asyncio.sleep(interval)
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Dispatch tick failed: {e!r}")

    def start(self):
        if self._task is not None and not self._task.done():
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self.run(), name="ragsync-dispatcher")
        self._task.add_done_callback(log_task_exception)

    async def stop(self, grace: Optional[float] = None):
        """
        Stop the timer.

        A tick that is already sending gets `grace` seconds to finish before
        it is cancelled; unsent documents go back to the pending set either
        way.
        """
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return

        if self.busy and not task.done():
            grace = self.config.shutdown_grace_seconds if grace is None else grace
            await asyncio.wait({task}, timeout=grace)

        if not task.done():
            task.cancel()
        # A crashed timer was already logged by its done callback
        await asyncio.wait({task})
