"""
Agent - Main entry point for the vault sync system.

Wires the vault watcher, change listener, pending set, dispatcher and bulk
reindex together, and exposes the user commands:
    - index one document now
    - remove a document from the index
    - reindex the whole vault
    - search
"""

import argparse
import asyncio
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional

from .client import RemoteIndexClient
from .config import BackendConfig, SyncConfig, get_config, load_settings, set_config
from .dispatcher import BatchDispatcher
from .errors import ConfigurationError, ErrorAction, handle_error
from .events import EventBus
from .exclusion import ExclusionFilter
from .listener import ChangeListener
from .models import DispatchStats, ReindexReport, SearchResult
from .pending import PendingSet
from .reindex import RetryController
from .vault import Vault
from .watcher import Watcher


logger = logging.getLogger(__name__)
notice_logger = logging.getLogger("ragsync.notice")


def log_notice(message: str) -> None:
    notice_logger.info(message)


class SyncAgent:
    """
    Keeps the remote index in step with one vault.

    Usage:
        agent = SyncAgent(config)
        await agent.start()
        ...
        await agent.stop()
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        client: Optional[RemoteIndexClient] = None,
        notify: Callable[[str], None] = log_notice,
        watch: bool = True,
    ):
        self.config = config or get_config()
        if config:
            set_config(config)

        if client is None:
            backend = BackendConfig.load_with_defaults(self.config.config_path)
            client = RemoteIndexClient(backend.base_url, timeout=self.config.request_timeout_seconds)

        self.notify = notify
        self.client = client
        self.vault = Vault(self.config)
        self.exclusion = ExclusionFilter.from_config(self.config)
        self.pending = PendingSet(self.config.pending_path)
        self.bus = EventBus()

        self.dispatcher = BatchDispatcher(
            self.pending, self.vault, self.client, self.exclusion, self.config
        )
        self.reindexer = RetryController(self.dispatcher, self.config)
        self.listener = ChangeListener(
            self.pending,
            self.vault,
            self.client,
            self.exclusion,
            index_document=self.index_document,
            notify=self.notify,
        )
        self._watcher: Optional[Watcher] = Watcher(self.vault, self.bus) if watch else None
        self._restored = False
        self._started = False

    async def restore(self):
        """Load the persisted pending set (once)."""
        if self._restored:
            return
        await self.pending.load(self.vault, self.exclusion)
        self._restored = True

    async def start(self):
        """Restore the queue and begin watching and dispatching."""
        if self._started:
            return
        await self.restore()
        self.listener.subscribe(self.bus)
        if self._watcher:
            self._watcher.start()
        self.dispatcher.start()
        self._started = True
        logger.info(f"Sync agent started for {self.vault.root} ({len(self.pending)} pending)")

    async def stop(self):
        """
        Stop watching and dispatching, then save the queue.

        Documents a running dispatch has not finished with are saved too,
        so they are sent again after a restart.
        """
        if self._watcher and self._watcher.running:
            self._watcher.stop()
        if self._started:
            self.listener.unsubscribe(self.bus)
        await self.bus.drain()

        if self._restored:
            self.pending.persist(include=self.dispatcher.in_flight)
        await self.dispatcher.stop()
        if self._restored:
            self.pending.persist()

        await self.client.close()
        self.vault.close()
        self._started = False
        logger.info("Sync agent stopped")

    async def flush(self) -> Optional[DispatchStats]:
        """Dispatch pending documents now instead of waiting for the timer."""
        return await self.dispatcher.tick()

    async def index_document(self, identifier: str) -> bool:
        """Index one document immediately; failures stay pending."""
        try:
            result = await self.dispatcher.index_one(identifier)
        except OSError as e:
            if handle_error(e, identifier, "index_document") is ErrorAction.RETRY:
                self.pending.add(identifier)
            self.notify(f"Error reading \"{identifier}\". {e}")
            return False

        if result is None:
            logger.info(f"Not indexing excluded document: {identifier}")
            return False
        if not result.success:
            self.pending.add(identifier)
            self.notify(f"Error indexing document. {result.error}")
            return False

        self.pending.remove(identifier)
        self.notify(f"Document \"{identifier}\" indexed successfully.")
        return True

    async def remove_indexed_document(self, identifier: str) -> bool:
        """Remove a document from the remote index."""
        self.pending.remove(identifier)
        result = await self.client.delete_document(identifier)
        if not result.success:
            self.notify(f"Error removing document from index. {result.error}")
            return False
        self.notify(f"Document \"{identifier}\" removed from index.")
        return True

    async def reindex_vault(self) -> ReindexReport:
        """Index every document in the vault with bounded retries."""
        self.notify("Reindexing vault...")
        report = await self.reindexer.reindex_all()
        if report.failed:
            self.notify(
                f"Reindex finished: {report.documents_indexed} indexed, "
                f"{report.failure_count} failed."
            )
        else:
            self.notify(f"Reindex finished: {report.documents_indexed} documents indexed.")
        return report

    async def search(self, query: str) -> List[SearchResult]:
        result = await self.client.search(query)
        if not result.success:
            logger.error(f"Search error: {result.error}")
            return []
        return result.value


def build_config(args: argparse.Namespace) -> SyncConfig:
    config = load_settings(SyncConfig.from_env(vault_root=args.vault))
    if args.config:
        config = dataclasses.replace(config, config_path=args.config)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Keep a Local RAG index in sync with a vault")
    parser.add_argument("--vault", type=Path, help="Vault root (default: $RAGSYNC_VAULT or cwd)")
    parser.add_argument("--config", type=Path, help="Local RAG server config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("watch", help="Watch the vault and index changes periodically")
    sub.add_parser("reindex", help="Index the whole vault")
    index_cmd = sub.add_parser("index", help="Index one document now")
    index_cmd.add_argument("document", help="Vault-relative path")
    remove_cmd = sub.add_parser("remove", help="Remove one document from the index")
    remove_cmd.add_argument("document", help="Vault-relative path")
    search_cmd = sub.add_parser("search", help="Search the index")
    search_cmd.add_argument("query", nargs="+")

    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    try:
        config = build_config(args)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    async def _main() -> int:
        agent = SyncAgent(config, watch=args.command == "watch")

        try:
            if args.command == "watch":
                await agent.start()
                stop_event = asyncio.Event()
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGINT, signal.SIGTERM):
                    try:
                        loop.add_signal_handler(sig, stop_event.set)
                    except NotImplementedError:
                        pass
                print("Watching for changes (Ctrl+C to stop)...")
                await stop_event.wait()
                return 0

            if args.command == "reindex":
                report = await agent.reindex_vault()
                print(report)
                return 1 if report.failed else 0

            if args.command in ("index", "remove"):
                await agent.restore()

            if args.command == "index":
                return 0 if await agent.index_document(args.document) else 1

            if args.command == "remove":
                return 0 if await agent.remove_indexed_document(args.document) else 1

            if args.command == "search":
                for result in await agent.search(" ".join(args.query)):
                    preview = result.data[:100].replace("\n", " ")
                    print(f"{result.identifier}:{result.start_line}-{result.end_line}  {preview}")
                return 0
        finally:
            await agent.stop()
        return 0

    return asyncio.run(_main())


if __name__ == "__main__":
    sys.exit(main())
