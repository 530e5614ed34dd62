"""
Watcher - Real-time vault change detection.

Uses watchdog for cross-platform file system monitoring. Events arrive on
the observer thread and are handed to the event loop, where they are
published on the EventBus as vault-relative DocumentChange events.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import ChangeType, DocumentChange, EventBus
from .vault import Vault


logger = logging.getLogger(__name__)


class _VaultEventHandler(FileSystemEventHandler):
    """Forwards watchdog events to the Watcher."""

    def __init__(self, watcher: "Watcher"):
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.handle_path_event(event.src_path, ChangeType.CREATED)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.handle_path_event(event.src_path, ChangeType.MODIFIED)

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.handle_path_event(event.src_path, ChangeType.DELETED)

    def on_moved(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher.handle_move_event(event.src_path, event.dest_path)


class Watcher:
    """
    Vault watcher publishing changes to an EventBus.

    Files outside the vault, hidden paths and non-document files are
    ignored. A move from a non-document name onto a document (an editor's
    atomic save) is reported as a modification of the target.
    """

    def __init__(self, vault: Vault, bus: EventBus):
        self.vault = vault
        self.bus = bus
        self._observer: Optional[Observer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._running = False

    def start(self):
        """Start watching the vault root. Must be called from the event loop."""
        self._loop = asyncio.get_running_loop()
        root = self.vault.root

        self._observer = Observer()
        self._observer.schedule(_VaultEventHandler(self), str(root), recursive=True)
        self._running = True
        self._observer.start()
        logger.info(f"Watching: {root}")

    def stop(self):
        """Stop watching."""
        self._running = False

        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None

        logger.info("Vault watcher stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _to_identifier(self, path) -> Optional[str]:
        identifier = self.vault.identifier_for(Path(path))
        if identifier is None or not self.vault.is_document(identifier):
            return None
        return identifier

    def handle_path_event(self, path, change_type: ChangeType):
        identifier = self._to_identifier(path)
        if identifier is None:
            return
        self._emit(DocumentChange(identifier, change_type))

    def handle_move_event(self, src_path, dest_path):
        old = self._to_identifier(src_path)
        new = self._to_identifier(dest_path)

        if old and new:
            change = DocumentChange(new, ChangeType.RENAMED, old_identifier=old)
        elif new:
            change = DocumentChange(new, ChangeType.MODIFIED)
        elif old:
            change = DocumentChange(old, ChangeType.DELETED)
        else:
            return
        self._emit(change)

    def _emit(self, change: DocumentChange):
        """Hand a change to the event loop thread."""
        if self._loop is None or self._loop.is_closed():
            logger.debug(f"Dropping change, no event loop: {change}")
            return
        self._loop.call_soon_threadsafe(self.bus.publish, change)
