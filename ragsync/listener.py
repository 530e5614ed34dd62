"""
Change Listener - Turns vault changes into queue updates.

Edits and creations only mark a document as pending, so a burst of saves
costs one indexing request at the next dispatch. Renames are handled right
away: the old path is removed from the index and the new one indexed.
"""

import logging
from typing import Awaitable, Callable

from .client import RemoteIndexClient
from .events import ChangeType, DocumentChange, EventBus
from .exclusion import ExclusionFilter
from .pending import PendingSet
from .vault import Vault


logger = logging.getLogger(__name__)


class ChangeListener:
    """Applies DocumentChange events to the pending set."""

    def __init__(
        self,
        pending: PendingSet,
        vault: Vault,
        client: RemoteIndexClient,
        exclusion: ExclusionFilter,
        index_document: Callable[[str], Awaitable[bool]],
        notify: Callable[[str], None],
    ):
        self.pending = pending
        self.vault = vault
        self.client = client
        self.exclusion = exclusion
        self.index_document = index_document
        self.notify = notify

    def subscribe(self, bus: EventBus) -> None:
        bus.subscribe(ChangeType.CREATED, self.on_modify)
        bus.subscribe(ChangeType.MODIFIED, self.on_modify)
        bus.subscribe(ChangeType.RENAMED, self.on_rename)
        bus.subscribe(ChangeType.DELETED, self.on_delete)

    def unsubscribe(self, bus: EventBus) -> None:
        bus.unsubscribe(ChangeType.CREATED, self.on_modify)
        bus.unsubscribe(ChangeType.MODIFIED, self.on_modify)
        bus.unsubscribe(ChangeType.RENAMED, self.on_rename)
        bus.unsubscribe(ChangeType.DELETED, self.on_delete)

    async def on_modify(self, change: DocumentChange) -> None:
        identifier = change.identifier
        if identifier in self.pending:
            return
        if self.exclusion.excludes_path(identifier):
            logger.debug(f"Ignoring change to excluded document: {identifier}")
            return

        if self.exclusion.checks_tags:
            try:
                tags = await self.vault.read_tags(identifier)
            except OSError as e:
                # The dispatcher sorts this out when it reads the document
                logger.debug(f"Could not read tags of {identifier}: {e}")
            else:
                if self.exclusion.excludes(identifier, tags):
                    logger.debug(f"Ignoring change to excluded document: {identifier}")
                    return

        self.pending.add(identifier)
        logger.debug(f"Queued {identifier} ({len(self.pending)} pending)")

    async def on_rename(self, change: DocumentChange) -> None:
        old, new = change.old_identifier, change.identifier
        if old:
            self.pending.remove(old)
            result = await self.client.delete_document(old)
            if not result.success:
                logger.warning(f"Failed to remove {old} from index: {result.error}")
                self.notify(f"Error removing \"{old}\" from the index. {result.error}")

        if self.exclusion.excludes_path(new):
            return
        await self.index_document(new)

    async def on_delete(self, change: DocumentChange) -> None:
        # Only local queue hygiene; the remote entry stays until removed explicitly
        self.pending.remove(change.identifier)
