"""
Pending Set - Documents waiting to be (re)indexed.

The set is owned by the agent and shared with the change listener (which
adds to it) and the dispatcher (which drains it). It is stored on disk as a
sorted JSON array so queued work survives restarts.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, List, Set

from .errors import ErrorAction, PersistenceError, handle_error

if TYPE_CHECKING:
    from .exclusion import ExclusionFilter
    from .vault import Vault


logger = logging.getLogger(__name__)


class PendingSet:
    """A deduplicated set of document identifiers, persisted as JSON."""

    def __init__(self, state_path: Path):
        self.state_path = Path(state_path)
        self._items: Set[str] = set()

    def add(self, identifier: str) -> None:
        self._items.add(identifier)

    def remove(self, identifier: str) -> None:
        self._items.discard(identifier)

    def update(self, identifiers: Iterable[str]) -> None:
        self._items.update(identifiers)

    def drain(self) -> Set[str]:
        """Take everything pending and leave a fresh, empty set behind."""
        items, self._items = self._items, set()
        return items

    def snapshot(self) -> List[str]:
        return sorted(self._items)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"PendingSet({len(self._items)} pending, state={self.state_path})"

    # --- Persistence ---

    def _read_state(self) -> List[str]:
        if not self.state_path.exists():
            return []

        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable pending state {self.state_path}: {e}")
            return []

        if not isinstance(data, list):
            logger.warning(f"Ignoring pending state {self.state_path}: expected a list")
            return []

        return [item for item in data if isinstance(item, str)]

    async def load(self, vault: "Vault", exclusion: "ExclusionFilter") -> "PendingSet":
        """
        Restore the persisted identifiers.

        Identifiers whose document no longer exists, or which the current
        exclusion rules now reject, are dropped. Documents that cannot be
        read right now are kept.
        """
        restored: Set[str] = set()

        for identifier in self._read_state():
            if exclusion.excludes_path(identifier) or not vault.exists(identifier):
                logger.debug(f"Dropping stale pending entry: {identifier}")
                continue

            if exclusion.checks_tags:
                try:
                    tags = await vault.read_tags(identifier)
                except OSError as e:
                    # Unreadable for now; keep it so the next tick decides
                    if handle_error(e, identifier, "load_pending") is ErrorAction.RETRY:
                        restored.add(identifier)
                    continue
                if exclusion.excludes(identifier, tags):
                    logger.debug(f"Dropping excluded pending entry: {identifier}")
                    continue

            restored.add(identifier)

        self._items |= restored
        logger.info(f"Restored {len(restored)} pending documents")
        return self

    def _write_state(self, items: List[str]) -> None:
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=".pending-", suffix=".json", dir=str(self.state_path.parent)
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(items, f, indent=2)
                os.replace(tmp_name, self.state_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(str(e)) from e

    def persist(self, include: Iterable[str] = ()) -> bool:
        """
        Write the pending identifiers (plus `include`) to disk.

        Never raises; failures are logged and the in-memory set is kept.
        """
        items = sorted(self._items.union(include))
        try:
            self._write_state(items)
        except PersistenceError as e:
            handle_error(e, str(self.state_path), "persist")
            return False

        logger.debug(f"Persisted {len(items)} pending documents")
        return True
