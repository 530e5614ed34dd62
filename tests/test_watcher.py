"""
Watcher Tests - Verify translation of file system events.

Tests:
- Vault-relative identifiers
- Skip rules (hidden paths, non-notes, outside the vault)
- Move handling (rename, atomic save, move out)
"""

import asyncio

import pytest
from watchdog.events import FileCreatedEvent, FileMovedEvent, DirModifiedEvent

from ragsync.events import ChangeType, DocumentChange, EventBus
from ragsync.watcher import Watcher, _VaultEventHandler


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def received(bus):
    changes = []

    async def record(change):
        changes.append(change)

    for change_type in ChangeType:
        bus.subscribe(change_type, record)
    return changes


@pytest.fixture
def watcher(vault, bus):
    w = Watcher(vault, bus)
    yield w
    w.stop()


async def settle(watcher, bus):
    # call_soon_threadsafe → publish → handler task
    await asyncio.sleep(0)
    await bus.drain()


class TestWatcher:
    """Tests for the Watcher class."""

    def test_watcher_creates(self, watcher):
        assert watcher is not None
        assert watcher.running is False

    @pytest.mark.asyncio
    async def test_modify_event(self, watcher, bus, received, vault_dir):
        watcher._loop = asyncio.get_running_loop()

        watcher.handle_path_event(str(vault_dir / "Notes" / "a.md"), ChangeType.MODIFIED)
        await settle(watcher, bus)

        assert received == [DocumentChange("Notes/a.md", ChangeType.MODIFIED)]

    @pytest.mark.asyncio
    async def test_skips_non_documents(self, watcher, bus, received, vault_dir, temp_dir):
        watcher._loop = asyncio.get_running_loop()

        watcher.handle_path_event(str(vault_dir / ".obsidian" / "workspace.md"), ChangeType.MODIFIED)
        watcher.handle_path_event(str(vault_dir / "Notes" / "image.png"), ChangeType.CREATED)
        watcher.handle_path_event(str(temp_dir / "outside.md"), ChangeType.MODIFIED)
        await settle(watcher, bus)

        assert received == []

    @pytest.mark.asyncio
    async def test_move_between_notes_is_rename(self, watcher, bus, received, vault_dir):
        watcher._loop = asyncio.get_running_loop()

        watcher.handle_move_event(str(vault_dir / "Notes" / "a.md"), str(vault_dir / "Notes" / "b.md"))
        await settle(watcher, bus)

        assert received == [
            DocumentChange("Notes/b.md", ChangeType.RENAMED, old_identifier="Notes/a.md")
        ]

    @pytest.mark.asyncio
    async def test_atomic_save_is_modify(self, watcher, bus, received, vault_dir):
        watcher._loop = asyncio.get_running_loop()

        watcher.handle_move_event(str(vault_dir / "Notes" / ".a.md.tmp"), str(vault_dir / "Notes" / "a.md"))
        await settle(watcher, bus)

        assert received == [DocumentChange("Notes/a.md", ChangeType.MODIFIED)]

    @pytest.mark.asyncio
    async def test_move_out_of_vault_is_delete(self, watcher, bus, received, vault_dir, temp_dir):
        watcher._loop = asyncio.get_running_loop()

        watcher.handle_move_event(str(vault_dir / "Notes" / "a.md"), str(temp_dir / "a.md"))
        await settle(watcher, bus)

        assert received == [DocumentChange("Notes/a.md", ChangeType.DELETED)]

    @pytest.mark.asyncio
    async def test_handler_maps_watchdog_events(self, watcher, bus, received, vault_dir):
        watcher._loop = asyncio.get_running_loop()
        handler = _VaultEventHandler(watcher)

        handler.on_created(FileCreatedEvent(str(vault_dir / "new.md")))
        handler.on_moved(FileMovedEvent(str(vault_dir / "new.md"), str(vault_dir / "renamed.md")))
        handler.on_modified(DirModifiedEvent(str(vault_dir / "Notes")))
        await settle(watcher, bus)

        assert [c.change_type for c in received] == [ChangeType.CREATED, ChangeType.RENAMED]

    def test_emit_without_loop_is_dropped(self, watcher, vault_dir):
        watcher.handle_path_event(str(vault_dir / "a.md"), ChangeType.MODIFIED)
        assert watcher.bus.pending_deliveries == 0
