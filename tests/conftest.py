"""
Test Configuration - Shared fixtures for sync tests.

Uses pytest fixtures to create an isolated vault, plugin data directory and
a recording stand-in for the indexing service.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List, Optional, Set

import pytest
from aioresponses import aioresponses

from ragsync.config import SyncConfig, set_config
from ragsync.dispatcher import BatchDispatcher
from ragsync.errors import ClientResult, TransportError
from ragsync.exclusion import ExclusionFilter
from ragsync.models import BatchResponse, SearchResult
from ragsync.pending import PendingSet
from ragsync.vault import Vault


class FakeClient:
    """Records every call; failures are configured per test."""

    def __init__(self):
        self.batches: List[List[str]] = []
        self.processed: List[str] = []
        self.deleted: List[str] = []
        self.queries: List[str] = []
        self.always_fail: Set[str] = set()
        self.extra_failures: Set[str] = set()
        self.transport_down = False
        self.single_down = False
        self.delete_down = False
        self.search_results: List[SearchResult] = []
        self.on_batch: Optional[Callable[[List[str]], None]] = None
        self.closed = False

    async def batch_process_documents(self, documents) -> ClientResult:
        names = [doc.identifier for doc in documents]
        self.batches.append(names)
        if self.on_batch:
            self.on_batch(names)
        if self.transport_down:
            return ClientResult.failed(TransportError("connection refused"))
        failed = {name for name in names if name in self.always_fail} | self.extra_failures
        return ClientResult.ok(BatchResponse(failed_documents=failed))

    async def process_document(self, name: str, data: str) -> ClientResult:
        self.processed.append(name)
        if self.single_down:
            return ClientResult.failed(TransportError("connection refused"))
        return ClientResult.ok()

    async def delete_document(self, name: str) -> ClientResult:
        self.deleted.append(name)
        if self.delete_down:
            return ClientResult.failed(TransportError("connection refused"))
        return ClientResult.ok()

    async def search(self, query: str) -> ClientResult:
        self.queries.append(query)
        if self.transport_down:
            return ClientResult.failed(TransportError("connection refused"))
        return ClientResult.ok(list(self.search_results))

    async def close(self):
        self.closed = True

    @property
    def sent(self) -> List[str]:
        return [name for batch in self.batches for name in batch]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="ragsync_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def vault_dir(temp_dir: Path) -> Path:
    path = temp_dir / "vault"
    path.mkdir()
    return path


@pytest.fixture
def test_config(temp_dir: Path, vault_dir: Path) -> SyncConfig:
    """Create an isolated test configuration."""
    config = SyncConfig(
        vault_root=vault_dir,
        data_dir=temp_dir / "data",
        config_path=temp_dir / "config.yml",
        exclude_paths=["Archive/"],
        exclude_tags=["private"],
        batch_size=10,
        max_retry_attempts=5,
        shutdown_grace_seconds=0.5,
    )
    set_config(config)
    return config


@pytest.fixture
def write_note(vault_dir: Path) -> Callable[..., Path]:
    """Write a note into the vault and return its path."""
    def _write(identifier: str, text: str = "Some text.\n") -> Path:
        path = vault_dir / identifier
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def sample_notes(write_note) -> Dict[str, Path]:
    """A small vault with included and excluded notes."""
    return {
        "plain": write_note("Notes/z.md", "# Heading\n\nNothing special here.\n"),
        "archived": write_note("Archive/x.md", "Old stuff.\n"),
        "private_inline": write_note("Notes/y.md", "Diary entry #private\n"),
        "private_front": write_note("Notes/w.md", "---\ntags: [private, diary]\n---\nSecret.\n"),
        "tagged": write_note("Projects/p.md", "---\ntags: work\n---\nA #todo item.\n"),
        "attachment": write_note("Notes/image.png", "not a note"),
        "hidden": write_note(".obsidian/workspace.md", "ui state"),
    }


@pytest.fixture
def vault(test_config: SyncConfig) -> Generator[Vault, None, None]:
    v = Vault(test_config)
    yield v
    v.close()


@pytest.fixture
def exclusion(test_config: SyncConfig) -> ExclusionFilter:
    return ExclusionFilter.from_config(test_config)


@pytest.fixture
def pending(test_config: SyncConfig) -> PendingSet:
    return PendingSet(test_config.pending_path)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def dispatcher(pending, vault, fake_client, exclusion, test_config) -> BatchDispatcher:
    return BatchDispatcher(pending, vault, fake_client, exclusion, test_config)


@pytest.fixture
def mock_aioresponse():
    with aioresponses() as m:
        yield m
