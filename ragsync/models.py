"""
Data Models - Type definitions for the sync pipeline.

These dataclasses represent the data flowing between the vault, the queue
and the remote indexing service.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Set, Tuple


@dataclass(frozen=True)
class TagMetadata:
    """Tags found in a note, as written (not yet normalized)."""
    frontmatter_tags: Tuple[str, ...] = ()
    inline_tags: Tuple[str, ...] = ()


@dataclass
class DocumentRecord:
    """
    A document ready for transmission.

    Assembled just before a request and discarded afterwards.
    """
    identifier: str
    content: bytes
    tags: TagMetadata = field(default_factory=TagMetadata)

    def encoded(self) -> str:
        """Content as base64 text, the wire format of the indexing API."""
        return base64.b64encode(self.content).decode("ascii")

    def to_payload(self) -> Dict[str, str]:
        return {"document_name": self.identifier, "document_data": self.encoded()}


@dataclass
class BatchResponse:
    """Partial-failure report for one batch request."""
    failed_documents: Set[str] = field(default_factory=set)

    @classmethod
    def from_json(cls, data: Any) -> "BatchResponse":
        failed = data.get("failed_documents") if isinstance(data, dict) else None
        return cls(failed_documents={str(name) for name in failed or []})


@dataclass
class SearchResult:
    """A chunk returned by the search endpoint."""
    document_name: str
    data: str
    chunk_index: int = 0
    start_line: int = 0
    end_line: int = 0

    @property
    def identifier(self) -> str:
        """Vault identifier of the matching document."""
        name = self.document_name
        return name[2:] if name.startswith("./") else name

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        return cls(
            document_name=str(data.get("document_name", "")),
            data=str(data.get("data", "")),
            chunk_index=int(data.get("chunk_index") or 0),
            start_line=int(data.get("start_line") or 0),
            end_line=int(data.get("end_line") or 0),
        )


@dataclass
class DispatchStats:
    """Statistics from one dispatcher tick."""
    documents_pending: int = 0
    documents_sent: int = 0
    documents_excluded: int = 0
    documents_missing: int = 0
    batches: int = 0
    requeued: int = 0
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        return (
            f"Sent {self.documents_sent} of {self.documents_pending} pending documents "
            f"in {self.batches} batches "
            f"({self.requeued} requeued, "
            f"{self.documents_excluded} excluded, "
            f"{self.documents_missing} missing) "
            f"in {self.duration_seconds:.1f}s"
        )


@dataclass
class ReindexReport:
    """Outcome of a bulk reindex."""
    documents_found: int = 0
    documents_excluded: int = 0
    documents_indexed: int = 0
    passes: int = 0
    failed: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def retries(self) -> int:
        return max(self.passes - 1, 0)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def __str__(self) -> str:
        return (
            f"Reindexed {self.documents_indexed} of {self.documents_found} documents "
            f"({self.failure_count} failed, "
            f"{self.documents_excluded} excluded, "
            f"{self.retries} retries) "
            f"in {self.duration_seconds:.1f}s"
        )
