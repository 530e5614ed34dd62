"""
ragsync - Keeps a Local RAG index in sync with a note vault.

Modules:
    - config: Agent settings and the Local RAG server config
    - exclusion: Path prefix / tag exclusion filter
    - vault: Document reads, tag parsing and vault listing
    - pending: Deduplicated, persisted set of documents to (re)index
    - events: Typed change events and the in-process event bus
    - watcher: watchdog-based vault change detection
    - listener: Applies change events to the pending set
    - client: aiohttp client for the indexing service
    - dispatcher: Periodic batch dispatch of pending documents
    - reindex: Whole-vault reindex with bounded retries
    - agent: Main entry point and CLI

Flow:
    Watcher → EventBus → ChangeListener → PendingSet → BatchDispatcher → RemoteIndexClient

Usage:
    from ragsync import SyncAgent

    agent = SyncAgent()
    await agent.start()
"""

from .agent import SyncAgent

__all__ = ["SyncAgent"]
