"""
Error Handling - Centralized error policies and custom exceptions.

This module defines how different error types are handled throughout the
sync pipeline: which failures drop a document, which keep it pending for
the next cycle, and at what level each one is logged.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional


logger = logging.getLogger(__name__)


class ErrorAction(Enum):
    """What to do with a document when an error occurs."""
    SKIP = auto()           # Drop the document from this cycle
    RETRY = auto()          # Keep it pending for the next cycle


@dataclass
class ErrorPolicy:
    """Policy for handling a specific error type."""
    action: ErrorAction
    log_level: int
    message_template: str = "{document}: {error}"


class SyncError(Exception):
    """Base exception for sync errors."""
    pass


class ConfigurationError(SyncError):
    """Backend config or plugin settings are missing or malformed."""
    pass


class TransportError(SyncError):
    """The remote indexing service could not be reached or answered badly."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class PersistenceError(SyncError):
    """The pending set could not be written to disk."""
    pass


class ReindexInProgressError(SyncError):
    """A bulk reindex was requested while another one is running."""
    pass


# Error type to policy mapping (checked in order, first match wins)
ERROR_POLICIES: dict[type, ErrorPolicy] = {
    FileNotFoundError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Document not found (possibly deleted): {document}"
    ),
    IsADirectoryError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.DEBUG,
        message_template="Expected document, got directory: {document}"
    ),
    PermissionError: ErrorPolicy(
        action=ErrorAction.SKIP,
        log_level=logging.WARNING,
        message_template="Permission denied: {document}"
    ),
    OSError: ErrorPolicy(
        action=ErrorAction.RETRY,
        log_level=logging.WARNING,
        message_template="OS error reading document: {document} - {error}"
    ),
    TransportError: ErrorPolicy(
        action=ErrorAction.RETRY,
        log_level=logging.WARNING,
        message_template="Indexing service unavailable for {document}: {error}"
    ),
    PersistenceError: ErrorPolicy(
        action=ErrorAction.RETRY,
        log_level=logging.ERROR,
        message_template="Could not save pending documents to {document}: {error}"
    ),
}


def handle_error(
    error: Exception,
    document: Optional[str] = None,
    context: str = ""
) -> ErrorAction:
    """
    Handle an error according to the defined policies.

    Args:
        error: The exception that occurred
        document: Identifier (or file) being processed, if applicable
        context: Additional context for logging

    Returns:
        The action to take (SKIP or RETRY)
    """
    policy = None
    for error_type, p in ERROR_POLICIES.items():
        if isinstance(error, error_type):
            policy = p
            break

    # Default policy for unknown errors
    if policy is None:
        policy = ErrorPolicy(
            action=ErrorAction.SKIP,
            log_level=logging.ERROR,
            message_template="Unexpected error: {document} - {error}"
        )

    message = policy.message_template.format(
        document=document or "<unknown>", error=str(error)
    )
    if context:
        message = f"[{context}] {message}"

    logger.log(policy.log_level, message)

    return policy.action


def log_task_exception(task: "asyncio.Task") -> None:
    """Done-callback that logs exceptions from fire-and-forget tasks."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background task {task.get_name()} failed: {error!r}")


@dataclass
class ClientResult:
    """Outcome of a single remote call."""
    success: bool
    value: Any = None
    error: Optional[TransportError] = None

    @classmethod
    def ok(cls, value: Any = None) -> "ClientResult":
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, error: TransportError) -> "ClientResult":
        return cls(success=False, error=error)
