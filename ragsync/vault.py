"""
Vault - Read access to the note collection.

Documents are addressed by their vault-relative POSIX path. File reads run
in a small thread pool so the event loop stays responsive while the
dispatcher and listener wait on disk.
"""

import asyncio
import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

import yaml

from .config import get_config, SyncConfig
from .errors import handle_error
from .models import DocumentRecord, TagMetadata


logger = logging.getLogger(__name__)

SYSTEM_FILES = {".DS_Store", "Thumbs.db", "desktop.ini"}

# "---" on the first line, YAML, then a closing "---" (or "...") line
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)^(?:---|\.\.\.)[ \t]*\r?$\n?", re.DOTALL | re.MULTILINE)

# A "#" that starts a word, followed by a tag body that is not purely numeric
_INLINE_TAG_RE = re.compile(r"(?<![\w#&/])#([\w/-]*[^\W\d][\w/-]*)")

_FENCE_RE = re.compile(r"^(```|~~~).*?^\1", re.DOTALL | re.MULTILINE)
_INLINE_CODE_RE = re.compile(r"`[^`\n]*`")


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    """Split a note into (frontmatter YAML, body)."""
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    return match.group(1), text[match.end():]


def _frontmatter_tags(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        logger.debug(f"Ignoring malformed frontmatter: {e}")
        return ()
    if not isinstance(data, dict):
        return ()

    tags: List[str] = []
    for key in ("tags", "tag"):
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str):
            tags.extend(t for t in re.split(r"[,\s]+", value) if t)
        elif isinstance(value, (list, tuple)):
            tags.extend(str(t) for t in value if t is not None)
        else:
            tags.append(str(value))
    return tuple(tags)


def _inline_tags(body: str) -> Tuple[str, ...]:
    body = _FENCE_RE.sub("", body)
    body = _INLINE_CODE_RE.sub("", body)
    return tuple(dict.fromkeys(_INLINE_TAG_RE.findall(body)))


def parse_tags(content: bytes) -> TagMetadata:
    """Extract frontmatter and inline tags from raw note content."""
    text = content.decode("utf-8", errors="replace")
    raw, body = split_frontmatter(text)
    return TagMetadata(
        frontmatter_tags=_frontmatter_tags(raw),
        inline_tags=_inline_tags(body),
    )


class Vault:
    """
    The local document collection.

    Only files with a configured extension are documents; hidden files and
    directories (.obsidian, .trash, ...) are never part of the collection.
    """

    def __init__(self, config: SyncConfig | None = None):
        self.config = config or get_config()
        self.root = self.config.vault_root
        self._executor: ThreadPoolExecutor | None = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="vault")
        return self._executor

    def path_for(self, identifier: str) -> Path:
        return self.root.joinpath(*PurePosixPath(identifier).parts)

    def identifier_for(self, path: Path | str) -> Optional[str]:
        """Vault identifier for an absolute path, or None if outside the vault."""
        try:
            relative = Path(path).resolve().relative_to(self.root)
        except ValueError:
            return None
        return relative.as_posix()

    def is_document(self, identifier: str) -> bool:
        """Check if an identifier names something the vault would index."""
        parts = PurePosixPath(identifier).parts
        if not parts or any(part.startswith(".") for part in parts):
            return False
        if parts[-1] in SYSTEM_FILES:
            return False
        return PurePosixPath(identifier).suffix.lower() in self.config.file_extensions

    def exists(self, identifier: str) -> bool:
        return self.is_document(identifier) and self.path_for(identifier).is_file()

    async def read_content(self, identifier: str) -> bytes:
        """Read raw bytes; raises OSError subclasses like open() does."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._get_executor(), self.path_for(identifier).read_bytes
        )

    async def read_tags(self, identifier: str) -> TagMetadata:
        return parse_tags(await self.read_content(identifier))

    async def read_record(self, identifier: str) -> DocumentRecord:
        content = await self.read_content(identifier)
        return DocumentRecord(identifier=identifier, content=content, tags=parse_tags(content))

    async def list_identifiers(self, exclude_prefixes: Iterable[str] = ()) -> List[str]:
        """
        List every document identifier, sorted.

        Directories whose identifier matches an excluded prefix are not
        descended into; files are still checked against the prefixes
        because a prefix need not end at a folder boundary.
        """
        prefixes = tuple(p for p in exclude_prefixes if p)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._get_executor(), self._walk, prefixes
        )

    def _walk(self, prefixes: Tuple[str, ...]) -> List[str]:
        found: List[str] = []
        stack = [self.root]

        while stack:
            directory = stack.pop()
            try:
                entries = list(os.scandir(directory))
            except OSError as e:
                handle_error(e, str(directory), "list_identifiers")
                continue

            for entry in entries:
                if entry.name.startswith("."):
                    continue
                identifier = Path(entry.path).relative_to(self.root).as_posix()
                try:
                    if entry.is_dir(follow_symlinks=False):
                        if any((identifier + "/").startswith(p) for p in prefixes):
                            continue
                        stack.append(Path(entry.path))
                    elif entry.is_file(follow_symlinks=False):
                        if self.is_document(identifier) and not any(
                            identifier.startswith(p) for p in prefixes
                        ):
                            found.append(identifier)
                except OSError as e:
                    handle_error(e, identifier, "list_identifiers")

        found.sort()
        return found

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
