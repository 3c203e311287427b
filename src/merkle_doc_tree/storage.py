"""Document, node, summary and proof stores for Merkle Doc Tree."""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

import structlog
from pydantic import BaseModel, ValidationError

from .errors import StoreError

logger = structlog.get_logger(__name__)

# (layer, index, digest)
NodeEntry = tuple[int, int, bytes]


class DocumentStore(ABC):
    """Abstract base class for indexed document storage."""

    @abstractmethod
    def get(self, index: int) -> bytes:
        """
        Read a document.

        Raises:
            StoreError: If the document does not exist or cannot be read
        """
        ...


class NodeStore(ABC):
    """Abstract base class for node hashes keyed by (layer, index)."""

    @abstractmethod
    def get(self, layer: int, index: int) -> bytes | None:
        """Read a node hash, or None when the node does not exist."""
        ...

    @abstractmethod
    def put(self, layer: int, index: int, value: bytes) -> None:
        """Write a node hash."""
        ...

    def put_many(self, entries: list[NodeEntry]) -> None:
        """Commit a batch of node hashes."""
        for layer, index, value in entries:
            self.put(layer, index, value)


class SummaryStore(ABC):
    """Abstract base class for the persisted tree summary."""

    @abstractmethod
    def read(self) -> str | None:
        """Read the summary text, or None when no tree has been stored."""
        ...

    @abstractmethod
    def write(self, text: str) -> None:
        ...


class ProofStore(ABC):
    """Abstract base class for a persisted inclusion proof."""

    @abstractmethod
    def write(self, lines: list[str]) -> None:
        ...

    @abstractmethod
    def read(self) -> str:
        """
        Read the proof text.

        Raises:
            StoreError: If no proof has been written
        """
        ...


# In-memory stores


class InMemoryDocumentStore(DocumentStore):
    def __init__(self, documents: list[bytes] | None = None):
        self.documents: list[bytes] = list(documents or [])

    def append(self, document: bytes) -> int:
        """Add a document and return its index."""
        self.documents.append(document)
        return len(self.documents) - 1

    def get(self, index: int) -> bytes:
        if index < 0 or index >= len(self.documents):
            raise StoreError(f"Document {index} not found")
        return self.documents[index]


class InMemoryNodeStore(NodeStore):
    def __init__(self) -> None:
        self.nodes: dict[tuple[int, int], bytes] = {}

    def get(self, layer: int, index: int) -> bytes | None:
        return self.nodes.get((layer, index))

    def put(self, layer: int, index: int, value: bytes) -> None:
        self.nodes[(layer, index)] = value


class InMemorySummaryStore(SummaryStore):
    def __init__(self, text: str | None = None):
        self.text = text

    def read(self) -> str | None:
        return self.text

    def write(self, text: str) -> None:
        self.text = text


class InMemoryProofStore(ProofStore):
    def __init__(self) -> None:
        self.lines: list[str] | None = None

    def write(self, lines: list[str]) -> None:
        self.lines = list(lines)

    def read(self) -> str:
        if self.lines is None:
            raise StoreError("Proof not found")
        return "".join(f"{line}\n" for line in self.lines)


# Filesystem stores


def _atomic_write(path: Path, content: bytes) -> None:
    """Write a file via a temporary sibling and rename."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StoreError(f"Cannot write {path}: {e}") from e


def _read_bytes(path: Path, what: str) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise StoreError(f"{what} not found: {path}") from None
    except OSError as e:
        raise StoreError(f"Cannot read {what.lower()} {path}: {e}") from e


class FileDocumentStore(DocumentStore):
    """Documents stored as individual files named from a template."""

    def __init__(self, data_dir: Path, template: str = "doc_{index}.dat"):
        self.data_dir = data_dir
        self.template = template

    def path_for(self, index: int) -> Path:
        return self.data_dir / self.template.format(index=index)

    def get(self, index: int) -> bytes:
        return _read_bytes(self.path_for(index), "Document")


class JournalEntry(BaseModel):
    """A pending node write."""

    layer: int
    index: int
    hash: str  # Lowercase hex digest


class Journal(BaseModel):
    """Write-ahead record of a node batch not yet fully applied."""

    entries: list[JournalEntry]


class FileNodeStore(NodeStore):
    """
    Node hashes stored as one raw-digest file per (layer, index).

    Batches written with put_many go through a write-ahead journal: the
    journal is written first, each node is then replaced atomically, and the
    journal is removed last. A journal left behind by an interrupted batch
    is replayed when the store is opened.
    """

    def __init__(
        self,
        data_dir: Path,
        template: str = "node_{layer}_{index}.bin",
        journal_path: Path | None = None,
    ):
        self.data_dir = data_dir
        self.template = template
        self.journal_path = journal_path or data_dir / ".nodes.journal"
        self.recover()

    def path_for(self, layer: int, index: int) -> Path:
        return self.data_dir / self.template.format(layer=layer, index=index)

    def get(self, layer: int, index: int) -> bytes | None:
        try:
            return self.path_for(layer, index).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"Cannot read node ({layer}, {index}): {e}") from e

    def put(self, layer: int, index: int, value: bytes) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.path_for(layer, index), value)

    def put_many(self, entries: list[NodeEntry]) -> None:
        if not entries:
            return
        journal = Journal(
            entries=[
                JournalEntry(layer=layer, index=index, hash=value.hex())
                for layer, index, value in entries
            ]
        )
        self.journal_path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.journal_path, json.dumps(journal.model_dump()).encode())
        self._apply(journal)

    def recover(self) -> bool:
        """Replay a leftover journal. Returns True if one was replayed."""
        if not self.journal_path.exists():
            return False

        try:
            with open(self.journal_path) as f:
                journal = Journal.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Unreadable node journal {self.journal_path}: {e}") from e

        logger.warning(
            "Replaying interrupted node batch",
            journal=str(self.journal_path),
            entries=len(journal.entries),
        )
        self._apply(journal)
        return True

    def _apply(self, journal: Journal) -> None:
        for entry in journal.entries:
            self.put(entry.layer, entry.index, bytes.fromhex(entry.hash))
        self.journal_path.unlink()


class FileSummaryStore(SummaryStore):
    def __init__(self, path: Path):
        self.path = path

    def read(self) -> str | None:
        """Read the summary. Returns None if the file doesn't exist."""
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise StoreError(f"Summary {self.path} is not valid UTF-8: {e}") from e
        except OSError as e:
            raise StoreError(f"Cannot read summary {self.path}: {e}") from e

    def write(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.path, text.encode("utf-8"))


class FileProofStore(ProofStore):
    def __init__(self, path: Path):
        self.path = path

    def write(self, lines: list[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(self.path, "".join(f"{line}\n" for line in lines).encode())

    def read(self) -> str:
        return _read_bytes(self.path, "Proof").decode(errors="replace")
