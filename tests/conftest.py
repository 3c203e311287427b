"""Shared test fixtures for merkle-doc-tree."""

from pathlib import Path

import pytest
from blake3 import blake3
from click.testing import CliRunner

from merkle_doc_tree.config import MDTConfig, get_data_dir, save_config
from merkle_doc_tree.hashing import HashFunction
from merkle_doc_tree.storage import (
    InMemoryDocumentStore,
    InMemoryNodeStore,
    InMemorySummaryStore,
)
from merkle_doc_tree.tree import DocumentTree

DOC_PREFIX = "3C3C3C3C"
NODE_PREFIX = "F5F5F5F5"


def make_documents(n: int) -> list[bytes]:
    """Distinct sample documents."""
    return [f"document number {i}\n".encode() for i in range(n)]


def reference_root(documents: list[bytes]) -> bytes:
    """Root computed level by level straight from blake3, without the package."""

    def h(prefix: str, *parts: bytes) -> bytes:
        hasher = blake3(prefix.encode("ascii"))
        for part in parts:
            hasher.update(part)
        return hasher.digest()

    level = [h(DOC_PREFIX, doc) for doc in documents]
    while len(level) > 1:
        level = [
            h(NODE_PREFIX, level[i], level[i + 1] if i + 1 < len(level) else b"")
            for i in range(0, len(level), 2)
        ]
    return level[0]


def setup_mdt_project(
    project_root: Path, documents: list[bytes], config: MDTConfig | None = None
) -> MDTConfig:
    """Write a config and the documents into a project directory.

    Args:
        project_root: Path to the project root
        documents: Document contents, written as doc_0.dat, doc_1.dat, ...
        config: Optional config to use (defaults)

    Returns:
        The config that was saved
    """
    config = config or MDTConfig()
    save_config(config, project_root)

    data_dir = get_data_dir(config, project_root)
    data_dir.mkdir(parents=True, exist_ok=True)
    for i, doc in enumerate(documents):
        (data_dir / config.doc_template.format(index=i)).write_bytes(doc)

    return config


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def hasher() -> HashFunction:
    return HashFunction(DOC_PREFIX, NODE_PREFIX)


@pytest.fixture
def memory_tree(hasher: HashFunction):
    """Factory for an in-memory tree over n sample documents (not built)."""

    def factory(n: int) -> DocumentTree:
        return DocumentTree(
            hasher=hasher,
            documents=InMemoryDocumentStore(make_documents(n)),
            nodes=InMemoryNodeStore(),
            summaries=InMemorySummaryStore(),
        )

    return factory


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """A temporary project with 5 documents, used as the working directory."""
    monkeypatch.delenv("MDT_DATA_DIR", raising=False)
    monkeypatch.delenv("MDT_LOG_LEVEL", raising=False)
    setup_mdt_project(tmp_path, make_documents(5))
    monkeypatch.chdir(tmp_path)
    return tmp_path
