"""Tree orchestration for Merkle Doc Tree.

Loads the descriptor from the stored summary, runs builds, appends and proof
generation against the configured stores, and writes the summary back.
"""

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from .config import MDTConfig, get_data_dir, load_config
from .errors import InvalidIndexError, StoreError
from .hashing import HashAlgorithm, HashFunction
from .merkle import IncrementalUpdater, ProofGenerator, TreeBuilder, TreeDescriptor
from .proof import Proof
from .storage import (
    DocumentStore,
    FileDocumentStore,
    FileNodeStore,
    FileProofStore,
    FileSummaryStore,
    NodeStore,
    ProofStore,
    SummaryStore,
)
from .summary import SummaryCodec, SummaryHeader
from .verify import ProofVerifier

logger = structlog.get_logger(__name__)


@dataclass
class TreeCheck:
    """Result of comparing the published summary with the node store."""

    missing: list[tuple[int, int]] = field(default_factory=list)
    mismatched: list[tuple[int, int]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.mismatched)


class DocumentTree:
    """Append-only Merkle tree over a document store."""

    def __init__(
        self,
        hasher: HashFunction,
        documents: DocumentStore,
        nodes: NodeStore,
        summaries: SummaryStore,
        tree_id: str = "MerkleTree",
    ):
        self.hasher = hasher
        self.documents = documents
        self.nodes = nodes
        self.summaries = summaries
        self.codec = SummaryCodec(hasher, tree_id)
        self.descriptor = TreeDescriptor.new(0)

    @classmethod
    def open(cls, project_root: Path, config: MDTConfig | None = None) -> "DocumentTree":
        """Open the file-backed tree of a project and load its summary."""
        config = config or load_config(project_root)
        data_dir = get_data_dir(config, project_root)
        tree = cls(
            hasher=HashFunction(
                config.doc_prefix, config.node_prefix, HashAlgorithm(config.hash_algorithm)
            ),
            documents=FileDocumentStore(data_dir, config.doc_template),
            nodes=FileNodeStore(data_dir, config.node_template),
            summaries=FileSummaryStore(data_dir / config.summary_file),
            tree_id=config.tree_id,
        )
        tree.load()
        return tree

    @property
    def elements(self) -> int:
        """Number of documents in the tree."""
        return self.descriptor.n

    def load(self) -> bool:
        """
        Reload the descriptor from the stored summary.

        Returns:
            False if no summary exists (the tree is empty)
        """
        text = self.summaries.read()
        if text is None:
            self.descriptor = TreeDescriptor.new(0)
            return False
        self.descriptor = self.codec.load_descriptor(text)
        return True

    def store(self) -> None:
        """Write the summary for the current tree."""
        self.summaries.write(self.codec.render(self.descriptor, self.nodes))

    def build(self, n: int) -> bytes:
        """Build the tree over documents ``0..n-1`` and store the summary."""
        if n <= 0:
            raise InvalidIndexError("Number of documents must be greater than 0")
        builder = TreeBuilder(self.hasher, self.documents, self.nodes)
        self.descriptor = builder.build(n)
        self.store()
        return self.root()

    def add_doc(self, idx: int) -> bytes:
        """Append document ``idx``, which must be the next index, and store the summary."""
        if idx != self.descriptor.n:
            raise InvalidIndexError(f"Invalid document index {idx}, expected: {self.descriptor.n}")
        updater = IncrementalUpdater(self.hasher, self.documents, self.nodes)
        root = updater.add_doc(self.descriptor, idx)
        self.store()
        return root

    def gen_proof(self, idx: int) -> Proof:
        if not 0 <= idx < self.descriptor.n:
            raise InvalidIndexError(f"Choose a valid doc index in [0, {self.descriptor.n})")
        return ProofGenerator(self.nodes).gen_proof(self.descriptor, idx)

    def write_proof(self, idx: int, proofs: ProofStore) -> Proof:
        proof = self.gen_proof(idx)
        proofs.write(proof.to_lines())
        logger.info("Proof written", index=idx, entries=len(proof))
        return proof

    def root(self) -> bytes:
        return self.header().root

    def header(self) -> SummaryHeader:
        """Parse the header of the stored summary."""
        text = self.summaries.read()
        if text is None:
            raise StoreError("No tree found. Run 'mdt build' first.")
        return self.codec.parse_header(text)

    def verify(self, document: bytes, proof: Proof) -> bool:
        """Verify a proof against the stored summary header."""
        return ProofVerifier(self.hasher.algorithm).verify(self.header(), document, proof)

    def check(self) -> TreeCheck:
        """Compare every node line of the stored summary with the node store."""
        text = self.summaries.read()
        if text is None:
            raise StoreError("No tree found. Run 'mdt build' first.")

        result = TreeCheck()
        for layer, index, expected in self.codec.iter_nodes(text):
            actual = self.nodes.get(layer, index)
            if actual is None:
                result.missing.append((layer, index))
            elif actual != expected:
                result.mismatched.append((layer, index))
        return result


def open_proof_store(project_root: Path, config: MDTConfig, name: str) -> FileProofStore:
    """Proof file by name inside the data directory."""
    return FileProofStore(get_data_dir(config, project_root) / name)


def read_document_file(project_root: Path, config: MDTConfig, name: str) -> bytes:
    """Read a document file by name inside the data directory."""
    path = get_data_dir(config, project_root) / name
    try:
        return path.read_bytes()
    except OSError as e:
        raise StoreError(f"Cannot read document {path}: {e}") from e


def read_summary_header(project_root: Path, config: MDTConfig) -> SummaryHeader:
    """Parse the published summary header without opening the node store."""
    summaries = FileSummaryStore(get_data_dir(config, project_root) / config.summary_file)
    text = summaries.read()
    if text is None:
        raise StoreError("No tree found. Run 'mdt build' first.")
    return SummaryCodec.parse_header(text)
