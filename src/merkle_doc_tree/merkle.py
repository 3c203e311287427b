"""Append-only Merkle tree construction, incremental update and proof generation.

Layer 0 holds one leaf per document. Layer ``i`` holds ``ceil(n / 2**i)``
nodes, each hashed from the pair of children below it; a node without a
right child is hashed with an empty right input. The root is the single node
at layer ``max_layer(n)``.
"""

from dataclasses import dataclass

import structlog

from .errors import CorruptedStoreError, StoreError
from .hashing import HashFunction
from .proof import Proof, ProofDirection, ProofEntry
from .storage import DocumentStore, NodeEntry, NodeStore

logger = structlog.get_logger(__name__)


def max_layer(n: int) -> int:
    """Height of the root layer for n documents."""
    return (n - 1).bit_length() if n > 1 else 0


def layer_len(n: int, layer: int) -> int:
    """Number of nodes at a layer, ``ceil(n / 2**layer)``."""
    return (n + (1 << layer) - 1) >> layer


@dataclass
class TreeDescriptor:
    """Document count and root height of a tree. Holds no node data."""

    n: int = 0
    max_layer: int = 0

    @classmethod
    def new(cls, n: int) -> "TreeDescriptor":
        if n < 0:
            raise ValueError(f"Document count cannot be negative: {n}")
        return cls(n=n, max_layer=max_layer(n))

    @property
    def height(self) -> int:
        """Number of layers, including the leaves."""
        return self.max_layer + 1

    def layer_len(self, layer: int) -> int:
        return layer_len(self.n, layer)

    def has_node(self, layer: int, index: int) -> bool:
        return 0 <= layer <= self.max_layer and 0 <= index < self.layer_len(layer)


def read_node(nodes: NodeStore, layer: int, index: int) -> bytes:
    """Read a node that must exist."""
    value = nodes.get(layer, index)
    if value is None:
        raise CorruptedStoreError(layer, index)
    return value


class TreeBuilder:
    """Computes every layer of a tree from its documents."""

    def __init__(self, hasher: HashFunction, documents: DocumentStore, nodes: NodeStore):
        self.hasher = hasher
        self.documents = documents
        self.nodes = nodes

    def build(self, n: int) -> TreeDescriptor:
        """
        Hash documents ``0..n-1`` into leaves and compute all layers above.

        Rebuilding over unchanged documents rewrites identical values.

        Args:
            n: Number of documents

        Returns:
            Descriptor of the built tree

        Raises:
            StoreError: If a document is missing
        """
        descriptor = TreeDescriptor.new(n)
        logger.info("Building tree", documents=n, height=descriptor.height)

        for j in range(n):
            self.nodes.put(0, j, self.hasher.leaf(self.documents.get(j)))

        for i in range(1, descriptor.max_layer + 1):
            below = descriptor.layer_len(i - 1)
            for j in range(descriptor.layer_len(i)):
                left = read_node(self.nodes, i - 1, 2 * j)
                right = read_node(self.nodes, i - 1, 2 * j + 1) if 2 * j + 1 < below else b""
                self.nodes.put(i, j, self.hasher.node(left, right))

        logger.debug("Tree built", documents=n)
        return descriptor


class IncrementalUpdater:
    """Appends one document and recomputes the path from its leaf to the root."""

    def __init__(self, hasher: HashFunction, documents: DocumentStore, nodes: NodeStore):
        self.hasher = hasher
        self.documents = documents
        self.nodes = nodes

    def add_doc(self, descriptor: TreeDescriptor, idx: int) -> bytes:
        """
        Add document ``idx`` to the tree. The caller guarantees ``idx == descriptor.n``.

        Only nodes on the new leaf's path change, since every other subtree
        covers documents that were already present. The leaf and all path
        nodes are computed first and committed to the store in one batch;
        the descriptor is updated after the commit.

        Returns:
            The new root hash
        """
        new_n = descriptor.n + 1
        new_max_layer = max_layer(new_n)

        pending: dict[tuple[int, int], bytes] = {
            (0, idx): self.hasher.leaf(self.documents.get(idx)),
        }

        def child(layer: int, index: int) -> bytes:
            if (layer, index) in pending:
                return pending[(layer, index)]
            return read_node(self.nodes, layer, index)

        j = idx // 2
        for i in range(1, new_max_layer + 1):
            left = child(i - 1, 2 * j)
            right = child(i - 1, 2 * j + 1) if 2 * j + 1 < layer_len(new_n, i - 1) else b""
            pending[(i, j)] = self.hasher.node(left, right)
            j //= 2

        entries: list[NodeEntry] = [(layer, index, value) for (layer, index), value in pending.items()]
        self.nodes.put_many(entries)

        descriptor.n = new_n
        descriptor.max_layer = new_max_layer
        logger.info("Document added", index=idx, documents=new_n, updated_nodes=len(entries))
        return pending[(new_max_layer, 0)]


class ProofGenerator:
    """Derives inclusion proofs from a node store."""

    def __init__(self, nodes: NodeStore):
        self.nodes = nodes

    def gen_proof(self, descriptor: TreeDescriptor, idx: int) -> Proof:
        """
        Collect the sibling of each node on the path from leaf ``idx`` to the root.

        The caller guarantees ``0 <= idx < descriptor.n``. A left child whose
        right sibling lies past the end of its layer gets an empty sibling.
        """
        entries = []
        j = idx
        for i in range(descriptor.max_layer):
            if j % 2 == 0:
                if j + 1 < descriptor.layer_len(i):
                    sibling = read_node(self.nodes, i, j + 1)
                else:
                    sibling = b""
                entries.append(ProofEntry(ProofDirection.RIGHT, sibling))
            else:
                sibling = self.nodes.get(i, j - 1)
                if sibling is None:
                    raise CorruptedStoreError(i, j - 1, "left sibling missing")
                entries.append(ProofEntry(ProofDirection.LEFT, sibling))
            j //= 2

        logger.debug("Proof generated", index=idx, entries=len(entries))
        return Proof(entries)


def read_root(nodes: NodeStore, descriptor: TreeDescriptor) -> bytes:
    """Read the root hash of a non-empty tree."""
    if descriptor.n == 0:
        raise StoreError("Empty tree has no root")
    return read_node(nodes, descriptor.max_layer, 0)
