"""Textual tree summary: resumable state and public verification metadata.

Format::

    <TreeId>:<AlgoId>:<DocPrefix>:<NodePrefix>:<n>:<height>:<rootHex>
    <layer>:<index>:<hashHex>
    ...

Node lines follow the header in layer-major, index-ascending order.
"""

import string
from dataclasses import dataclass

from .errors import FormatError, StoreError
from .hashing import HashAlgorithm, HashFunction
from .merkle import TreeDescriptor, max_layer, read_node, read_root
from .storage import NodeStore

DEFAULT_TREE_ID = "MerkleTree"
HEADER_FIELDS = 7


@dataclass(frozen=True)
class SummaryHeader:
    """
    First line of a summary.

    Attributes:
        tree_id: Free-form tree label
        algorithm: Hash algorithm of every node
        doc_prefix: Leaf domain-separation prefix (upper-case text)
        node_prefix: Internal node domain-separation prefix (upper-case text)
        n: Number of documents
        height: Number of layers, ``max_layer + 1``
        root: Root hash
    """

    tree_id: str
    algorithm: HashAlgorithm
    doc_prefix: str
    node_prefix: str
    n: int
    height: int
    root: bytes

    def to_line(self) -> str:
        return ":".join(
            [
                self.tree_id,
                self.algorithm.value,
                self.doc_prefix.upper(),
                self.node_prefix.upper(),
                str(self.n),
                str(self.height),
                self.root.hex(),
            ]
        )

    @classmethod
    def parse(cls, line: str) -> "SummaryHeader":
        """
        Parse a header line.

        Raises:
            UnsupportedAlgorithmError: If the algorithm id is unknown
            FormatError: If any other field is malformed
        """
        fields = line.strip().split(":")
        if len(fields) != HEADER_FIELDS:
            raise FormatError(
                "summary header", line, f"expected {HEADER_FIELDS} colon-separated fields"
            )
        tree_id, algo_id, doc_prefix, node_prefix, n_field, height_field, root_hex = fields

        algorithm = HashAlgorithm.parse(algo_id)
        doc_prefix = _parse_prefix("doc prefix", doc_prefix)
        node_prefix = _parse_prefix("node prefix", node_prefix)
        n = _parse_count("document count", n_field)
        height = _parse_count("tree height", height_field)
        if height != max_layer(n) + 1:
            raise FormatError(
                "tree height", height_field, f"does not match {n} documents"
            )
        root = _parse_hex("root hash", root_hex)

        return cls(
            tree_id=tree_id,
            algorithm=algorithm,
            doc_prefix=doc_prefix,
            node_prefix=node_prefix,
            n=n,
            height=height,
            root=root,
        )

    def hasher(self) -> HashFunction:
        """Hash function configured with this header's algorithm and prefixes."""
        return HashFunction(self.doc_prefix, self.node_prefix, self.algorithm)


def _parse_count(name: str, value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise FormatError(name, value, "expected a non-negative integer")
    return int(value)


def _parse_prefix(name: str, value: str) -> str:
    if not value or len(value) % 2 or any(c not in string.hexdigits for c in value):
        raise FormatError(name, value, "expected an even number of hex digits")
    return value.upper()


def _parse_hex(name: str, value: str) -> bytes:
    try:
        digest = bytes.fromhex(value)
    except ValueError:
        raise FormatError(name, value, "not valid hex") from None
    if digest.hex() != value.lower():
        raise FormatError(name, value, "not valid hex")
    return digest


class SummaryCodec:
    """Encodes tree state into summary text and reads it back."""

    def __init__(self, hasher: HashFunction, tree_id: str = DEFAULT_TREE_ID):
        self.hasher = hasher
        self.tree_id = tree_id

    def header(self, descriptor: TreeDescriptor, root: bytes) -> SummaryHeader:
        return SummaryHeader(
            tree_id=self.tree_id,
            algorithm=self.hasher.algorithm,
            doc_prefix=self.hasher.doc_prefix,
            node_prefix=self.hasher.node_prefix,
            n=descriptor.n,
            height=descriptor.height,
            root=root,
        )

    def encode(self, descriptor: TreeDescriptor, nodes: NodeStore) -> list[str]:
        """
        Produce summary lines: the header, then every node of every layer.

        Raises:
            StoreError: If the tree is empty or a node is missing
        """
        root = read_root(nodes, descriptor)
        lines = [self.header(descriptor, root).to_line()]
        for i in range(descriptor.max_layer + 1):
            for j in range(descriptor.layer_len(i)):
                lines.append(f"{i}:{j}:{read_node(nodes, i, j).hex()}")
        return lines

    def render(self, descriptor: TreeDescriptor, nodes: NodeStore) -> str:
        return "".join(f"{line}\n" for line in self.encode(descriptor, nodes))

    @staticmethod
    def parse_header(text: str) -> SummaryHeader:
        """Parse the header for verification."""
        return SummaryHeader.parse(_first_line(text))

    @staticmethod
    def read_document_count(text: str) -> int:
        """Read only the document count (fifth header field) for resumption."""
        fields = _first_line(text).split(":")
        if len(fields) < 5:
            raise FormatError("summary header", _first_line(text), "missing document count")
        return _parse_count("document count", fields[4].strip())

    @classmethod
    def load_descriptor(cls, text: str) -> TreeDescriptor:
        """Rebuild a descriptor from summary text, deriving the height from the count."""
        return TreeDescriptor.new(cls.read_document_count(text))

    @staticmethod
    def iter_nodes(text: str):
        """Yield ``(layer, index, hash)`` for every node line of a summary."""
        for line in text.splitlines()[1:]:
            if not line.strip():
                continue
            parts = line.strip().split(":")
            if len(parts) != 3:
                raise FormatError("summary node line", line, "expected layer:index:hash")
            layer = _parse_count("node layer", parts[0])
            index = _parse_count("node index", parts[1])
            yield layer, index, _parse_hex("node hash", parts[2])


def _first_line(text: str) -> str:
    lines = text.splitlines()
    if not lines or not lines[0].strip():
        raise StoreError("Summary is empty")
    return lines[0]
