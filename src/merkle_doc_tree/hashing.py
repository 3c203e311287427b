"""Domain-separated hashing for leaves and internal nodes."""

from enum import Enum

from blake3 import blake3

from .errors import UnsupportedAlgorithmError


class HashAlgorithm(str, Enum):
    """Hash algorithms a summary header may name."""

    BLAKE3 = "blake3"

    @classmethod
    def parse(cls, value: str) -> "HashAlgorithm":
        """Parse an algorithm id from a summary header."""
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedAlgorithmError(value) from None


def encode_prefix(prefix: str) -> bytes:
    """Bytes mixed into the hash for a configured prefix text."""
    return prefix.upper().encode("ascii")


class HashFunction:
    """
    Hash wrapper carrying the two domain-separation prefixes.

    Leaves are hashed as ``H(doc_prefix || document)`` and internal nodes as
    ``H(node_prefix || left || right)``. A missing right child is hashed as
    the empty string, never as a copy of the left child.
    """

    def __init__(
        self,
        doc_prefix: str,
        node_prefix: str,
        algorithm: HashAlgorithm = HashAlgorithm.BLAKE3,
    ):
        self.algorithm = algorithm
        self.doc_prefix = doc_prefix.upper()
        self.node_prefix = node_prefix.upper()
        self._doc_prefix_bytes = encode_prefix(doc_prefix)
        self._node_prefix_bytes = encode_prefix(node_prefix)

    def hash(self, prefix: bytes, parts: list[bytes]) -> bytes:
        """Digest of the prefix followed by each part, in order."""
        hasher = blake3()
        hasher.update(prefix)
        for part in parts:
            hasher.update(part)
        return hasher.digest()

    def leaf(self, document: bytes) -> bytes:
        """Hash of a document at layer 0."""
        return self.hash(self._doc_prefix_bytes, [document])

    def node(self, left: bytes, right: bytes = b"") -> bytes:
        """Hash of an internal node from its children."""
        return self.hash(self._node_prefix_bytes, [left, right])
