"""Exceptions raised by Merkle Doc Tree."""


class MerkleTreeError(Exception):
    """Base exception for tree errors."""

    pass


class StoreError(MerkleTreeError):
    """An expected document, node or summary entry is missing or unreadable."""

    pass


class CorruptedStoreError(StoreError):
    """A node that must exist for a consistent tree is missing."""

    def __init__(self, layer: int, index: int, reason: str = "node must exist"):
        self.layer = layer
        self.index = index
        super().__init__(f"Corrupted node store at ({layer}, {index}): {reason}")


class FormatError(MerkleTreeError):
    """Malformed summary header, proof line or hex value."""

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class UnsupportedAlgorithmError(FormatError):
    """Hash algorithm id is not the one configured."""

    def __init__(self, value: str):
        super().__init__("hash algorithm", value, "unsupported algorithm")


class InvalidIndexError(MerkleTreeError):
    """Document index violates the append-only or range precondition."""

    pass
