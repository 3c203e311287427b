"""Offline proof verification against a published summary header."""

import structlog

from .errors import UnsupportedAlgorithmError
from .hashing import HashAlgorithm
from .proof import Proof, ProofDirection
from .summary import SummaryHeader

logger = structlog.get_logger(__name__)


class ProofVerifier:
    """
    Recomputes a root from a document and its proof.

    Uses only the header's algorithm, prefixes and root; never a store.
    """

    def __init__(self, algorithm: HashAlgorithm = HashAlgorithm.BLAKE3):
        self.algorithm = algorithm

    def compute_root(self, header: SummaryHeader, document: bytes, proof: Proof) -> bytes:
        """Fold the proof over the document's leaf hash."""
        if header.algorithm is not self.algorithm:
            raise UnsupportedAlgorithmError(header.algorithm.value)

        hasher = header.hasher()
        current = hasher.leaf(document)
        for entry in proof:
            if entry.direction is ProofDirection.LEFT:
                current = hasher.node(entry.sibling, current)
            else:
                current = hasher.node(current, entry.sibling)
        return current

    def verify(self, header: SummaryHeader, document: bytes, proof: Proof) -> bool:
        """
        Check that the document is committed under the header's root.

        Returns:
            True if the recomputed root matches, False otherwise
        """
        ok = self.compute_root(header, document, proof) == header.root
        logger.info("Proof verified" if ok else "Proof rejected", entries=len(proof))
        return ok


def verify_proof(header: SummaryHeader, document: bytes, proof: Proof) -> bool:
    """Verify with the default algorithm."""
    return ProofVerifier().verify(header, document, proof)
