"""Inclusion proofs and their line format.

A proof is written one entry per line, leaf to root. Each line is a single
direction character, ``L`` or ``R``, giving the side the sibling occupies,
immediately followed by the sibling's lowercase hex digest. An empty digest
stands for the padding of a node without a right child.
"""

from dataclasses import dataclass, field
from enum import Enum

from .errors import FormatError


class ProofDirection(str, Enum):
    """Side of the path node on which the sibling sits."""

    LEFT = "L"
    RIGHT = "R"


@dataclass(frozen=True)
class ProofEntry:
    """Single element in a proof path."""

    direction: ProofDirection
    sibling: bytes

    def to_line(self) -> str:
        return f"{self.direction.value}{self.sibling.hex()}"

    @classmethod
    def from_line(cls, line: str) -> "ProofEntry":
        """
        Parse a proof line.

        Raises:
            FormatError: If the direction tag or hex digest is invalid
        """
        line = line.strip()
        if not line:
            raise FormatError("proof line", line, "empty line")

        try:
            direction = ProofDirection(line[0])
        except ValueError:
            raise FormatError("proof direction", line[0], "expected 'L' or 'R'") from None

        hex_value = line[1:]
        try:
            sibling = bytes.fromhex(hex_value)
        except ValueError:
            raise FormatError("proof sibling hash", hex_value, "not valid hex") from None
        if sibling.hex() != hex_value.lower():
            raise FormatError("proof sibling hash", hex_value, "not valid hex")

        return cls(direction=direction, sibling=sibling)


@dataclass
class Proof:
    """Ordered sibling path from a leaf up to the root."""

    entries: list[ProofEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def to_lines(self) -> list[str]:
        return [entry.to_line() for entry in self.entries]

    @classmethod
    def from_text(cls, text: str) -> "Proof":
        """Parse proof text, one entry per line. Blank lines are skipped."""
        return cls([ProofEntry.from_line(line) for line in text.splitlines() if line.strip()])
