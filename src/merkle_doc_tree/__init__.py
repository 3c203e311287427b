"""Merkle Doc Tree - Append-only Merkle tree over documents with inclusion proofs."""

__version__ = "0.1.0"

# Directory and file constants
MDT_DIR = ".merkle-doc-tree"
CONFIG_FILE = "config.json"
