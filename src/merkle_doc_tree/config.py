"""Configuration management for Merkle Doc Tree."""

import json
import os
import string
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from . import CONFIG_FILE, MDT_DIR

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class MDTConfig(BaseModel):
    """Configuration for Merkle Doc Tree."""

    version: int = 1
    hash_algorithm: Literal["blake3"] = "blake3"
    tree_id: str = Field(default="MerkleTree", min_length=1)
    doc_prefix: str = Field(default="3C3C3C3C", min_length=2)
    node_prefix: str = Field(default="F5F5F5F5", min_length=2)
    data_dir: str = "data"  # Relative paths resolve against the project root
    doc_template: str = "doc_{index}.dat"
    node_template: str = "node_{layer}_{index}.bin"
    summary_file: str = "summary.txt"
    proof_template: str = "proof_{index}.txt"
    log_level: LogLevel = "WARNING"

    @field_validator("doc_prefix", "node_prefix")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if len(value) % 2 or any(c not in string.hexdigits for c in value):
            raise ValueError(f"prefix must be an even number of hex digits, got {value!r}")
        return value.upper()

    @field_validator("tree_id")
    @classmethod
    def _check_tree_id(cls, value: str) -> str:
        if ":" in value or "\n" in value:
            raise ValueError("tree id cannot contain ':' or newlines")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value


def get_mdt_dir(project_root: Path) -> Path:
    """Get the .merkle-doc-tree directory path."""
    return project_root / MDT_DIR


def get_config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return get_mdt_dir(project_root) / CONFIG_FILE


def get_data_dir(config: MDTConfig, project_root: Path) -> Path:
    """Resolve the directory holding documents, nodes, summary and proofs."""
    return project_root / config.data_dir


def load_config(project_root: Path) -> MDTConfig:
    """Load configuration from the project's config file.

    Falls back to defaults if file doesn't exist.
    Environment variables can override config values.
    """
    config_path = get_config_path(project_root)

    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        config = MDTConfig.model_validate(data)
    else:
        config = MDTConfig()

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config


def save_config(config: MDTConfig, project_root: Path) -> None:
    """Save configuration to the project's config file."""
    config_path = get_config_path(project_root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config.model_dump(), f, indent=2)


def _apply_env_overrides(config: MDTConfig) -> MDTConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # MDT_DATA_DIR
    if data_dir := os.environ.get("MDT_DATA_DIR"):
        data["data_dir"] = data_dir

    # MDT_LOG_LEVEL
    if log_level := os.environ.get("MDT_LOG_LEVEL"):
        data["log_level"] = log_level

    return MDTConfig.model_validate(data)
