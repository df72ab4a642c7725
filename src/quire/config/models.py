"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, quire.toml only contains
overrides. An empty file (or none at all) is a valid configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """[store] section."""

    model_config = {"frozen": True}

    trash_folder: str = ".trash"
    extension: str = ".md"
    data_dir: str = ".quire"


class IndexConfig(BaseModel):
    """[index] section."""

    model_config = {"frozen": True}

    filename: str = "quire.db"


class RetryConfig(BaseModel):
    """[retry] section — merge-conflict retry budget."""

    model_config = {"frozen": True}

    attempts: int = Field(default=3, ge=1)
    delay: float = Field(default=0.1, ge=0.0)


class SnapshotConfig(BaseModel):
    """[snapshot] section."""

    model_config = {"frozen": True}

    version: str = "1.0"
    include_trashed: bool = True

