"""Tests for the configuration section models."""

import pytest
from pydantic import ValidationError

from quire.config.models import IndexConfig, RetryConfig, SnapshotConfig, StoreConfig


class TestDefaults:
    def test_store(self) -> None:
        cfg = StoreConfig()
        assert cfg.trash_folder == ".trash"
        assert cfg.extension == ".md"
        assert cfg.data_dir == ".quire"

    def test_index(self) -> None:
        assert IndexConfig().filename == "quire.db"

    def test_retry(self) -> None:
        assert RetryConfig() == RetryConfig(attempts=3, delay=0.1)

    def test_snapshot(self) -> None:
        assert SnapshotConfig().version == "1.0"
        assert SnapshotConfig().include_trashed is True


class TestConstraints:
    @pytest.mark.parametrize("attempts", [0, -1])
    def test_retry_needs_one_attempt(self, attempts: int) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(attempts=attempts)

    def test_negative_delay_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(delay=-0.5)

    def test_frozen(self) -> None:
        cfg = StoreConfig()
        with pytest.raises(ValidationError):
            cfg.extension = ".txt"  # type: ignore[misc]
