"""
Unit tests for configuration and logging setup.

Tests cover:
- Environment variable loading and defaults
- Validation of invalid settings
- Logging handler configuration
"""

import logging

import json_log_formatter
import pytest

from statesnap.architecture import Architecture
from statesnap.config import CodecConfig, ObservabilityConfig, SnapshotConfig
from statesnap.logging_setup import setup_logging


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "STATESNAP_ARCH",
        "STATESNAP_FORMAT_VERSION",
        "STATESNAP_MAX_PAYLOAD_BYTES",
        "STATESNAP_MAX_EMPTY_LIST_ITEMS",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSnapshotConfig:
    """Tests for SnapshotConfig."""

    def test_defaults(self, clean_env):
        """Defaults write the latest format with a 1GB load limit."""
        config = SnapshotConfig.from_env()
        assert config.architecture is None
        assert config.format_version == 2
        assert config.payload_limit == 1024 * 1024 * 1024
        assert config.max_empty_list_items == 65536

    def test_from_env(self, clean_env):
        """Settings are read from STATESNAP_* variables."""
        clean_env.setenv("STATESNAP_ARCH", "arm64")
        clean_env.setenv("STATESNAP_FORMAT_VERSION", "1")
        clean_env.setenv("STATESNAP_MAX_PAYLOAD_BYTES", "0")
        clean_env.setenv("STATESNAP_MAX_EMPTY_LIST_ITEMS", "16")

        config = SnapshotConfig.from_env()

        assert config.resolve_architecture() is Architecture.AARCH64
        assert config.format_version == 1
        assert config.payload_limit is None
        assert config.max_empty_list_items == 16


class TestCodecConfig:
    """Tests for CodecConfig validation."""

    def test_valid_env(self, clean_env):
        """A clean environment validates."""
        clean_env.setenv("STATESNAP_ARCH", "x86_64")
        config = CodecConfig.from_env()
        assert config.observability.log_format == "json"

    def test_unsupported_format_version(self, clean_env):
        """Unknown format versions are rejected."""
        clean_env.setenv("STATESNAP_ARCH", "x86_64")
        clean_env.setenv("STATESNAP_FORMAT_VERSION", "7")
        with pytest.raises(ValueError, match="STATESNAP_FORMAT_VERSION 7 is not supported"):
            CodecConfig.from_env()

    def test_unknown_architecture(self):
        """Unknown architecture names are rejected."""
        config = CodecConfig(snapshot=SnapshotConfig(architecture="sparc"))
        with pytest.raises(ValueError, match="Unknown architecture"):
            config.validate()

    def test_negative_payload_limit(self):
        """The payload limit cannot be negative."""
        config = CodecConfig(snapshot=SnapshotConfig(architecture="x86_64", max_payload_bytes=-1))
        with pytest.raises(ValueError, match="must be >= 0"):
            config.validate()

    def test_negative_empty_list_limit(self):
        """The zero-size element limit cannot be negative."""
        config = CodecConfig(
            snapshot=SnapshotConfig(architecture="x86_64", max_empty_list_items=-1)
        )
        with pytest.raises(ValueError, match="STATESNAP_MAX_EMPTY_LIST_ITEMS must be >= 0"):
            config.validate()

    def test_invalid_log_format(self):
        """Only json and text log formats exist."""
        config = CodecConfig(
            snapshot=SnapshotConfig(architecture="x86_64"),
            observability=ObservabilityConfig(log_format="xml"),
        )
        with pytest.raises(ValueError, match="Invalid LOG_FORMAT 'xml'"):
            config.validate()


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        """JSON logs use json_log_formatter."""
        setup_logging(CodecConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        """Text logs use a plain formatter."""
        setup_logging(CodecConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
        assert logging.getLogger().level == logging.INFO
