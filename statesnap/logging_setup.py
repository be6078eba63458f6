"""
Logging setup for processes embedding statesnap.

The library itself only creates module loggers; applications and the
CLI call setup_logging() once at startup.
"""

from __future__ import annotations

import logging
from typing import Optional

import json_log_formatter

from .config import CodecConfig, ObservabilityConfig


def setup_logging(config: Optional[CodecConfig] = None) -> None:
    """Configure the root logger from configuration.

    Args:
        config: Codec configuration (loaded from env if not provided)
    """
    observability = config.observability if config else ObservabilityConfig.from_env()
    level = getattr(logging, observability.log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
