"""Core configuration and utilities for the PACSView server."""

from pacsview.core.config import settings
from pacsview.core.logging import get_logger, setup_logging

__all__ = ["settings", "setup_logging", "get_logger"]
