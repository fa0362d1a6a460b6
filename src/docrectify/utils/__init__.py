"""
DocRectify - Utils Package

Utility modules for the engine.
"""

from docrectify.utils.config_manager import ConfigManager, get_config_manager
from docrectify.utils.exceptions import (
    ConfigurationError,
    DocRectifyError,
    InputImageError,
    NumericalError,
    ValidationError,
)
from docrectify.utils.logger import logger, setup_logging

__all__ = [
    "logger",
    "setup_logging",
    "ConfigManager",
    "get_config_manager",
    "DocRectifyError",
    "InputImageError",
    "NumericalError",
    "ValidationError",
    "ConfigurationError",
]
