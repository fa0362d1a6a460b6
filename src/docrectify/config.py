"""
DocRectify - Configuration Module

This module contains application-level constants and paths.
Numeric tuning values live in constants.py.
"""

import os
from typing import Final

# ============================================================================
# Application Constants
# ============================================================================

APP_NAME: Final[str] = "DocRectify"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "Detect and rectify documents in photographs"
CLI_PROG: Final[str] = "docrectify"


# ============================================================================
# Configuration Directory
# ============================================================================

CONFIG_DIR: Final[str] = os.path.expanduser("~/.config/docrectify")
CONFIG_FILE_PATH: Final[str] = os.path.join(CONFIG_DIR, "settings.json")


# ============================================================================
# Logging Configuration
# ============================================================================

LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT: Final[str] = "%H:%M:%S"
LOGGER_NAME: Final[str] = "docrectify"
