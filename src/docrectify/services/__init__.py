"""
DocRectify - Services Package

Detection, rectification and enhancement services.
"""

from docrectify.services.config import ScannerConfig
from docrectify.services.scanner import DocumentScanner

__all__ = ["DocumentScanner", "ScannerConfig"]
