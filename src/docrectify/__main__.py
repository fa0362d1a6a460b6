#!/usr/bin/env python3
"""
DocRectify - Entry point for python -m docrectify

This module allows the package to be run as a module:
    python -m docrectify
"""

import sys

from docrectify.cli import main

if __name__ == "__main__":
    sys.exit(main())
