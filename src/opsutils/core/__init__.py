"""Core types and helpers shared by opsutils clients and tools.

This module provides:
- Exception hierarchy for error handling
- Object parameters passed to every client
- JSON, file and prompt helpers for CLI tools
"""

from .exceptions import ImageLookupError, OpsUtilsError

__all__ = [
    "ImageLookupError",
    "OpsUtilsError",
]
