"""
Presentation Module - Where session events are displayed.
"""

from .base import BasePresentation
from .console import ConsolePresentation

__all__ = [
    "BasePresentation",
    "ConsolePresentation",
]
