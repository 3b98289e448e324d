"""
Logging module - Structured logging with a HUMAN traceability level.
"""

from .human import HumanLog, HumanLogHandler, preview
from .levels import HUMAN
from .setup import configure_logging

__all__ = [
    "configure_logging",
    "HUMAN",
    "HumanLog",
    "HumanLogHandler",
    "preview",
]
