"""
Configuration module for savor.

Exports the main components for convenient imports.
"""

from .loader import load_config
from .schema import (
    AppConfig,
    LLMConfig,
    LoggingConfig,
    PipelineConfig,
    StorageConfig,
)

__all__ = [
    "load_config",
    "AppConfig",
    "LLMConfig",
    "LoggingConfig",
    "PipelineConfig",
    "StorageConfig",
]
