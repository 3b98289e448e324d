"""
LLM module - The chat capability the pipeline calls, and its LiteLLM adapter.
"""

from .adapter import CONNECTION_PROBE, LLMAdapter, resolve_model
from .capability import ChatCapability, Message

__all__ = [
    "CONNECTION_PROBE",
    "ChatCapability",
    "LLMAdapter",
    "Message",
    "resolve_model",
]
