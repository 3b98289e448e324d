"""
The generation/analysis capability as the pipeline sees it.

Anything with a ``chat`` method of this shape can drive an evolution
cycle: the LiteLLM adapter in production, a MagicMock in tests.
"""

from typing import Protocol, runtime_checkable

Message = dict[str, str]


@runtime_checkable
class ChatCapability(Protocol):
    """Chat-completion capability.

    ``chat`` returns the assistant's text. Every failure, whatever its
    cause, is raised as ``savor.errors.CapabilityError``.
    """

    def chat(self, messages: list[Message], temperature: float) -> str:
        ...
