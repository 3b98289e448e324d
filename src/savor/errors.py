"""
Error taxonomy shared by the stores, the pipeline and the CLI.

- NotFoundError: a referenced Skill, version, article or diff record is absent.
- ValidationError: malformed input or a write the storage rejected.
- CapabilityError: the generation/analysis call failed (carries upstream detail).
- StorageConsistencyError: a broken lineage invariant. Evolve runs in a single
  transaction, so this is only raised by the startup lineage check.
"""

__all__ = [
    "SavorError",
    "NotFoundError",
    "ValidationError",
    "CapabilityError",
    "StorageConsistencyError",
]


class SavorError(Exception):
    """Base class for all savor errors."""


class NotFoundError(SavorError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, key: object):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(SavorError):
    """Malformed input, or a write rejected by the storage layer."""


class CapabilityError(SavorError):
    """The generation or analysis capability failed.

    Attributes:
        status_code: Upstream HTTP status, if the provider returned one.
        body: Upstream response body or error text, kept verbatim.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"LLM API error ({self.status_code}): {base}"
        return base


class StorageConsistencyError(SavorError):
    """A Skill's version chain violates its lineage invariant."""
