"""Tagged success/failure result for collaborator calls.

The research loop branches on ``Outcome.ok`` instead of relying on
exceptions escaping from search, fetch, and analysis calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Result of a unit of external work.

    Attributes:
        value: The payload on success, ``None`` on failure.
        error: The failure cause, ``None`` on success.
    """

    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> Outcome[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the payload or raise the recorded error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
