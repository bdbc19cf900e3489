"""Invocation provider abstraction.

Providers never raise for a failed call: they return an InvocationResult
carrying an error kind, so the caller can always meter the attempt.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class InvocationResult:
    """Outcome of one model invocation."""

    success: bool
    output: Any = None
    error_kind: str | None = None
    message: str | None = None
    latency_ms: int = 0

    @classmethod
    def ok(cls, output: Any, latency_ms: int) -> "InvocationResult":
        return cls(success=True, output=output, latency_ms=latency_ms)

    @classmethod
    def failure(cls, error_kind: str, message: str, latency_ms: int) -> "InvocationResult":
        return cls(success=False, error_kind=error_kind, message=message, latency_ms=latency_ms)


class InvocationProviderBase(ABC):
    """Abstract base class for inference providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass  # pragma: no cover

    @abstractmethod
    async def invoke(
        self, resource_id: str, inputs: Any, parameters: dict[str, Any] | None = None
    ) -> InvocationResult:
        """Run the model behind ``resource_id`` on ``inputs``."""
        pass  # pragma: no cover
