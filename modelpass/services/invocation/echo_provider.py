import time
from typing import Any

from modelpass.services.invocation.base import InvocationProviderBase, InvocationResult


class EchoProvider(InvocationProviderBase):
    """Local provider that returns its inputs. Used for development and tests."""

    @property
    def provider_name(self) -> str:
        return "echo"

    async def invoke(
        self, resource_id: str, inputs: Any, parameters: dict[str, Any] | None = None
    ) -> InvocationResult:
        started = time.monotonic()
        output = {"resource_id": resource_id, "generated_text": inputs}
        return InvocationResult.ok(output, int((time.monotonic() - started) * 1000))
