from modelpass.core.config import settings
from modelpass.services.invocation.base import InvocationProviderBase, InvocationResult
from modelpass.services.invocation.echo_provider import EchoProvider
from modelpass.services.invocation.http_provider import HttpInferenceProvider

__all__ = [
    "EchoProvider",
    "HttpInferenceProvider",
    "InvocationProviderBase",
    "InvocationResult",
    "get_invocation_provider",
]


def get_invocation_provider(name: str | None = None) -> InvocationProviderBase:
    """Factory function to get the configured inference provider."""
    providers: dict[str, type[InvocationProviderBase]] = {
        "http": HttpInferenceProvider,
        "echo": EchoProvider,
    }

    provider_name = (name or settings.INFERENCE_PROVIDER).lower()
    provider_class = providers.get(provider_name)
    if not provider_class:
        raise ValueError(f"Unsupported inference provider: {provider_name}")

    return provider_class()
