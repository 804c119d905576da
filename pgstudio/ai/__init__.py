"""AI assistant: provider variants and the SQL prompt service."""

from .providers import (
    DEFAULT_MODELS,
    AIConfig,
    AIProviderKind,
    AnthropicProvider,
    ChatProvider,
    GoogleProvider,
    OpenAIProvider,
    ProviderRequest,
    provider_for,
)
from .service import AINotConfiguredError, AIProviderError, AIService, strip_code_fences

__all__ = [
    "AIConfig",
    "AINotConfiguredError",
    "AIProviderError",
    "AIProviderKind",
    "AIService",
    "AnthropicProvider",
    "ChatProvider",
    "DEFAULT_MODELS",
    "GoogleProvider",
    "OpenAIProvider",
    "ProviderRequest",
    "provider_for",
    "strip_code_fences",
]
