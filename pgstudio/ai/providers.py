"""Request/response shapes for the supported chat-completion vendors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, Field, SecretStr

ANTHROPIC_VERSION = "2023-06-01"


class AIProviderKind(str, Enum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"


DEFAULT_MODELS: dict[AIProviderKind, str] = {
    AIProviderKind.ANTHROPIC: "claude-sonnet-4-6",
    AIProviderKind.OPENAI: "gpt-4.1",
    AIProviderKind.GOOGLE: "gemini-2.5-flash-lite",
}


class AIConfig(BaseModel):
    """Provider selection plus credential; the key never serializes."""

    provider: AIProviderKind = AIProviderKind.ANTHROPIC
    model: str = ""
    api_key: SecretStr = Field(default=SecretStr(""), exclude=True)

    def model_post_init(self, __context: Any) -> None:
        if not self.model:
            self.model = DEFAULT_MODELS[self.provider]


@dataclass(frozen=True, slots=True)
class ProviderRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]


class ChatProvider(ABC):
    """One vendor's wire shape: build the HTTPS request, read the reply text."""

    kind: AIProviderKind

    @abstractmethod
    def build_request(self, config: AIConfig, system: str, user: str, max_tokens: int) -> ProviderRequest:
        raise NotImplementedError

    @abstractmethod
    def parse_response(self, payload: Mapping[str, Any]) -> str:
        raise NotImplementedError


class AnthropicProvider(ChatProvider):
    kind = AIProviderKind.ANTHROPIC
    url = "https://api.anthropic.com/v1/messages"

    def build_request(self, config: AIConfig, system: str, user: str, max_tokens: int) -> ProviderRequest:
        return ProviderRequest(
            url=self.url,
            headers={
                "x-api-key": config.api_key.get_secret_value(),
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            body={
                "model": config.model,
                "max_tokens": max_tokens,
                "system": system,
                "messages": [{"role": "user", "content": user}],
            },
        )

    def parse_response(self, payload: Mapping[str, Any]) -> str:
        blocks = payload.get("content") or []
        if not blocks:
            return ""
        return blocks[0].get("text") or ""


class OpenAIProvider(ChatProvider):
    kind = AIProviderKind.OPENAI
    url = "https://api.openai.com/v1/chat/completions"

    def build_request(self, config: AIConfig, system: str, user: str, max_tokens: int) -> ProviderRequest:
        return ProviderRequest(
            url=self.url,
            headers={
                "Authorization": f"Bearer {config.api_key.get_secret_value()}",
                "content-type": "application/json",
            },
            body={
                "model": config.model,
                "max_tokens": max_tokens,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            },
        )

    def parse_response(self, payload: Mapping[str, Any]) -> str:
        choices = payload.get("choices") or []
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""


class GoogleProvider(ChatProvider):
    kind = AIProviderKind.GOOGLE
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def build_request(self, config: AIConfig, system: str, user: str, max_tokens: int) -> ProviderRequest:
        # Key goes in a header so it cannot end up in logged URLs.
        return ProviderRequest(
            url=f"{self.base_url}/models/{config.model}:generateContent",
            headers={
                "x-goog-api-key": config.api_key.get_secret_value(),
                "content-type": "application/json",
            },
            body={
                "system_instruction": {"parts": [{"text": system}]},
                "contents": [{"role": "user", "parts": [{"text": user}]}],
                "generationConfig": {"maxOutputTokens": max_tokens},
            },
        )

    def parse_response(self, payload: Mapping[str, Any]) -> str:
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text") or "" for part in parts)


PROVIDERS: dict[AIProviderKind, ChatProvider] = {
    provider.kind: provider for provider in (AnthropicProvider(), OpenAIProvider(), GoogleProvider())
}


def provider_for(kind: AIProviderKind | str) -> ChatProvider:
    """Return the provider for ``kind``; unknown names raise ``ValueError``."""

    return PROVIDERS[AIProviderKind(kind)]


__all__ = [
    "AIConfig",
    "AIProviderKind",
    "AnthropicProvider",
    "ChatProvider",
    "DEFAULT_MODELS",
    "GoogleProvider",
    "OpenAIProvider",
    "PROVIDERS",
    "ProviderRequest",
    "provider_for",
]
