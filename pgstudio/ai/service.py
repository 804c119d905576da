"""SQL-assistant prompts on top of a configurable chat provider."""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from ..introspection.models import SchemaContext
from .providers import AIConfig, provider_for

LOG = logging.getLogger(__name__)

RECENT_QUERY_LIMIT = 5

NL_TO_SQL_SYSTEM = (
    "You are a PostgreSQL expert assistant embedded in a database client. "
    "Generate only valid PostgreSQL SQL. NEVER wrap the output in markdown code fences "
    "(no ```sql, no ```, no triple backticks of any kind). "
    "Do not include any explanations. Respond with ONLY the raw SQL query text.\n\n"
    "Database schema:\n{ddl}{recent}"
)
EXPLAIN_SYSTEM = (
    "You are a PostgreSQL expert. Explain SQL queries clearly and concisely. "
    "Reference specific tables and columns from the schema.\n\n"
    "Database schema:\n{ddl}"
)
OPTIMIZE_SYSTEM = (
    "You are a PostgreSQL performance expert. Suggest query optimizations, "
    "missing indexes, and better query patterns. If there's an error, fix it. "
    "Respond with the improved SQL first, then a brief explanation.\n\n"
    "Database schema:\n{ddl}"
)
COMPLETE_SYSTEM = (
    "You are a SQL autocomplete engine. Complete the SQL query at the cursor position "
    "marked with <CURSOR>. Return ONLY the completion text (what goes at the cursor), "
    "nothing else. No markdown, no explanation. If unsure, return empty string.\n\n"
    "Database schema:\n{ddl}"
)
SCHEMA_CHAT_SYSTEM = (
    "You are a PostgreSQL expert assistant embedded in a database client called PgStudio. "
    "Help users with queries, schema design, performance, and PostgreSQL features. "
    "Be concise and practical. Use the schema below for context.\n\n"
    "Database schema:\n{ddl}"
)


class AINotConfiguredError(RuntimeError):
    def __init__(self) -> None:
        super().__init__("AI not configured. Set your API key in Settings.")


class AIProviderError(RuntimeError):
    """Raised when a provider answers with a non-2xx status or an unreadable body."""

    def __init__(self, provider: str, status: int, body: str) -> None:
        super().__init__(f"{provider} API error ({status}): {body}")
        self.provider = provider
        self.status = status
        self.body = body


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, language tag included."""

    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    rest = trimmed[3:]
    newline = rest.find("\n")
    if newline >= 0:
        rest = rest[newline + 1 :]
    if rest.endswith("```"):
        rest = rest[:-3]
    return rest.strip()


class AIService:
    """Chat completions plus the canned SQL prompts.

    ``transport`` lets tests swap the network for ``httpx.MockTransport``.
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        max_tokens: int = 4096,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._transport = transport
        self._config: AIConfig | None = None

    @property
    def config(self) -> AIConfig | None:
        return self._config

    def configure(self, config: AIConfig) -> None:
        self._config = config
        LOG.debug("AI provider configured", extra={"provider": config.provider.value, "model": config.model})

    def is_configured(self) -> bool:
        return self._config is not None

    async def chat(self, system: str, user_message: str) -> str:
        config = self._config
        if config is None:
            raise AINotConfiguredError()
        provider = provider_for(config.provider)
        request = provider.build_request(config, system, user_message, self._max_tokens)
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(request.url, json=request.body, headers=request.headers)
        if not response.is_success:
            raise AIProviderError(config.provider.value, response.status_code, response.text)
        try:
            return provider.parse_response(response.json())
        except (ValueError, TypeError, AttributeError, KeyError, IndexError) as exc:
            raise AIProviderError(config.provider.value, response.status_code, response.text) from exc

    async def nl_to_sql(self, prompt: str, schema: SchemaContext, recent_queries: Sequence[str] = ()) -> str:
        recent = ""
        if recent_queries:
            lines = "\n".join(f"- {query}" for query in list(recent_queries)[:RECENT_QUERY_LIMIT])
            recent = f"\n\nRecent queries for context:\n{lines}"
        system = NL_TO_SQL_SYSTEM.format(ddl=schema.to_ddl_summary(), recent=recent)
        return strip_code_fences(await self.chat(system, prompt))

    async def explain_query(self, sql: str, schema: SchemaContext) -> str:
        system = EXPLAIN_SYSTEM.format(ddl=schema.to_ddl_summary())
        return await self.chat(system, f"Explain this query:\n\n```sql\n{sql}\n```")

    async def optimize_query(self, sql: str, schema: SchemaContext, error: str | None = None) -> str:
        system = OPTIMIZE_SYSTEM.format(ddl=schema.to_ddl_summary())
        if error:
            prompt = f"This query failed with error: {error}\n\n```sql\n{sql}\n```\n\nFix it and explain what was wrong."
        else:
            prompt = f"Optimize this query:\n\n```sql\n{sql}\n```"
        return await self.chat(system, prompt)

    async def complete_sql(self, prefix: str, suffix: str, schema: SchemaContext) -> str:
        system = COMPLETE_SYSTEM.format(ddl=schema.to_ddl_summary())
        return await self.chat(system, f"{prefix}<CURSOR>{suffix}")

    async def chat_about_schema(self, message: str, schema: SchemaContext) -> str:
        system = SCHEMA_CHAT_SYSTEM.format(ddl=schema.to_ddl_summary())
        return await self.chat(system, message)


__all__ = ["AINotConfiguredError", "AIProviderError", "AIService", "strip_code_fences"]
