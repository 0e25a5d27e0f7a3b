"""
Stateless chat-model client over litellm.

One call = one system message + one user message -> one string. Retries and
fallbacks belong to the callers; this layer only classifies failures.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import litellm

from errors import ContentEmpty, UpstreamUnavailable

logger = logging.getLogger(__name__)

# Silence litellm's own verbose logging
litellm.suppress_debug_info = True
# Drop params unsupported by the active model (e.g. temperature on gpt-5)
litellm.drop_params = True

_LLM_DEFAULTS = {
    "openai":    "gpt-4o-mini",
    "gemini":    "gemini-2.0-flash",
    "anthropic": "claude-sonnet-4-20250514",
    "mistral":   "mistral-small-latest",
    "ollama":    "llama3.1",
}


def llm_name() -> str:
    """Return the litellm model string (provider/model format)."""
    provider = os.getenv("LLM_PROVIDER", "openai").lower().strip()
    if provider not in _LLM_DEFAULTS:
        provider = "openai"
    model = os.getenv("LLM_MODEL", _LLM_DEFAULTS[provider])
    if provider == "openai":
        return model  # litellm uses bare model name for OpenAI
    return f"{provider}/{model}"


class ChatModelClient:
    def __init__(self, model: Optional[str] = None, api_base: Optional[str] = None,
                 api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or llm_name()
        self.api_base = api_base or os.getenv("LLM_API_BASE") or None
        self.api_key = api_key or os.getenv("LLM_API_KEY") or None
        self.timeout = timeout if timeout is not None else float(os.getenv("LLM_TIMEOUT", "30"))

    def complete(self, system_prompt: str, user_prompt: str, temperature: float = 0.7) -> str:
        """Send one prompt pair and return the reply text.

        Raises:
            UpstreamUnavailable: the endpoint errored, timed out, or was unreachable.
            ContentEmpty: the endpoint answered without any text.
        """
        kwargs = {}
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        try:
            response = litellm.completion(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                timeout=self.timeout,
                **kwargs,
            )
        except Exception as exc:
            # litellm maps every provider failure onto its own exception tree,
            # which does not share a base narrower than Exception.
            raise UpstreamUnavailable(f"chat model call failed: {exc}") from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, KeyError, TypeError):
            content = None
        if not isinstance(content, str) or not content.strip():
            raise ContentEmpty("chat model returned no text")
        return content
