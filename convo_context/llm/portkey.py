"""
Portkey LLM Provider
====================

Implementation of LLMProvider using the Portkey AI Gateway.

Portkey gives a single OpenAI-compatible endpoint in front of OpenAI,
Anthropic and Google models, which lets the compaction model be switched
by changing a model id.

Environment Variables:
    PORTKEY_API_KEY: Your Portkey API key
    PORTKEY_VIRTUAL_KEY: Virtual key for the LLM provider
    PORTKEY_CONFIG: Optional Portkey config id for multi-provider routing

Example:
-------
```python
provider = PortkeyLLMProvider(
    virtual_keys={"openai": "vk-xxx", "anthropic": "vk-yyy"},
    model="gpt-4o-mini",
)
response = await provider.completion([Message(role="user", content="Hello!")])
```
"""

import os
import logging
from typing import Optional, List, Any, Dict

from openai import AsyncOpenAI
from portkey_ai import createHeaders, PORTKEY_GATEWAY_URL

from .base import (
    LLMProvider,
    Message,
    CompletionResponse,
    LLMProviderError,
)
from .utils import get_provider_from_model


# Anthropic rejects requests without max_tokens
ANTHROPIC_DEFAULT_MAX_TOKENS = 8192


class PortkeyLLMProvider(LLMProvider):
    """
    LLM Provider implementation using Portkey AI Gateway.

    A fresh AsyncOpenAI client is built per request with headers for the
    provider that serves the requested model, so one instance can route
    summaries to any configured provider.

    Attributes:
        model: The default model to use for completions
        default_temperature: Default temperature for completions
        default_max_tokens: Default max tokens for completions
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        virtual_key: Optional[str] = None,
        virtual_keys: Optional[Dict[str, Optional[str]]] = None,
        config: Optional[str] = None,
        model: str = "gpt-4o-mini",
        default_temperature: float = 0.7,
        default_max_tokens: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the Portkey LLM Provider.

        Args:
            api_key: Portkey API key. Falls back to PORTKEY_API_KEY env var.
            virtual_key: Single Portkey virtual key used for every provider.
            virtual_keys: Dict of provider-specific virtual keys:
                         {"openai": "vk-xxx", "anthropic": "vk-yyy", "google": "vk-zzz"}
            config: Portkey config ID (alternative to virtual keys).
            model: Default model identifier.
            default_temperature: Default sampling temperature (0.0-2.0).
            default_max_tokens: Default max tokens. None = provider default.
            logger: Optional logger

        Raises:
            ValueError: If no API key is available.
            ValueError: If neither a virtual key nor a config is available.
        """
        self.logger = logger or logging.getLogger(__name__)

        self.api_key = api_key or os.environ.get("PORTKEY_API_KEY")
        self.config = config or os.environ.get("PORTKEY_CONFIG")

        self._virtual_keys: Dict[str, Optional[str]] = dict(virtual_keys or {})
        if virtual_key:
            self._virtual_keys["openai"] = virtual_key
        elif os.environ.get("PORTKEY_VIRTUAL_KEY") and not self._virtual_keys.get("openai"):
            self._virtual_keys["openai"] = os.environ.get("PORTKEY_VIRTUAL_KEY")

        if not self.api_key:
            raise ValueError(
                "Portkey API key required. Pass api_key or set PORTKEY_API_KEY env var."
            )

        has_any_virtual_key = any(v for v in self._virtual_keys.values() if v)
        if not has_any_virtual_key and not self.config:
            raise ValueError(
                "At least one virtual_key or config is required. "
                "Set virtual_keys={'openai': 'vk-xxx', 'anthropic': 'vk-yyy'} for multi-provider support."
            )

        self.model = model
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    def _get_virtual_key_for_provider(self, provider: str) -> Optional[str]:
        """Get the virtual key for a specific provider."""
        if self._virtual_keys.get(provider):
            return self._virtual_keys[provider]

        # For google, also check "gemini" key
        if provider == "google" and self._virtual_keys.get("gemini"):
            return self._virtual_keys["gemini"]

        # Single virtual_key mode
        if self._virtual_keys.get("openai"):
            self.logger.debug(f"No {provider} virtual key found, falling back to OpenAI key")
            return self._virtual_keys["openai"]

        return None

    def _create_client_for_provider(self, provider: str = "openai") -> AsyncOpenAI:
        """
        Create an AsyncOpenAI client configured for a specific provider.

        Args:
            provider: The LLM provider to use ("openai", "anthropic", "google")

        Returns:
            AsyncOpenAI client configured with Portkey headers

        Raises:
            ValueError: If neither a config nor a virtual key is available.
        """
        portkey_provider = provider if provider in ("openai", "anthropic", "google") else "openai"

        header_kwargs: Dict[str, Any] = {
            "provider": portkey_provider,
            "api_key": self.api_key,
        }
        if self.config:
            header_kwargs["config"] = self.config
        else:
            virtual_key = self._get_virtual_key_for_provider(portkey_provider)
            if not virtual_key:
                raise ValueError(f"No virtual key available for provider: {portkey_provider}")
            header_kwargs["virtual_key"] = virtual_key

        return AsyncOpenAI(
            base_url=PORTKEY_GATEWAY_URL,
            api_key="xxx",  # Dummy key - auth is via Portkey headers
            default_headers=createHeaders(**header_kwargs),
        )

    def _build_params(
        self,
        model: str,
        message_dicts: List[Dict[str, Any]],
        temperature: Optional[float],
        max_tokens: Optional[int],
        stop: Optional[List[str]],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "messages": message_dicts,
            "stream": False,
            "temperature": temperature if temperature is not None else self.default_temperature,
        }

        limit = max_tokens if max_tokens is not None else self.default_max_tokens
        # GPT-5 uses max_completion_tokens instead of max_tokens
        if model.startswith("gpt-5"):
            if limit is not None:
                params["max_completion_tokens"] = limit
        elif limit is not None:
            params["max_tokens"] = limit
        elif get_provider_from_model(model) == "anthropic":
            params["max_tokens"] = ANTHROPIC_DEFAULT_MAX_TOKENS

        if stop:
            params["stop"] = stop
        return params

    async def completion(
        self,
        messages: List[Message],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop: Optional[List[str]] = None,
        **kwargs: Any
    ) -> CompletionResponse:
        """
        Generate a non-streaming completion using Portkey.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            stop: Stop sequences
            **kwargs: Additional API parameters (``model`` overrides the
                     default model; everything else is passed through,
                     e.g. ``response_format``)

        Returns:
            CompletionResponse with content, finish_reason, model, id and usage.

        Raises:
            LLMProviderError: On API errors
        """
        validated = self.validate_messages(messages)
        message_dicts = [m.to_dict() for m in validated]

        model_to_use = kwargs.pop("model", None) or self.model
        provider = get_provider_from_model(model_to_use)

        params = self._build_params(model_to_use, message_dicts, temperature, max_tokens, stop)
        params.update(kwargs)

        try:
            client = self._create_client_for_provider(provider)
            self.logger.debug(f"Portkey completion with model {model_to_use} via {provider}")
            response = await client.chat.completions.create(**params)

            content = None
            finish_reason = None

            if response.choices and len(response.choices) > 0:
                choice = response.choices[0]
                if choice.message:
                    content = choice.message.content
                finish_reason = choice.finish_reason

            usage = None
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }

            return CompletionResponse(
                content=content,
                role="assistant",
                finish_reason=finish_reason,
                model=response.model or model_to_use,
                id=response.id,
                usage=usage,
            )

        except Exception as e:
            raise LLMProviderError(
                message=str(e),
                status_code=getattr(e, "status_code", None),
                provider="Portkey",
                original_error=e
            ) from e

    def get_model_info(self) -> Dict[str, Any]:
        """
        Return information about the current Portkey configuration.

        Returns:
            Dict containing model, provider, default_temperature and, when
            set, default_max_tokens.
        """
        info: Dict[str, Any] = {
            "model": self.model,
            "provider": "Portkey",
            "default_temperature": self.default_temperature,
        }
        if self.default_max_tokens:
            info["default_max_tokens"] = self.default_max_tokens
        return info
