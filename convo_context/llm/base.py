"""
LLM Provider Base Class
=======================

Abstract interface for the model backends used by context compaction.

Compaction only needs single-shot completions (summaries and importance
assessments), so the interface is a non-streaming ``completion`` call in
OpenAI message format.

Usage Example:
-------------
```python
from convo_context.llm import PortkeyLLMProvider, Message

provider = PortkeyLLMProvider(model="gpt-4o-mini")

response = await provider.completion([
    Message(role="system", content="You summarize conversations."),
    Message(role="user", content="..."),
])
print(response.content)
```
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Any, Dict

from convo_context.llm.types import (
    Role,
    Message,
    CompletionResponse,
    LLMProviderError,
)


__all__ = [
    "Role",
    "Message",
    "CompletionResponse",
    "LLMProvider",
    "LLMProviderError",
]


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Subclasses MUST implement:
        - completion(): Non-streaming response generation

    Subclasses MAY override:
        - validate_messages(): Custom message validation
        - get_model_info(): Return model capabilities

    Providers should raise LLMProviderError for API failures. Callers in the
    compaction package never let these escape; they are turned into
    fallback results at the generation boundary.
    """

    @abstractmethod
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
        Generate a non-streaming completion for the given messages.

        Args:
            messages: List of conversation messages. Must not be empty.
            temperature: Sampling temperature. If None, uses provider's default.
            max_tokens: Maximum tokens to generate. If None, uses provider's default.
            stop: Stop sequences.
            **kwargs: Provider-specific parameters, e.g. ``model`` to override
                     the default model or ``response_format`` for JSON mode.

        Returns:
            CompletionResponse: The complete response with content and metadata.

        Raises:
            LLMProviderError: If the API call fails
            ValueError: If messages are invalid
        """
        ...  # pragma: no cover

    def validate_messages(self, messages: List[Message]) -> List[Message]:
        """
        Validate and potentially transform messages before sending.

        Args:
            messages: List of messages to validate

        Returns:
            List[Message]: Validated (and possibly transformed) messages

        Raises:
            ValueError: If messages are invalid
        """
        if not messages:
            raise ValueError("Messages list cannot be empty")
        return messages

    def get_model_info(self) -> Dict[str, Any]:
        """
        Return information about the current model configuration.

        Returns:
            Dict with model information (model identifier, provider, defaults).
        """
        return {}
