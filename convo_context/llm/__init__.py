from .types import Role, Message, CompletionResponse, LLMProviderError
from .base import LLMProvider
from .portkey import PortkeyLLMProvider
from .context_compaction import (
    ContextCompactionProvider,
    ContextManager,
    is_context_length_error,
)

__all__ = [
    # Types
    "Role",
    "Message",
    "CompletionResponse",
    "LLMProviderError",
    # Providers
    "LLMProvider",
    "PortkeyLLMProvider",
    # Context Compaction
    "ContextCompactionProvider",
    "ContextManager",
    "is_context_length_error",
]
