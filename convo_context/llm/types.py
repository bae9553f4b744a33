"""
LLM Types
=========

Type definitions shared by the LLM provider layer and the context
compaction package that sits on top of it.
"""

from typing import Optional, List, Any, Dict, Union
from pydantic import BaseModel, Field
from enum import Enum


class Role(str, Enum):
    """
    Message roles following OpenAI's convention.

    - system: Instructions that define the assistant's behavior
    - user: Messages from the human user
    - assistant: Messages from the AI assistant
    - tool: Results from tool/function calls (for function calling)
    """
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """
    A single message in the conversation.

    Follows the OpenAI message format. ``content`` is either plain text or a
    list of structured parts (text, image, tool_use, tool_result, ...).

    Attributes:
        role: Who sent the message (system/user/assistant/tool)
        content: Text content or a list of structured content parts
        name: Optional name for the message sender
        tool_calls: Optional list of tool calls made by the assistant
        tool_call_id: ID of the tool call this message is responding to (for tool role)

    Example:
        >>> msg = Message(role="user", content="What is 2+2?")
        >>> msg.to_dict()
        {"role": "user", "content": "What is 2+2?"}
    """
    role: str = Field(..., description="The role of the message sender")
    content: Optional[Union[str, List[Any]]] = Field(None, description="Text or structured content parts")
    name: Optional[str] = Field(None, description="Optional name of the sender")
    tool_calls: Optional[List[Dict[str, Any]]] = Field(None, description="Tool calls made by assistant")
    tool_call_id: Optional[str] = Field(None, description="ID of tool call this responds to")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert message to dictionary, excluding None values.
        This is the shape the compaction core and the OpenAI API both use.
        """
        d: Dict[str, Any] = {"role": self.role}
        if self.content is not None:
            d["content"] = self.content
        if self.name is not None:
            d["name"] = self.name
        if self.tool_calls is not None:
            d["tool_calls"] = self.tool_calls
        if self.tool_call_id is not None:
            d["tool_call_id"] = self.tool_call_id
        return d


class CompletionResponse(BaseModel):
    """
    Complete (non-streaming) response from the LLM.

    Attributes:
        content: The full text response from the model
        role: Always "assistant" for completion responses
        finish_reason: Why generation stopped
        model: The model that generated the response
        id: Unique identifier for this completion
        usage: Token usage statistics (prompt_tokens, completion_tokens, total_tokens)
    """
    content: Optional[str] = Field(None, description="The complete response text")
    role: str = Field(default="assistant", description="Always 'assistant'")
    finish_reason: Optional[str] = Field(None, description="Why generation stopped")
    model: Optional[str] = Field(None, description="Model that generated response")
    id: Optional[str] = Field(None, description="Unique completion ID")
    usage: Optional[Dict[str, int]] = Field(None, description="Token usage stats")


class LLMProviderError(Exception):
    """
    Base exception for LLM provider errors.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code if applicable
        provider: Name of the provider that raised the error
        original_error: The underlying exception if wrapping another error
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.original_error = original_error

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.insert(0, f"[{self.provider}]")
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        return " ".join(parts)
