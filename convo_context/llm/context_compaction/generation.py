"""
Generation boundary for context compaction.

The scorer and compactor consume two capabilities, structured generation
and text generation. Both return a ``GenerationResult``: ``Ok(value)`` on
success or ``Err(reason)`` on any failure, so callers handle the fallback
path explicitly instead of catching exceptions.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, Protocol, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from convo_context.llm.base import LLMProvider
from convo_context.llm.types import Message, Role


T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str

    @property
    def ok(self) -> bool:
        return False


GenerationResult = Union[Ok[T], Err]


class TextGenerator(Protocol):
    """Produces free text for a prompt and system instruction."""

    async def generate_text(
        self,
        prompt: str,
        system_instruction: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "GenerationResult[str]":
        ...


class StructuredGenerator(Protocol):
    """Produces a record of type ``schema`` for a transcript."""

    async def generate_structured(
        self,
        transcript: str,
        schema: Type[M],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "GenerationResult[M]":
        ...


async def run_with_deadline(
    awaitable: Awaitable[T],
    timeout: Optional[float] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> "GenerationResult[T]":
    """
    Await ``awaitable`` under a deadline and an optional cancel signal.

    The in-flight call is cancelled when the deadline passes or the event is
    set. Exceptions raised by the call are returned as ``Err``.

    Args:
        awaitable: Coroutine performing the external call
        timeout: Seconds to wait; None waits indefinitely
        cancel_event: Caller-owned event; setting it abandons the call

    Returns:
        Ok(result) or Err(reason)
    """
    task = asyncio.ensure_future(awaitable)
    if cancel_event is not None and cancel_event.is_set():
        task.cancel()
        return Err("cancelled")

    waiters = {task}
    cancel_waiter = None
    if cancel_event is not None:
        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            cancel_waiter.cancel()

    if task not in done:
        task.cancel()
        if cancel_waiter is not None and cancel_waiter in done:
            return Err("cancelled")
        return Err(f"timed out after {timeout}s")

    if task.cancelled():
        return Err("cancelled")
    error = task.exception()
    if error is not None:
        return Err(f"{type(error).__name__}: {error}")
    return Ok(task.result())


_JSON_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json(text: str) -> str:
    """Unwrap a fenced JSON block if the model added one."""
    match = _JSON_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


class LLMProviderGenerator:
    """
    Text and structured generation on top of an ``LLMProvider``.

    Implements both ``TextGenerator`` and ``StructuredGenerator``. Structured
    output uses JSON mode with the pydantic schema embedded in the system
    instruction, then validates the reply against the schema.
    """

    STRUCTURED_SYSTEM_INSTRUCTION = (
        "You analyze conversation transcripts. Respond with a single JSON object "
        "that matches this JSON schema exactly, with no extra keys and no prose:\n{schema}"
    )

    def __init__(
        self,
        provider: LLMProvider,
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Args:
            provider: LLM provider used for completions
            model: Model override for compaction calls (None = provider default)
            temperature: Sampling temperature; low for focused summaries
            max_tokens: Optional cap on generated tokens
            logger: Optional logger
        """
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.logger = logger or logging.getLogger(__name__)

    async def _complete(self, system_instruction: str, prompt: str, **kwargs: Any) -> str:
        if self.model:
            kwargs["model"] = self.model
        response = await self.provider.completion(
            [
                Message(role=Role.SYSTEM.value, content=system_instruction),
                Message(role=Role.USER.value, content=prompt),
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            **kwargs,
        )
        if not response.content:
            raise ValueError("Empty completion content")
        return response.content

    async def generate_text(
        self,
        prompt: str,
        system_instruction: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "GenerationResult[str]":
        result = await run_with_deadline(self._complete(system_instruction, prompt), timeout, cancel_event)
        if not result.ok:
            self.logger.warning(f"Text generation failed: {result.reason}")
        return result

    async def generate_structured(
        self,
        transcript: str,
        schema: Type[M],
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> "GenerationResult[M]":
        system_instruction = self.STRUCTURED_SYSTEM_INSTRUCTION.format(
            schema=json.dumps(schema.model_json_schema())
        )
        result = await run_with_deadline(
            self._complete(system_instruction, transcript, response_format={"type": "json_object"}),
            timeout,
            cancel_event,
        )
        if not result.ok:
            self.logger.warning(f"Structured generation failed: {result.reason}")
            return result

        try:
            return Ok(schema.model_validate_json(extract_json(result.value)))
        except ValidationError as e:
            self.logger.warning(f"Structured generation returned an invalid record: {e.error_count()} errors")
            return Err(f"invalid {schema.__name__}: {e.error_count()} validation errors")
