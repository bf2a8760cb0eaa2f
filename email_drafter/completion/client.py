"""Text-completion capability — the single external dependency of the pipeline."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

import anthropic
from anthropic import AsyncAnthropic
from anthropic.types import ToolUseBlock

logger = logging.getLogger(__name__)

# Haiku: fast and cheap enough for a classify + generate round trip per request.
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
DEFAULT_TIMEOUT_SECONDS = 30.0

T = TypeVar("T")


class CompletionFailure(Exception):
    """Base class for every way a completion call can fail."""


class CapabilityUnavailable(CompletionFailure):
    """No credential or configuration: the capability cannot be used at all."""


class CapabilityError(CompletionFailure):
    """Transient failure: timeout, provider error, or an unusable response."""


@dataclass(frozen=True)
class CompletionParams:
    """Sampling parameters for a single completion call."""

    temperature: float
    max_tokens: int


async def bounded(call: Awaitable[T], timeout: float) -> T:
    """Await call, turning expiry of timeout into a CapabilityError.

    Cancellation of the awaiting task still propagates unchanged.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise CapabilityError(f"completion timed out after {timeout:g}s") from exc


@runtime_checkable
class CompletionClient(Protocol):
    """Interface consumed by the classifier and the generators."""

    async def complete(
        self, system: str, user_text: str, params: CompletionParams
    ) -> str:
        """Return the model's text for one system instruction + user message.

        Raises:
            CapabilityUnavailable: credential missing or rejected.
            CapabilityError: any other failure, including timeouts.
        """
        ...

    async def complete_structured(
        self,
        system: str,
        user_text: str,
        params: CompletionParams,
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        """Force the model to call tool and return the call's input object.

        Raises:
            CapabilityUnavailable: credential missing or rejected.
            CapabilityError: any other failure, including a missing tool call.
        """
        ...


class AnthropicCompletion:
    """CompletionClient backed by the Anthropic Messages API.

    Construction fails fast with CapabilityUnavailable when no API key is
    available, so callers learn about a missing credential before the first
    request rather than from a 401 halfway through a stream.

    Usage::

        completion = AnthropicCompletion()
        text = await completion.complete(system, prompt, CompletionParams(0.1, 10))
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not key.strip():
            raise CapabilityUnavailable(
                "ANTHROPIC_API_KEY is not set; AI email generation is disabled"
            )
        self._client = AsyncAnthropic(api_key=key)
        self._model = model
        self._timeout = timeout

    @property
    def model(self) -> str:
        return self._model

    async def complete(
        self, system: str, user_text: str, params: CompletionParams
    ) -> str:
        response = await self._create(system, user_text, params)

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not text:
            raise CapabilityError(
                f"completion returned no text (stop_reason={response.stop_reason!r})"
            )
        logger.debug("completion model=%s chars=%d", self._model, len(text))
        return text

    async def complete_structured(
        self,
        system: str,
        user_text: str,
        params: CompletionParams,
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        name = tool["name"]
        response = await self._create(
            system,
            user_text,
            params,
            tools=[tool],
            tool_choice={"type": "tool", "name": name},
        )

        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == name:
                logger.debug("structured completion model=%s tool=%s", self._model, name)
                return dict(block.input)  # type: ignore[arg-type]

        raise CapabilityError(
            f"completion did not call {name} (stop_reason={response.stop_reason!r})"
        )

    async def _create(
        self, system: str, user_text: str, params: CompletionParams, **extra: Any
    ) -> Any:
        try:
            return await bounded(
                self._client.messages.create(
                    model=self._model,
                    max_tokens=params.max_tokens,
                    temperature=params.temperature,
                    system=system,
                    messages=[{"role": "user", "content": user_text}],
                    **extra,
                ),
                self._timeout,
            )
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as exc:
            raise CapabilityUnavailable(f"credential rejected: {exc}") from exc
        except anthropic.APIError as exc:
            raise CapabilityError(f"completion request failed: {exc}") from exc
