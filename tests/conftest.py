"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from email_drafter.completion.client import CompletionParams
from email_drafter.config import ComposerConfig
from email_drafter.processing.prompts import CLASSIFIER_INSTRUCTION

Reply = str | Exception
Payload = dict[str, Any] | Exception


class StubCompletion:
    """Deterministic CompletionClient.

    Answers the classifier instruction with ``classification`` and every
    structured (generator) call with ``email``. A reply that is an
    exception instance is raised instead of returned.
    """

    def __init__(
        self, classification: Reply = "follow-up", email: Payload | None = None
    ) -> None:
        self.classification = classification
        self.email = email if email is not None else {}
        self.calls: list[tuple[str, str, CompletionParams]] = []
        self.tools: list[dict[str, Any]] = []

    async def complete(self, system: str, user_text: str, params: CompletionParams) -> str:
        self.calls.append((system, user_text, params))
        reply = self.classification if system == CLASSIFIER_INSTRUCTION else ""
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def complete_structured(
        self,
        system: str,
        user_text: str,
        params: CompletionParams,
        tool: dict[str, Any],
    ) -> dict[str, Any]:
        self.calls.append((system, user_text, params))
        self.tools.append(tool)
        if isinstance(self.email, Exception):
            raise self.email
        return self.email


def email_payload(
    subject: str = "Quick sync next week?", body: str = "Hi Dana, are you free Tuesday?"
) -> dict[str, Any]:
    return {"subject": subject, "body": body}


@pytest.fixture
def make_completion() -> Callable[..., StubCompletion]:
    """Factory for StubCompletion instances with a valid default email reply."""

    def _make(classification: Reply = "follow-up", email: Payload | None = None) -> StubCompletion:
        return StubCompletion(
            classification=classification,
            email=email_payload() if email is None else email,
        )

    return _make


@pytest.fixture
def fast_config() -> ComposerConfig:
    """ComposerConfig with stream pacing disabled."""
    return ComposerConfig(stream_delay=0)
