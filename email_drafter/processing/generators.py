"""Archetype-specific email generators and the fixed dispatch table."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from email_drafter.completion.client import (
    DEFAULT_TIMEOUT_SECONDS,
    CompletionClient,
    CompletionFailure,
    CompletionParams,
    bounded,
)
from email_drafter.processing.prompts import EMAIL_TOOL, build_system_prompt, clip_intent
from email_drafter.processing.types import Archetype, GeneratedEmail

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when the tool input is not a valid {subject, body} payload."""


def parse_generated_email(data: Mapping[str, Any]) -> GeneratedEmail:
    """Validate the record_email tool input.

    The schema is enforced by the forced tool call; this still rejects
    anything that is not an object with non-blank string ``subject`` and
    ``body``, since the model can send empty strings.
    """
    if not isinstance(data, Mapping):
        raise GenerationError(f"expected an object, got {type(data).__name__}")

    fields: dict[str, str] = {}
    for name in ("subject", "body"):
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            raise GenerationError(f"missing or empty {name!r}")
        fields[name] = value.strip()
    return GeneratedEmail(subject=fields["subject"], body=fields["body"])


# ── Generators ─────────────────────────────────────────────────────────────────


class EmailGenerator:
    """Generates one archetype of email; falls back to fixed content on failure.

    Stateless between calls: everything an invocation needs arrives as
    arguments or was injected at construction.
    """

    archetype: Archetype
    params: CompletionParams

    def __init__(
        self,
        completion: CompletionClient,
        fallback: GeneratedEmail,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._completion = completion
        self._fallback = fallback
        self._timeout = timeout

    @property
    def fallback(self) -> GeneratedEmail:
        return self._fallback

    async def generate(
        self, intent_text: str, recipient_context: str = ""
    ) -> GeneratedEmail:
        """Return a generated email, or this generator's fallback on any failure."""
        system = build_system_prompt(self.archetype, recipient_context)
        try:
            data = await bounded(
                self._completion.complete_structured(
                    system, clip_intent(intent_text), self.params, EMAIL_TOOL
                ),
                self._timeout,
            )
            email = parse_generated_email(data)
        except (CompletionFailure, GenerationError) as exc:
            logger.warning(
                "%s generation failed (%s); using fallback email",
                self.archetype.value,
                exc,
            )
            return self._fallback

        logger.info(
            "%s email generated: subject=%r words=%d",
            self.archetype.value,
            email.subject,
            len(email.body.split()),
        )
        return email


class SalesGenerator(EmailGenerator):
    """Short, directive copy with a call to action (under ~40 words)."""

    archetype = Archetype.SALES
    params = CompletionParams(temperature=0.7, max_tokens=200)


class FollowUpGenerator(EmailGenerator):
    """Polite, context-referencing follow-ups."""

    archetype = Archetype.FOLLOW_UP
    params = CompletionParams(temperature=0.6, max_tokens=300)


def build_generators(
    completion: CompletionClient,
    fallbacks: Mapping[Archetype, GeneratedEmail],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[Archetype, EmailGenerator]:
    """Return the dispatch table: exactly one generator per archetype."""
    return {
        Archetype.SALES: SalesGenerator(completion, fallbacks[Archetype.SALES], timeout),
        Archetype.FOLLOW_UP: FollowUpGenerator(
            completion, fallbacks[Archetype.FOLLOW_UP], timeout
        ),
    }
