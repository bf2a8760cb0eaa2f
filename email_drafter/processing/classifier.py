"""Intent classifier — maps free-text intent to one Archetype."""

from __future__ import annotations

import logging

from email_drafter.completion.client import (
    DEFAULT_TIMEOUT_SECONDS,
    CompletionClient,
    CompletionFailure,
    CompletionParams,
    bounded,
)
from email_drafter.processing.prompts import CLASSIFIER_INSTRUCTION, clip_intent
from email_drafter.processing.types import Archetype

logger = logging.getLogger(__name__)

# The reply is a single label: near-deterministic sampling, a handful of tokens.
CLASSIFIER_PARAMS = CompletionParams(temperature=0.1, max_tokens=10)

_STRIP_CHARS = " \t\r\n\"'`.!:;"


def parse_archetype(text: str) -> Archetype | None:
    """Return the Archetype named by a raw model reply, or None if it names neither."""
    label = text.strip().lower().strip(_STRIP_CHARS)
    try:
        return Archetype(label)
    except ValueError:
        return None


class IntentClassifier:
    """Classifies user intent with one low-temperature completion call.

    Never raises for bad model output or capability failures: generation can
    always proceed with *some* strategy, so any failure resolves to the
    configured default (FollowUp unless overridden).

    Usage::

        classifier = IntentClassifier(completion)
        archetype = await classifier.classify("Pitch our new product")
    """

    def __init__(
        self,
        completion: CompletionClient,
        default: Archetype = Archetype.FOLLOW_UP,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._completion = completion
        self._default = default
        self._timeout = timeout

    @property
    def default(self) -> Archetype:
        return self._default

    async def classify(self, intent_text: str) -> Archetype:
        """Return the archetype for intent_text, or the default on any failure."""
        try:
            reply = await bounded(
                self._completion.complete(
                    CLASSIFIER_INSTRUCTION, clip_intent(intent_text), CLASSIFIER_PARAMS
                ),
                self._timeout,
            )
        except CompletionFailure as exc:
            logger.warning(
                "Classification failed (%s); defaulting to %s", exc, self._default.value
            )
            return self._default

        archetype = parse_archetype(reply)
        if archetype is None:
            logger.warning(
                "Unrecognised classification %r; defaulting to %s",
                reply,
                self._default.value,
            )
            return self._default

        logger.info("intent classified as %s", archetype.value)
        return archetype
