"""EmailComposer — sequences classify → generate and delivers the result.

Two delivery modes share the same pipeline:

- ``run()`` returns a single ComposedEmail.
- ``stream()`` returns a ComposeStream: a lazy, single-consumer async
  iterator of progress events ending in exactly one Done or Error.

Soft failures (bad classifier output, malformed or failed generation) never
leave the happy path; they resolve to the configured defaults. Only a
completion capability that could not be constructed at all is fatal.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Iterable, Iterator
from enum import Enum

from email_drafter.completion.client import (
    AnthropicCompletion,
    CapabilityUnavailable,
    CompletionClient,
)
from email_drafter.config import ComposerConfig
from email_drafter.processing.classifier import IntentClassifier
from email_drafter.processing.generators import EmailGenerator, build_generators
from email_drafter.processing.types import Archetype, ComposedEmail, GeneratedEmail
from email_drafter.streaming.events import (
    BodyPartial,
    Classified,
    Classifying,
    Done,
    Error,
    Generating,
    ProgressEvent,
    SubjectReady,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_MESSAGE = (
    "AI email generation is unavailable. "
    "Please check your Anthropic API key configuration."
)
FAILURE_MESSAGE = "Failed to generate email. Please try again later."

_WORD = re.compile(r"\S+")


class ConfigurationError(Exception):
    """Raised when the pipeline is used without a usable completion capability."""


def body_prefixes(body: str) -> Iterator[tuple[str, bool]]:
    """Yield (prefix, is_final) for each whitespace-delimited word of body.

    The i-th prefix ends with the i-th word and keeps the original
    whitespace, so the final prefix is the body itself.
    """
    ends = [m.end() for m in _WORD.finditer(body)]
    for i, end in enumerate(ends):
        is_final = i == len(ends) - 1
        yield (body if is_final else body[:end]), is_final


def accumulate(events: Iterable[ProgressEvent]) -> ComposedEmail:
    """Fold a finished event sequence back into the ComposedEmail it delivered.

    Raises:
        ValueError: the sequence ended in an Error or never reached Done.
    """
    archetype: Archetype | None = None
    subject = ""
    body = ""
    for event in events:
        if isinstance(event, Error):
            raise ValueError(event.message)
        if isinstance(event, Classified):
            archetype = event.archetype
        elif isinstance(event, SubjectReady):
            subject = event.subject
        elif isinstance(event, BodyPartial):
            body = event.text
        elif isinstance(event, Done):
            return ComposedEmail(archetype=archetype or event.archetype, subject=subject, body=body)
    raise ValueError("event sequence ended without a terminal Done event")


# ── Streaming ──────────────────────────────────────────────────────────────────


class StreamState(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    GENERATING = "generating"
    SUBJECT_STREAMING = "subject_streaming"
    BODY_STREAMING = "body_streaming"
    DONE = "done"
    ERROR = "error"
    CLOSED = "closed"  # abandoned by the consumer before a terminal event


TERMINAL_STATES = frozenset({StreamState.DONE, StreamState.ERROR, StreamState.CLOSED})


class ComposeStream:
    """One streaming invocation of the pipeline.

    Nothing runs until the first event is requested. The stream can be
    iterated once; a second ``async for`` raises RuntimeError. Abandoning it
    (``aclose()``, leaving an ``async with`` block, or cancelling the
    consuming task) cancels any in-flight completion call and emits nothing
    further. A consumer that ``break``s out of a bare ``async for`` must call
    ``aclose()`` itself.

    Usage::

        async with composer.stream("Pitch our new product") as events:
            async for event in events:
                send(event.to_sse())
    """

    def __init__(
        self,
        composer: EmailComposer,
        intent_text: str,
        recipient_context: str = "",
    ) -> None:
        self._composer = composer
        self._intent = intent_text
        self._context = recipient_context
        self._gen = self._produce()
        self._iterated = False
        self.state = StreamState.IDLE

    def __aiter__(self) -> ComposeStream:
        if self._iterated:
            raise RuntimeError("a ComposeStream can only be iterated once")
        self._iterated = True
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self._gen.__anext__()

    async def __aenter__(self) -> ComposeStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Abandon the stream. Safe to call at any point, including after Done."""
        await self._gen.aclose()
        if self.state not in TERMINAL_STATES:
            self._transition(StreamState.CLOSED)

    def _transition(self, state: StreamState) -> None:
        logger.debug("stream %s → %s", self.state.value, state.value)
        self.state = state

    async def _pause(self) -> None:
        delay = self._composer.config.stream_delay
        if delay > 0:
            await asyncio.sleep(delay)

    async def _produce(self) -> AsyncIterator[ProgressEvent]:
        composer = self._composer
        if not composer.available:
            self._transition(StreamState.ERROR)
            yield Error(UNAVAILABLE_MESSAGE)
            return

        try:
            self._transition(StreamState.CLASSIFYING)
            yield Classifying()
            archetype = await composer.classify(self._intent)

            self._transition(StreamState.CLASSIFIED)
            yield Classified(archetype)

            self._transition(StreamState.GENERATING)
            yield Generating()
            email = await composer.generate(archetype, self._intent, self._context)

            self._transition(StreamState.SUBJECT_STREAMING)
            yield SubjectReady(email.subject)
            await self._pause()

            self._transition(StreamState.BODY_STREAMING)
            for text, is_final in body_prefixes(email.body):
                yield BodyPartial(text=text, is_final=is_final)
                if not is_final:
                    await self._pause()

            self._transition(StreamState.DONE)
            yield Done(archetype)
        except (GeneratorExit, asyncio.CancelledError):
            if self.state not in TERMINAL_STATES:
                logger.info("stream abandoned by consumer in state %s", self.state.value)
                self._transition(StreamState.CLOSED)
            raise
        except Exception:  # noqa: BLE001
            logger.error(
                "stream failed in state %s", self.state.value, exc_info=True
            )
            self._transition(StreamState.ERROR)
            yield Error(FAILURE_MESSAGE)


# ── Composer ───────────────────────────────────────────────────────────────────


class EmailComposer:
    """Classifier + generator dispatch behind a synchronous and a streaming API.

    Build with ``from_env()`` in application code: it validates the
    completion capability up front and, if no credential is configured,
    returns a composer in the unavailable state (``available`` is False and
    ``configuration_error`` holds the reason) instead of failing later.

    Usage::

        composer = EmailComposer.from_env()
        result = await composer.run("Follow up on our call", "CTO at Acme")
    """

    def __init__(
        self,
        completion: CompletionClient | None,
        config: ComposerConfig | None = None,
        *,
        unavailable: CapabilityUnavailable | None = None,
    ) -> None:
        self._config = config or ComposerConfig()
        if completion is None and unavailable is None:
            unavailable = CapabilityUnavailable("no completion capability configured")
        self._unavailable = unavailable

        self._classifier: IntentClassifier | None = None
        self._generators: dict[Archetype, EmailGenerator] = {}
        if completion is not None and unavailable is None:
            self._classifier = IntentClassifier(
                completion,
                default=self._config.default_archetype,
                timeout=self._config.timeout_seconds,
            )
            self._generators = build_generators(
                completion, self._config.fallbacks, self._config.timeout_seconds
            )

    @classmethod
    def from_env(cls, config: ComposerConfig | None = None) -> EmailComposer:
        """Construct the Anthropic-backed composer, or an unavailable one."""
        config = config or ComposerConfig.from_env()
        try:
            completion = AnthropicCompletion(
                model=config.model, timeout=config.timeout_seconds
            )
        except CapabilityUnavailable as exc:
            logger.warning("%s", exc)
            return cls(None, config, unavailable=exc)
        return cls(completion, config)

    @property
    def config(self) -> ComposerConfig:
        return self._config

    @property
    def available(self) -> bool:
        return self._unavailable is None

    @property
    def configuration_error(self) -> CapabilityUnavailable | None:
        return self._unavailable

    def _require_available(self) -> None:
        if self._unavailable is not None:
            raise ConfigurationError(UNAVAILABLE_MESSAGE) from self._unavailable

    # ── Pipeline steps ─────────────────────────────────────────────────────────

    async def classify(self, intent_text: str) -> Archetype:
        """Classify intent_text. Raises ConfigurationError only when unavailable."""
        classifier = self._classifier
        if classifier is None:
            raise ConfigurationError(UNAVAILABLE_MESSAGE) from self._unavailable
        return await classifier.classify(intent_text)

    async def generate(
        self, archetype: Archetype, intent_text: str, recipient_context: str = ""
    ) -> GeneratedEmail:
        """Dispatch to the generator for archetype."""
        self._require_available()
        return await self._generators[archetype].generate(intent_text, recipient_context)

    # ── Delivery ───────────────────────────────────────────────────────────────

    async def run(self, intent_text: str, recipient_context: str = "") -> ComposedEmail:
        """Classify and generate in one call.

        Raises:
            ConfigurationError: no completion capability is configured.
            ValueError: intent_text is blank.
        """
        self._require_available()
        _require_intent(intent_text)
        archetype = await self.classify(intent_text)
        email = await self.generate(archetype, intent_text, recipient_context)
        return ComposedEmail(archetype=archetype, subject=email.subject, body=email.body)

    def stream(self, intent_text: str, recipient_context: str = "") -> ComposeStream:
        """Return a lazy event stream for one invocation.

        Raises:
            ValueError: intent_text is blank.
        """
        _require_intent(intent_text)
        return ComposeStream(self, intent_text, recipient_context)


def _require_intent(intent_text: str) -> None:
    if not intent_text or not intent_text.strip():
        raise ValueError("intent text is required")
