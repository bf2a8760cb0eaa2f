"""Tests for EmailComposer — synchronous run, event stream, and abandonment."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from email_drafter.completion.client import (
    CapabilityError,
    CapabilityUnavailable,
    CompletionParams,
)
from email_drafter.config import DEFAULT_FALLBACKS, ComposerConfig
from email_drafter.processing.types import Archetype, ComposedEmail
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
from email_drafter.streaming.orchestrator import (
    FAILURE_MESSAGE,
    UNAVAILABLE_MESSAGE,
    ConfigurationError,
    EmailComposer,
    StreamState,
    accumulate,
    body_prefixes,
)

FOLLOW_UP_BODY = "Hi Sam,\n\nThanks for yesterday's call. Shall we meet Thursday?"
FOLLOW_UP_REPLY = {"subject": "Great talking yesterday", "body": FOLLOW_UP_BODY}


# ── Helpers ────────────────────────────────────────────────────────────────────


async def collect(stream) -> list[ProgressEvent]:
    return [event async for event in stream]


def assert_well_formed(events: list[ProgressEvent]) -> None:
    """Ordering invariants every successful stream must satisfy."""
    assert isinstance(events[0], Classifying)
    assert isinstance(events[1], Classified)
    assert isinstance(events[2], Generating)
    assert isinstance(events[3], SubjectReady)
    assert sum(isinstance(e, SubjectReady) for e in events) == 1
    assert isinstance(events[-1], Done)
    assert sum(e.is_terminal for e in events) == 1

    bodies = [e for e in events if isinstance(e, BodyPartial)]
    assert bodies, "expected at least one BodyPartial"
    assert events.index(bodies[0]) > events.index(events[3])
    word_counts = [len(b.text.split()) for b in bodies]
    assert word_counts == list(range(1, len(bodies) + 1))
    assert [b.is_final for b in bodies] == [False] * (len(bodies) - 1) + [True]
    for earlier, later in zip(bodies, bodies[1:]):
        assert later.text.startswith(earlier.text)


class GatedCompletion:
    """Completion whose generator call blocks until released, recording cancellation."""

    def __init__(self) -> None:
        self.generation_started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False
        self.calls: list[str] = []

    async def complete(self, system: str, user_text: str, params: CompletionParams) -> str:
        self.calls.append(system)
        return "sales"

    async def complete_structured(
        self, system: str, user_text: str, params: CompletionParams, tool: dict
    ) -> dict:
        self.calls.append(system)
        self.generation_started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return FOLLOW_UP_REPLY


class HangingCompletion:
    """Completion that never answers unless cancelled."""

    async def complete(self, system: str, user_text: str, params: CompletionParams) -> str:
        await asyncio.Event().wait()
        return ""

    async def complete_structured(
        self, system: str, user_text: str, params: CompletionParams, tool: dict
    ) -> dict:
        await asyncio.Event().wait()
        return {}


# ── body_prefixes ───────────────────────────────────────────────────────────────


class TestBodyPrefixes:
    def test_word_granularity(self) -> None:
        assert list(body_prefixes("one two three")) == [
            ("one", False),
            ("one two", False),
            ("one two three", True),
        ]

    def test_preserves_original_whitespace(self) -> None:
        prefixes = [text for text, _ in body_prefixes("Hi,\n\nThanks  again")]
        assert prefixes == ["Hi,", "Hi,\n\nThanks", "Hi,\n\nThanks  again"]

    def test_final_prefix_is_whole_body(self) -> None:
        body = DEFAULT_FALLBACKS[Archetype.FOLLOW_UP].body
        *_, (last, is_final) = body_prefixes(body)
        assert last == body
        assert is_final

    def test_single_word(self) -> None:
        assert list(body_prefixes("Thanks")) == [("Thanks", True)]


# ── run ─────────────────────────────────────────────────────────────────────────


class TestRun:
    async def test_follow_up_scenario(self, make_completion, fast_config) -> None:
        completion = make_completion(classification="follow-up", email=FOLLOW_UP_REPLY)
        composer = EmailComposer(completion, fast_config)

        result = await composer.run("Follow up on our conversation from yesterday")

        assert result == ComposedEmail(
            archetype=Archetype.FOLLOW_UP,
            subject="Great talking yesterday",
            body=FOLLOW_UP_BODY,
        )

    async def test_sales_dispatches_to_sales_generator(self, make_completion, fast_config) -> None:
        completion = make_completion(classification="sales")
        composer = EmailComposer(completion, fast_config)

        result = await composer.run("Pitch our new product", "Tech startup CEO")

        assert result.archetype is Archetype.SALES
        generator_system = completion.calls[1][0]
        assert "Sales Assistant" in generator_system
        assert "Tech startup CEO" in generator_system

    async def test_soft_failures_use_fallbacks(self, make_completion, fast_config) -> None:
        completion = make_completion(
            classification=CapabilityError("timeout"), email=CapabilityError("timeout")
        )
        result = await EmailComposer(completion, fast_config).run("Anything")

        fallback = DEFAULT_FALLBACKS[Archetype.FOLLOW_UP]
        assert result == ComposedEmail(Archetype.FOLLOW_UP, fallback.subject, fallback.body)

    async def test_unavailable_raises_configuration_error(self) -> None:
        composer = EmailComposer(None)
        assert not composer.available
        with pytest.raises(ConfigurationError, match="API key"):
            await composer.run("Follow up on our conversation from yesterday")

    async def test_blank_intent_rejected(self, make_completion) -> None:
        with pytest.raises(ValueError):
            await EmailComposer(make_completion()).run("   ")

    async def test_classify_and_generate_exposed(self, make_completion, fast_config) -> None:
        composer = EmailComposer(make_completion(classification="sales"), fast_config)
        assert await composer.classify("Pitch") is Archetype.SALES
        email = await composer.generate(Archetype.FOLLOW_UP, "Check in")
        assert email.subject

    async def test_hanging_completion_bounded_by_configured_timeout(self) -> None:
        config = ComposerConfig(timeout_seconds=0.05, stream_delay=0)
        composer = EmailComposer(HangingCompletion(), config)

        result = await asyncio.wait_for(composer.run("Check in"), timeout=2)

        fallback = DEFAULT_FALLBACKS[Archetype.FOLLOW_UP]
        assert result == ComposedEmail(Archetype.FOLLOW_UP, fallback.subject, fallback.body)

    async def test_classify_unavailable_raises_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            await EmailComposer(None).classify("Pitch")


# ── from_env ────────────────────────────────────────────────────────────────────


class TestFromEnv:
    def test_missing_key_gives_unavailable_composer(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        composer = EmailComposer.from_env(ComposerConfig())
        assert composer.available is False
        assert isinstance(composer.configuration_error, CapabilityUnavailable)

    def test_key_present_gives_available_composer(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
        composer = EmailComposer.from_env(ComposerConfig())
        assert composer.available is True
        assert composer.configuration_error is None


# ── stream ──────────────────────────────────────────────────────────────────────


class TestStream:
    async def test_follow_up_scenario_event_sequence(self, make_completion, fast_config) -> None:
        completion = make_completion(classification="follow-up", email=FOLLOW_UP_REPLY)
        composer = EmailComposer(completion, fast_config)

        events = await collect(composer.stream("Follow up on our conversation from yesterday"))

        assert_well_formed(events)
        assert events[1] == Classified(Archetype.FOLLOW_UP)
        assert events[3] == SubjectReady("Great talking yesterday")
        assert events[-2] == BodyPartial(FOLLOW_UP_BODY, is_final=True)
        assert events[-1] == Done(Archetype.FOLLOW_UP)
        assert len(events) == 4 + len(FOLLOW_UP_BODY.split()) + 1

    async def test_fallback_content_streams_normally(self, make_completion, fast_config) -> None:
        completion = make_completion(classification="sales", email={"subject": "", "body": ""})
        events = await collect(EmailComposer(completion, fast_config).stream("Pitch"))

        assert_well_formed(events)
        assert not any(isinstance(e, Error) for e in events)
        assert accumulate(events).body == DEFAULT_FALLBACKS[Archetype.SALES].body

    async def test_matches_run_result(self, make_completion, fast_config) -> None:
        for classification in ("sales", "follow-up", "??"):
            completion = make_completion(classification=classification, email=FOLLOW_UP_REPLY)
            composer = EmailComposer(completion, fast_config)
            ran = await composer.run("Intent text", "Context")
            streamed = accumulate(await collect(composer.stream("Intent text", "Context")))
            assert streamed == ran

    async def test_unavailable_emits_single_error(self) -> None:
        stream = EmailComposer(None).stream("Follow up on our conversation from yesterday")
        events = await collect(stream)
        assert events == [Error(UNAVAILABLE_MESSAGE)]
        assert stream.state is StreamState.ERROR

    async def test_unexpected_fault_becomes_terminal_error(
        self, make_completion, fast_config
    ) -> None:
        composer = EmailComposer(make_completion(), fast_config)
        with patch.object(
            composer, "generate", AsyncMock(side_effect=RuntimeError("boom"))
        ):
            events = await collect(composer.stream("Check in"))

        assert [type(e) for e in events] == [Classifying, Classified, Generating, Error]
        assert events[-1] == Error(FAILURE_MESSAGE)

    async def test_blank_intent_rejected(self, make_completion) -> None:
        with pytest.raises(ValueError):
            EmailComposer(make_completion()).stream("")

    async def test_lazy_until_first_event(self, make_completion, fast_config) -> None:
        completion = make_completion()
        stream = EmailComposer(completion, fast_config).stream("Check in")
        assert stream.state is StreamState.IDLE
        assert completion.calls == []
        await stream.aclose()

    async def test_state_reaches_done(self, make_completion, fast_config) -> None:
        stream = EmailComposer(make_completion(), fast_config).stream("Check in")
        seen = []
        async for _ in stream:
            seen.append(stream.state)
        assert seen[0] is StreamState.CLASSIFYING
        assert StreamState.BODY_STREAMING in seen
        assert stream.state is StreamState.DONE

    async def test_nothing_after_terminal_event(self, make_completion, fast_config) -> None:
        stream = EmailComposer(make_completion(), fast_config).stream("Check in")
        await collect(stream)
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    async def test_second_iteration_raises(self, make_completion, fast_config) -> None:
        stream = EmailComposer(make_completion(), fast_config).stream("Check in")
        await collect(stream)
        with pytest.raises(RuntimeError):
            await collect(stream)

    async def test_hanging_completion_still_reaches_done(self) -> None:
        config = ComposerConfig(timeout_seconds=0.05, stream_delay=0)
        stream = EmailComposer(HangingCompletion(), config).stream("Check in")

        events = await asyncio.wait_for(collect(stream), timeout=2)

        assert_well_formed(events)
        assert accumulate(events).body == DEFAULT_FALLBACKS[Archetype.FOLLOW_UP].body

    async def test_pacing_delay_between_body_events(self, make_completion) -> None:
        config = ComposerConfig(stream_delay=0.001)
        completion = make_completion(email={"subject": "S", "body": "a b c"})
        with patch(
            "email_drafter.streaming.orchestrator.asyncio.sleep", new=AsyncMock()
        ) as sleep:
            await collect(EmailComposer(completion, config).stream("Check in"))
        # once after the subject, then after every non-final body event
        assert sleep.await_count == 3

    async def test_zero_delay_never_sleeps(self, make_completion, fast_config) -> None:
        with patch(
            "email_drafter.streaming.orchestrator.asyncio.sleep", new=AsyncMock()
        ) as sleep:
            await collect(EmailComposer(make_completion(), fast_config).stream("Check in"))
        sleep.assert_not_awaited()


# ── Abandonment ─────────────────────────────────────────────────────────────────


class TestAbandonment:
    async def test_aclose_after_classified_stops_the_pipeline(
        self, make_completion, fast_config
    ) -> None:
        completion = make_completion(classification="sales")
        stream = EmailComposer(completion, fast_config).stream("Pitch")

        assert isinstance(await stream.__anext__(), Classifying)
        assert isinstance(await stream.__anext__(), Classified)
        await stream.aclose()

        assert stream.state is StreamState.CLOSED
        assert len(completion.calls) == 1  # generator never called
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    async def test_cancel_during_generation_releases_pending_call(self, fast_config) -> None:
        completion = GatedCompletion()
        stream = EmailComposer(completion, fast_config).stream("Pitch")
        received: list[ProgressEvent] = []

        async def consume() -> None:
            async for event in stream:
                received.append(event)

        task = asyncio.create_task(consume())
        await asyncio.wait_for(completion.generation_started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert completion.cancelled is True
        assert stream.state is StreamState.CLOSED
        assert [type(e) for e in received] == [Classifying, Classified, Generating]

    async def test_aclose_before_start(self, make_completion) -> None:
        stream = EmailComposer(make_completion()).stream("Check in")
        await stream.aclose()
        assert stream.state is StreamState.CLOSED

    async def test_break_inside_async_with_closes(self, make_completion, fast_config) -> None:
        completion = make_completion(classification="sales")
        async with EmailComposer(completion, fast_config).stream("Pitch") as stream:
            async for event in stream:
                if isinstance(event, Classified):
                    break

        assert stream.state is StreamState.CLOSED
        assert len(completion.calls) == 1

    async def test_aclose_after_done_keeps_done(self, make_completion, fast_config) -> None:
        stream = EmailComposer(make_completion(), fast_config).stream("Check in")
        await collect(stream)
        await stream.aclose()
        assert stream.state is StreamState.DONE


# ── accumulate ──────────────────────────────────────────────────────────────────


class TestAccumulate:
    def test_folds_events(self) -> None:
        events = [
            Classifying(),
            Classified(Archetype.SALES),
            Generating(),
            SubjectReady("S"),
            BodyPartial("a"),
            BodyPartial("a b", is_final=True),
            Done(Archetype.SALES),
        ]
        assert accumulate(events) == ComposedEmail(Archetype.SALES, "S", "a b")

    def test_error_raises(self) -> None:
        with pytest.raises(ValueError, match="unavailable"):
            accumulate([Error(UNAVAILABLE_MESSAGE)])

    def test_incomplete_sequence_raises(self) -> None:
        with pytest.raises(ValueError):
            accumulate([Classifying(), Classified(Archetype.SALES)])
