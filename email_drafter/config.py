"""Runtime configuration for the composer, read from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from email_drafter.completion.client import DEFAULT_MODEL, DEFAULT_TIMEOUT_SECONDS
from email_drafter.processing.types import Archetype, GeneratedEmail

logger = logging.getLogger(__name__)

_DEFAULT_STREAM_DELAY_MS = 50

#: Substituted when a generator's completion call fails or returns malformed output.
DEFAULT_FALLBACKS: dict[Archetype, GeneratedEmail] = {
    Archetype.SALES: GeneratedEmail(
        subject="Quick question about your business",
        body=(
            "Hi! I have a solution that could help your business grow. "
            "Can we chat for 10 minutes this week?"
        ),
    ),
    Archetype.FOLLOW_UP: GeneratedEmail(
        subject="Following up on our conversation",
        body=(
            "Hi,\n\nI wanted to follow up on our recent conversation. "
            "Please let me know if you need any additional information or "
            "if there's anything I can help clarify.\n\n"
            "Looking forward to hearing from you.\n\nBest regards"
        ),
    ),
}


def _parse_float(name: str, raw: str, default: float) -> float:
    """Parse a non-negative float env value. Falls back to default on bad input."""
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %g", name, raw, default)
        return default
    if value < 0:
        logger.warning("Negative %s %r; defaulting to %g", name, raw, default)
        return default
    return value


def _parse_archetype(raw: str) -> Archetype:
    try:
        return Archetype(raw.strip().lower())
    except ValueError:
        logger.warning("Invalid DEFAULT_ARCHETYPE %r; defaulting to follow-up", raw)
        return Archetype.FOLLOW_UP


@dataclass(frozen=True)
class ComposerConfig:
    """Controls the model, timeouts, stream pacing and fallback content."""

    model: str = DEFAULT_MODEL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    stream_delay: float = _DEFAULT_STREAM_DELAY_MS / 1000
    default_archetype: Archetype = Archetype.FOLLOW_UP
    fallbacks: dict[Archetype, GeneratedEmail] = field(
        default_factory=lambda: dict(DEFAULT_FALLBACKS)
    )

    def __post_init__(self) -> None:
        missing = set(Archetype) - set(self.fallbacks)
        if missing:
            raise ValueError(
                f"fallbacks missing for: {', '.join(sorted(a.value for a in missing))}"
            )
        for archetype, email in self.fallbacks.items():
            if not email.subject.strip() or not email.body.strip():
                raise ValueError(f"fallback for {archetype.value} must have subject and body")

    @classmethod
    def from_env(cls) -> ComposerConfig:
        """Build ComposerConfig from environment variables."""
        delay_ms = _parse_float(
            "STREAM_DELAY_MS",
            os.environ.get("STREAM_DELAY_MS", str(_DEFAULT_STREAM_DELAY_MS)),
            _DEFAULT_STREAM_DELAY_MS,
        )
        return cls(
            model=os.environ.get("EMAIL_DRAFTER_MODEL", "").strip() or DEFAULT_MODEL,
            timeout_seconds=_parse_float(
                "COMPLETION_TIMEOUT_SECONDS",
                os.environ.get("COMPLETION_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)),
                DEFAULT_TIMEOUT_SECONDS,
            )
            or DEFAULT_TIMEOUT_SECONDS,
            stream_delay=delay_ms / 1000,
            default_archetype=_parse_archetype(
                os.environ.get("DEFAULT_ARCHETYPE", Archetype.FOLLOW_UP.value)
            ),
        )
