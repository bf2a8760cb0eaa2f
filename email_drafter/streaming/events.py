"""Progress events emitted by EmailComposer.stream().

Each event serialises to a flat tagged record (``{"type": ..., ...}``) so the
sequence can be carried by any server-push transport unchanged.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union

from email_drafter.processing.types import Archetype


class EventKind(str, Enum):
    CLASSIFYING = "classifying"
    CLASSIFIED = "classified"
    GENERATING = "generating"
    SUBJECT_READY = "subject_ready"
    BODY_PARTIAL = "body_partial"
    DONE = "done"
    ERROR = "error"


TERMINAL_KINDS = frozenset({EventKind.DONE, EventKind.ERROR})


class _Event:
    kind: ClassVar[EventKind]

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    def _payload(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.kind.value, **self._payload()}

    def to_sse(self) -> str:
        """Serialise as a single ``data:`` frame for text/event-stream responses."""
        return f"data: {json.dumps(self.to_dict())}\n\n"


@dataclass(frozen=True)
class Classifying(_Event):
    kind: ClassVar[EventKind] = EventKind.CLASSIFYING


@dataclass(frozen=True)
class Classified(_Event):
    kind: ClassVar[EventKind] = EventKind.CLASSIFIED
    archetype: Archetype

    def _payload(self) -> dict[str, Any]:
        return {"archetype": self.archetype.value}


@dataclass(frozen=True)
class Generating(_Event):
    kind: ClassVar[EventKind] = EventKind.GENERATING


@dataclass(frozen=True)
class SubjectReady(_Event):
    kind: ClassVar[EventKind] = EventKind.SUBJECT_READY
    subject: str

    def _payload(self) -> dict[str, Any]:
        return {"subject": self.subject}


@dataclass(frozen=True)
class BodyPartial(_Event):
    """The body so far: everything up to and including the n-th word."""

    kind: ClassVar[EventKind] = EventKind.BODY_PARTIAL
    text: str
    is_final: bool = False

    def _payload(self) -> dict[str, Any]:
        return {"text": self.text, "is_final": self.is_final}


@dataclass(frozen=True)
class Done(_Event):
    kind: ClassVar[EventKind] = EventKind.DONE
    archetype: Archetype

    def _payload(self) -> dict[str, Any]:
        return {"archetype": self.archetype.value}


@dataclass(frozen=True)
class Error(_Event):
    """Terminal failure. ``message`` is safe to show to operators and end users."""

    kind: ClassVar[EventKind] = EventKind.ERROR
    message: str

    def _payload(self) -> dict[str, Any]:
        return {"message": self.message}


ProgressEvent = Union[
    Classifying, Classified, Generating, SubjectReady, BodyPartial, Done, Error
]
