"""Types for the classify → generate pipeline."""

from dataclasses import dataclass
from enum import Enum


class Archetype(str, Enum):
    """The closed set of email archetypes the classifier can select."""

    SALES = "sales"
    FOLLOW_UP = "follow-up"


ARCHETYPE_LABEL: dict[Archetype, str] = {
    Archetype.SALES: "Sales",
    Archetype.FOLLOW_UP: "Follow-up",
}


@dataclass(frozen=True)
class GeneratedEmail:
    """Subject + body produced by exactly one generator per invocation."""

    subject: str
    body: str


@dataclass(frozen=True)
class ComposedEmail:
    """Result of a full pipeline run, returned by the synchronous path.

    Field names line up with the draft record store (subject, body) so a
    composed email can be saved without translation.
    """

    archetype: Archetype
    subject: str
    body: str

    def to_dict(self) -> dict[str, str]:
        return {
            "email_type": self.archetype.value,
            "subject": self.subject,
            "body": self.body,
        }
