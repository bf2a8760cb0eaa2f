"""System instructions for the classifier and the two generators."""

from typing import Any

from email_drafter.processing.types import Archetype

# Maximum characters of user intent sent to the model. Intents are one or two
# sentences in practice; anything longer is almost certainly pasted content.
INTENT_CHAR_LIMIT = 2_000


# ── Classifier ─────────────────────────────────────────────────────────────────

CLASSIFIER_INSTRUCTION = """\
You are a routing assistant that determines which type of email should be generated based on user input.

Analyze the user's prompt and classify it as either:
- "sales" - for emails related to selling, pitching, business development, lead generation, product promotion, or any commercial outreach
- "follow-up" - for emails checking in, following up on previous conversations, reminders, status updates, or maintaining relationships

Respond with ONLY the classification: either "sales" or "follow-up"

Examples:
- "Meeting request for Tuesday" → follow-up
- "Pitch our new product to a potential client" → sales
- "Check in about the proposal we sent last week" → follow-up
- "Introduce our services to a new lead" → sales
- "Follow up on our conversation from yesterday" → follow-up"""


# ── Generators ─────────────────────────────────────────────────────────────────

_EMAIL_FORMAT = """\
Generate both a subject line and email body.
Record them with the record_email tool."""

SALES_INSTRUCTION = f"""\
You are a Sales Assistant specialized in creating concise, effective sales emails.

REQUIREMENTS:
- Total email must be under 40 words
- Each sentence must be 7-10 words maximum
- Be direct, compelling, and action-oriented
- Include a clear call-to-action
- Professional but conversational tone

{_EMAIL_FORMAT}"""

FOLLOW_UP_INSTRUCTION = f"""\
You are a Follow-up Assistant specialized in creating polite, professional follow-up emails.

CHARACTERISTICS:
- Polite and respectful tone
- Clear purpose and context
- Appropriate level of persistence
- Professional but friendly
- Includes next steps or call-to-action

{_EMAIL_FORMAT}"""

INSTRUCTIONS: dict[Archetype, str] = {
    Archetype.SALES: SALES_INSTRUCTION,
    Archetype.FOLLOW_UP: FOLLOW_UP_INSTRUCTION,
}


def build_system_prompt(archetype: Archetype, recipient_context: str = "") -> str:
    """Return the generator instruction for archetype, with recipient context appended."""
    instruction = INSTRUCTIONS[archetype]
    context = recipient_context.strip()
    if context:
        instruction += f"\n\nRecipient context: {context}"
    return instruction


def clip_intent(intent_text: str) -> str:
    """Trim surrounding whitespace and cap the intent at INTENT_CHAR_LIMIT."""
    return intent_text.strip()[:INTENT_CHAR_LIMIT]


# ── Tool definition ────────────────────────────────────────────────────────────

#: Anthropic tool schema the generators force, so the reply is always a
#: {subject, body} object.
EMAIL_TOOL: dict[str, Any] = {
    "name": "record_email",
    "description": "Record the generated email.",
    "input_schema": {
        "type": "object",
        "properties": {
            "subject": {"type": "string", "description": "Subject line."},
            "body": {"type": "string", "description": "Email body, plain text."},
        },
        "required": ["subject", "body"],
    },
}
