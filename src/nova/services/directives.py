"""
Structured directive extraction

The model may embed a JSON object such as ``{"type": "get-day"}`` in its
free-text answer. Date/time directives are answered from the server clock;
anything else is passed through as a general reply.
"""

import json
import re
from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from nova.models.messages import AssistantReply, ReplyType

logger = structlog.get_logger()

# Greedy: first "{" through last "}"
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

UNSURE_RESPONSE = "I'm not completely sure, but I'll try to find a more accurate answer next time."
NO_ANSWER_RESPONSE = "Sorry, I couldn't find an answer to that."

Clock = Callable[[], datetime]


def format_directive(reply_type: ReplyType, now: datetime) -> str:
    """Canonical text for a date/time directive"""
    if reply_type == ReplyType.GET_DATE:
        return f"Current date is {now.strftime('%Y-%m-%d')}"
    if reply_type == ReplyType.GET_TIME:
        return f"Current time is {now.strftime('%I:%M %p')}"
    if reply_type == ReplyType.GET_DAY:
        return f"Today is {now.strftime('%A')}"
    if reply_type == ReplyType.GET_MONTH:
        return f"This month is {now.strftime('%B')}"
    raise ValueError(f"{reply_type.value} is not a date/time directive")


def extract_directive(text: str) -> Optional[dict[str, Any]]:
    """
    Find an embedded JSON object in model output

    Returns:
        The decoded object, or None when there is no valid JSON object
    """
    match = _JSON_OBJECT.search(text)
    if not match:
        return None

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.info("directives.invalid_json", error=str(e))
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def interpret_model_text(text: Optional[str], clock: Clock = datetime.now) -> AssistantReply:
    """
    Turn raw model output into a typed reply

    Args:
        text: Model output, possibly containing a JSON directive
        clock: Source of the current time

    Returns:
        AssistantReply for a directive or the free-text answer
    """
    text = text or ""
    directive = extract_directive(text)

    if directive is None:
        return AssistantReply(
            type=ReplyType.GENERAL,
            response=text.strip() or NO_ANSWER_RESPONSE,
        )

    directive_type = directive.get("type")
    if isinstance(directive_type, str) and directive_type in ReplyType.date_time_values():
        reply_type = ReplyType(directive_type)
        logger.info("directives.matched", type=reply_type.value)
        return AssistantReply(type=reply_type, response=format_directive(reply_type, clock()))

    response = directive.get("response")
    return AssistantReply(
        type=ReplyType.GENERAL,
        response=response if isinstance(response, str) and response.strip() else UNSURE_RESPONSE,
    )
