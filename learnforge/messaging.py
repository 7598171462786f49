"""
Authority Messaging
===================

Tone-tagged, tiered messages shown to learners. Stateless lookup only.

Usage:
    from learnforge.messaging import get_authority_message, MessageContext

    response = get_authority_message(MessageContext.FAILURE, {"fail_count": 2})
    response.tone  # Tone.WARNING
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Tone(Enum):
    ENCOURAGEMENT = "encouragement"
    WARNING = "warning"
    CONSEQUENCE = "consequence"
    NEUTRAL = "neutral"


class MessageContext(Enum):
    SKIP = "skip"
    FAILURE = "failure"
    SUCCESS = "success"
    RETURN = "return"
    DEBT = "debt"
    STREAK = "streak"


@dataclass
class AuthorityResponse:
    """A message plus the tone it should be rendered in."""
    message: str
    tone: Tone
    action_required: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "tone": self.tone.value,
            "action_required": self.action_required,
        }


def _int(data: Mapping[str, Any], key: str, default: int) -> int:
    value = data.get(key)
    return int(value) if value else default


def _skip(data: Mapping[str, Any]) -> AuthorityResponse:
    skip_count = _int(data, "skip_count", 1)
    if skip_count == 1:
        return AuthorityResponse("First skip noted. This topic will return.", Tone.WARNING)
    elif skip_count == 2:
        return AuthorityResponse("Pattern forming. Skipping adds to your debt.", Tone.CONSEQUENCE)
    return AuthorityResponse(
        "Avoidance detected. Remediation required.",
        Tone.CONSEQUENCE,
        action_required="Complete remediation mission",
    )


def _failure(data: Mapping[str, Any]) -> AuthorityResponse:
    fail_count = _int(data, "fail_count", 1)
    if fail_count == 1:
        return AuthorityResponse("Not there yet. One stumble doesn't define you.", Tone.ENCOURAGEMENT)
    elif fail_count == 2:
        return AuthorityResponse(f"Attempt {fail_count}. The approach changes now.", Tone.WARNING)
    return AuthorityResponse(
        f"{fail_count} attempts. This requires a different strategy.",
        Tone.CONSEQUENCE,
        action_required="Remediation mission assigned",
    )


def _success(data: Mapping[str, Any]) -> AuthorityResponse:
    streak = _int(data, "streak", 1)
    if streak >= 7:
        return AuthorityResponse(f"{streak} days strong. Mastery in progress.", Tone.ENCOURAGEMENT)
    elif streak >= 3:
        return AuthorityResponse("Momentum building. Keep it going.", Tone.ENCOURAGEMENT)
    return AuthorityResponse("Complete. Next step unlocked.", Tone.NEUTRAL)


def _return(data: Mapping[str, Any]) -> AuthorityResponse:
    days = _int(data, "days_since", 0)
    if days >= 7:
        return AuthorityResponse(f"{days} days away. Your streak reset. Start rebuilding.", Tone.CONSEQUENCE)
    elif days >= 3:
        return AuthorityResponse(
            f"{days} days away. Your streak is at risk. Let's fix that today.", Tone.WARNING
        )
    return AuthorityResponse("Welcome back. Let's continue where you left off.", Tone.NEUTRAL)


def _debt(data: Mapping[str, Any]) -> AuthorityResponse:
    debt_minutes = _int(data, "debt_minutes", 0)
    if debt_minutes > 60:
        return AuthorityResponse(
            f"{debt_minutes} minutes owed. Time to pay down your debt.",
            Tone.CONSEQUENCE,
            action_required="Complete study sessions to reduce debt",
        )
    elif debt_minutes > 0:
        return AuthorityResponse(
            f"{debt_minutes} minutes of study debt. Each session pays it down.", Tone.WARNING
        )
    return AuthorityResponse("No study debt. Clean slate.", Tone.ENCOURAGEMENT)


def _streak(data: Mapping[str, Any]) -> AuthorityResponse:
    streak = _int(data, "streak", 0)
    if streak >= 30:
        return AuthorityResponse(f"{streak} days. Legendary consistency.", Tone.ENCOURAGEMENT)
    elif streak >= 7:
        return AuthorityResponse(f"{streak} day streak. Keep building.", Tone.ENCOURAGEMENT)
    elif streak > 0:
        return AuthorityResponse(f"{streak} days. Growing.", Tone.NEUTRAL)
    return AuthorityResponse("No active streak. Start one today.", Tone.NEUTRAL)


_HANDLERS = {
    MessageContext.SKIP: _skip,
    MessageContext.FAILURE: _failure,
    MessageContext.SUCCESS: _success,
    MessageContext.RETURN: _return,
    MessageContext.DEBT: _debt,
    MessageContext.STREAK: _streak,
}


def get_authority_message(
    context: MessageContext | str,
    data: Optional[Mapping[str, Any]] = None,
) -> AuthorityResponse:
    """
    Look up the message for a context.

    Args:
        context: MessageContext or its string value
        data: Tier inputs - skip_count, fail_count, streak, days_since, debt_minutes

    Returns:
        AuthorityResponse (empty neutral message for an unknown context)
    """
    if not isinstance(context, MessageContext):
        try:
            context = MessageContext(context)
        except ValueError:
            return AuthorityResponse("", Tone.NEUTRAL)

    return _HANDLERS[context](data or {})
