"""
Proof Checks
============

Validation for the evidence learners submit: explanations, quiz scores,
and practice work. Every check returns a ProofCheck; none of them raise.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from learnforge.policy import ProofType


_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[A-Za-z0-9']+")

# Submissions that say nothing about the work
_PLACEHOLDER_ANSWERS = {
    "done", "finished", "complete", "completed", "ok", "okay", "yes",
    "n/a", "na", "idk", "todo", "test", "asdf",
}

MIN_PRACTICE_LENGTH = 20
MIN_PRACTICE_WORDS = 4


@dataclass
class Proof:
    """Evidence submitted with a completion or remediation."""
    type: ProofType
    content: str = ""
    score: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Proof":
        return cls(
            type=ProofType(data["type"]),
            content=data.get("content") or "",
            score=data.get("score"),
        )

    def to_dict(self) -> dict:
        return {"type": self.type.value, "content": self.content, "score": self.score}


@dataclass
class ProofCheck:
    valid: bool
    reason: Optional[str] = None


def sanitize_user_input(text: Optional[str]) -> str:
    """Strip markup and control characters and collapse whitespace."""
    if not text:
        return ""
    text = _TAG_RE.sub(" ", text)
    text = _CONTROL_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def words(text: str) -> list[str]:
    return [w.lower() for w in _WORD_RE.findall(text)]


def validate_explanation_quality(
    content: str,
    min_length: int,
    min_words: int,
    min_unique_words: int,
) -> ProofCheck:
    """
    Check an explanation for length, word count and vocabulary spread.

    Args:
        content: Sanitized explanation text
        min_length: Minimum characters
        min_words: Minimum words
        min_unique_words: Minimum distinct words (catches padding by repetition)
    """
    if len(content) < min_length:
        return ProofCheck(
            False,
            f"Explanation too brief ({len(content)} characters, need {min_length}). "
            "Real understanding requires depth.",
        )

    tokens = words(content)
    if len(tokens) < min_words:
        return ProofCheck(False, f"Explanation needs at least {min_words} words.")

    if len(set(tokens)) < min_unique_words:
        return ProofCheck(False, "Explanation repeats itself. Use your own words to show understanding.")

    return ProofCheck(True)


def validate_quiz_score(score: Optional[float], threshold: int) -> ProofCheck:
    """A score at or above the threshold passes."""
    if score is None:
        return ProofCheck(False, "No quiz score provided.")
    if score < 0 or score > 100:
        return ProofCheck(False, f"Quiz score {score} is out of range.")
    if score < threshold:
        return ProofCheck(False, f"Score of {score:g}% is below the {threshold}% requirement.")
    return ProofCheck(True)


def validate_practice_submission(content: str) -> ProofCheck:
    """Practice work must be real work, not a placeholder."""
    if not content:
        return ProofCheck(False, "No practice work submitted.")

    if content.strip().lower() in _PLACEHOLDER_ANSWERS:
        return ProofCheck(False, "Show your work. A one-word answer is not practice.")

    if len(content) < MIN_PRACTICE_LENGTH or len(words(content)) < MIN_PRACTICE_WORDS:
        return ProofCheck(False, "Practice submission too short. Include your full solution.")

    if len(set(words(content))) == 1:
        return ProofCheck(False, "Practice submission is a single repeated token.")

    return ProofCheck(True)
