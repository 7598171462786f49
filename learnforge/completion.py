"""
Completion Validator
====================

Adds friction to step completion without hard-blocking it: time spent
and submitted proof each produce warnings, and completion is accepted if
either the minimum time was met or the proof held up.
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from learnforge.config import EnforcementConfig
from learnforge.policy import ProofType
from learnforge.proof import Proof, sanitize_user_input, validate_quiz_score
from learnforge.roadmaps import load_step


@dataclass
class CompletionValidation:
    valid: bool
    minimum_time_met: bool
    proof_validated: bool
    reason: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "reason": self.reason,
            "minimum_time_met": self.minimum_time_met,
            "proof_validated": self.proof_validated,
            "warnings": list(self.warnings),
        }


class CompletionValidator:

    def __init__(self, session: AsyncSession, config: EnforcementConfig):
        self.session = session
        self.config = config

    def check_proof(self, proof: Proof, warnings: list[str]) -> bool:
        """Explanation length and quiz score checks. Appends to `warnings`."""
        if proof.type == ProofType.EXPLANATION:
            content = sanitize_user_input(proof.content)
            if len(content) < self.config.min_explanation_length:
                warnings.append("Explanation too brief. Real understanding requires depth.")
                return False

        elif proof.type == ProofType.QUIZ:
            check = validate_quiz_score(proof.score, self.config.min_quiz_score)
            if not check.valid:
                warnings.append(check.reason)
                return False

        return True

    async def validate_completion(
        self,
        user_id: str,
        step_id: int,
        minutes_spent: int,
        proof: Optional[Proof] = None,
    ) -> CompletionValidation:
        """
        Validate a step completion.

        Proof counts as validated unless supplied proof fails its checks, so a
        completion without proof passes with only a rushing warning.
        """
        step = await load_step(self.session, step_id)
        if step is None:
            return CompletionValidation(
                valid=False,
                minimum_time_met=False,
                proof_validated=False,
                reason="Step not found",
            )

        warnings: list[str] = []

        minimum_time_met = minutes_spent >= self.config.minimum_step_minutes
        if not minimum_time_met:
            warnings.append(
                f"You spent {minutes_spent} minutes. Minimum is "
                f"{self.config.minimum_step_minutes}. Are you rushing?"
            )

        proof_validated = self.check_proof(proof, warnings) if proof is not None else True

        valid = minimum_time_met or proof_validated
        return CompletionValidation(
            valid=valid,
            minimum_time_met=minimum_time_met,
            proof_validated=proof_validated,
            reason=None if valid else "Completion requirements not met",
            warnings=warnings,
        )
