"""
Evaluation Pydantic Models

Structured output model for the semantic (LLM) evaluation of written answers.
Defines the JSON structure the model must return when local grading defers.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional


class SemanticCorrections(BaseModel):
    """Correction lists returned by the evaluator, all optional"""
    grammar: List[str] = Field(default_factory=list, description="Grammar corrections")
    spelling: List[str] = Field(default_factory=list, description="Spelling corrections (ignoring accents)")
    accents: List[str] = Field(default_factory=list, description="Words needing correct accents")
    suggestions: List[str] = Field(default_factory=list, description="Suggestions for improvement")


class SemanticEvaluation(BaseModel):
    """
    Answer evaluation result from the LLM.
    Authoritative once local grading has deferred; confidence is diagnostic only.

    Example:
    {
        "is_correct": true,
        "score": 88,
        "has_correct_accents": false,
        "feedback": "Good sentence! Watch the accent on 'marché'.",
        "corrections": {"accents": ["marche -> marché"]},
        "corrected_answer": "Je vais au marché.",
        "confidence_score": 90
    }
    """
    is_correct: bool = Field(description="Whether the answer is correct (true if score >= 70)")
    score: int = Field(description="Score from 0 to 100")
    has_correct_accents: bool = Field(description="Whether diacritic accents are used correctly")
    feedback: str = Field(description="Brief, encouraging feedback in English (2-3 sentences)")
    corrections: SemanticCorrections = Field(
        default_factory=SemanticCorrections,
        description="Grammar, spelling, accent corrections and suggestions"
    )
    corrected_answer: Optional[str] = Field(
        default=None,
        description="Fully corrected version of the answer, or null if already perfect"
    )
    confidence_score: Optional[int] = Field(
        default=None,
        description="Confidence (0-100) in this evaluation - diagnostics only"
    )

    @field_validator("score", "confidence_score", mode="before")
    @classmethod
    def _round_fractional_percent(cls, value: Any) -> Any:
        # The prompt asks for a "number"; JSON-mode replies may carry 87.5
        if isinstance(value, float):
            return round(value)
        return value
