"""
Evaluation data models.

Request/result structures exchanged by the writing answer evaluation engine.
Every model is frozen: a request or result is created per call and never
mutated afterwards (results are re-derived with ``model_copy`` when
diagnostics are attached).

Wire format uses the camelCase names expected by the frontend, e.g.:
{
    "question": "Translate: I am going to the market",
    "userAnswer": "je vais au marche",
    "correctAnswer": "je vais au marché",
    "acceptableVariations": ["je vais au supermarché"],
    "difficulty": "beginner",
    "questionType": "translation"
}
"""

from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Difficulty(str, Enum):
    """Learner difficulty level attached to every writing question"""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class EvaluationTier(str, Enum):
    """Which stage of the evaluation pipeline produced the result"""
    EMPTY_CHECK = "empty_check"
    EXACT_MATCH = "exact_match"
    VARIANT_MATCH = "variant_match"
    FUZZY_MATCH = "fuzzy_match"
    SEMANTIC_FALLBACK = "semantic_fallback"


class EvaluationRequest(BaseModel):
    """
    A single learner answer to grade.

    ``correct_answer`` is None for open-ended prompts. ``difficulty`` is kept as
    the raw string sent by the caller; unknown values are resolved to the
    intermediate policy by the evaluation policy instead of failing here.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    question_text: str = Field(default="", alias="question")
    user_answer: str = Field(alias="userAnswer")
    correct_answer: Optional[str] = Field(default=None, alias="correctAnswer")
    acceptable_variations: Tuple[str, ...] = Field(default=(), alias="acceptableVariations")
    difficulty: str = Field(default=Difficulty.INTERMEDIATE.value)
    question_type: str = Field(default="translation", alias="questionType")

    @field_validator("acceptable_variations", mode="before")
    @classmethod
    def _variations_as_tuple(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("difficulty", mode="before")
    @classmethod
    def _coerce_difficulty(cls, value: Any) -> str:
        if isinstance(value, Difficulty):
            return value.value
        if value is None:
            return ""
        return str(value).strip().lower()

    @field_validator("correct_answer", mode="before")
    @classmethod
    def _blank_answer_is_open_ended(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Corrections(BaseModel):
    """Structured correction suggestions shown under the feedback"""
    model_config = ConfigDict(frozen=True)

    grammar: Tuple[str, ...] = ()
    spelling: Tuple[str, ...] = ()
    accents: Tuple[str, ...] = ()
    suggestions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, list]:
        """Non-empty correction lists only"""
        return {
            key: list(values)
            for key, values in (
                ("grammar", self.grammar),
                ("spelling", self.spelling),
                ("accents", self.accents),
                ("suggestions", self.suggestions),
            )
            if values
        }


class MatchInfo(BaseModel):
    """Which candidate answer matched and why. Debug only, never used for grading."""
    model_config = ConfigDict(frozen=True)

    matched_against: str = Field(description="'primary_answer' or 'acceptable_variation'")
    matched_variation_index: Optional[int] = None
    match_kind: str = Field(description="'exact' or 'similarity'")
    matched_similarity: int = Field(ge=0, le=100)
    evaluation_reason: str
    correctness_band: Optional[str] = None


class EvaluationMetadata(BaseModel):
    """Tier provenance attached for privileged callers"""
    model_config = ConfigDict(frozen=True)

    difficulty: str
    evaluation_tier: EvaluationTier
    similarity_score: Optional[int] = None
    confidence_score: Optional[int] = None
    confidence_threshold: Optional[int] = None
    used_semantic_fallback: bool = False
    semantic_fallback_failed: bool = False
    model_used: Optional[str] = None


class MatchResult(BaseModel):
    """Outcome of grading one answer"""
    model_config = ConfigDict(frozen=True)

    is_correct: bool
    score: int = Field(ge=0, le=100)
    has_correct_accents: bool
    feedback: str
    corrections: Corrections = Field(default_factory=Corrections)
    corrected_answer: Optional[str] = None
    match_info: Optional[MatchInfo] = None
    metadata: Optional[EvaluationMetadata] = None

    def to_response(self) -> Dict[str, Any]:
        """
        Serialize to the camelCase JSON body returned by the API.

        ``matchInfo`` and ``metadata`` are only emitted when present, so callers
        control exposure by stripping them before serialization.
        """
        body: Dict[str, Any] = {
            "isCorrect": self.is_correct,
            "score": self.score,
            "hasCorrectAccents": self.has_correct_accents,
            "feedback": self.feedback,
            "corrections": self.corrections.to_dict(),
        }
        if self.corrected_answer is not None:
            body["correctedAnswer"] = self.corrected_answer

        if self.match_info is not None:
            info = self.match_info
            body["matchInfo"] = {
                "matchedAgainst": info.matched_against,
                "matchedVariationIndex": info.matched_variation_index,
                "matchKind": info.match_kind,
                "matchedSimilarity": info.matched_similarity,
                "evaluationReason": info.evaluation_reason,
                "correctnessBand": info.correctness_band,
            }

        if self.metadata is not None:
            meta = self.metadata
            body["metadata"] = {
                "difficulty": meta.difficulty,
                "evaluationTier": meta.evaluation_tier.value,
                "similarityScore": meta.similarity_score,
                "confidenceScore": meta.confidence_score,
                "confidenceThreshold": meta.confidence_threshold,
                "usedSemanticFallback": meta.used_semantic_fallback,
                "semanticFallbackFailed": meta.semantic_fallback_failed,
                "modelUsed": meta.model_used,
            }

        return body
