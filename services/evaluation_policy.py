"""
Evaluation Policy - Tunable thresholds for local (fuzzy) grading.

Two independent tables drive the fuzzy tier:

ConfidenceThresholds
    Minimum similarity required before a local verdict is trusted at all.
    Below it the answer is deferred to the semantic evaluator.
    beginner=0.70, intermediate=0.85, advanced=0.95

CorrectnessBands
    Once confidence is met, maps similarity to a verdict:
    >= 0.95         -> correct (minor typo)
    0.85 - 0.949    -> correct for beginners only
    <  0.85         -> incorrect (only reachable for beginners)

The policy is an immutable value passed to the evaluator; hosts override it by
building a new one (see EvaluationPolicy.from_config), never by mutating the
module defaults.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from models.evaluation import Difficulty

logger = logging.getLogger(__name__)

BAND_MINOR_TYPO = "minor_typo"
BAND_BEGINNER_PASS = "beginner_pass"
BAND_INCORRECT = "incorrect"


def resolve_difficulty(value: Union[str, Difficulty, None]) -> Difficulty:
    """
    Map a raw difficulty value to a Difficulty.

    Unknown or missing values resolve to INTERMEDIATE: grading must never fail
    a student submission because of bad question metadata.
    """
    if isinstance(value, Difficulty):
        return value
    if not value:
        return Difficulty.INTERMEDIATE
    try:
        return Difficulty(str(value or "").strip().lower())
    except ValueError:
        logger.warning(f"Unknown difficulty {value!r}, using intermediate thresholds")
        return Difficulty.INTERMEDIATE


@dataclass(frozen=True)
class ConfidenceThresholds:
    """Minimum similarity to trust a local fuzzy decision, per difficulty"""
    beginner: float = 0.70
    intermediate: float = 0.85
    advanced: float = 0.95

    def for_difficulty(self, difficulty: Union[str, Difficulty, None]) -> float:
        return getattr(self, resolve_difficulty(difficulty).value)


@dataclass(frozen=True)
class BandDecision:
    is_correct: bool
    band: str
    label: str


@dataclass(frozen=True)
class CorrectnessBands:
    """Similarity bands applied once the confidence threshold is met"""
    minor_typo: float = 0.95
    beginner_pass: float = 0.85

    def classify(self, similarity: float, difficulty: Union[str, Difficulty, None]) -> BandDecision:
        minor_typo_pct = round(self.minor_typo * 100)
        beginner_pass_pct = round(self.beginner_pass * 100)

        if similarity >= self.minor_typo:
            return BandDecision(
                is_correct=True,
                band=BAND_MINOR_TYPO,
                label=f"{minor_typo_pct}%+ (minor typo)",
            )

        if similarity >= self.beginner_pass:
            return BandDecision(
                is_correct=resolve_difficulty(difficulty) == Difficulty.BEGINNER,
                band=BAND_BEGINNER_PASS,
                label=f"{beginner_pass_pct}-{minor_typo_pct - 1}% (beginner pass only)",
            )

        return BandDecision(
            is_correct=False,
            band=BAND_INCORRECT,
            label=f"below {beginner_pass_pct}% (incorrect)",
        )


@dataclass(frozen=True)
class EvaluationPolicy:
    """All tunable parameters of the local evaluation tiers"""
    confidence_thresholds: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)
    correctness_bands: CorrectnessBands = field(default_factory=CorrectnessBands)

    # Answers shorter than this (after trimming) are rejected outright
    min_answer_length: int = 2

    exact_score: int = 100
    exact_score_missing_accents: int = 98
    variant_score: int = 98
    variant_score_missing_accents: int = 96
    variant_similarity_threshold: float = 0.95
    variant_similarity_penalty: int = 2

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "EvaluationPolicy":
        """
        Build a policy from Flask-style config keys, falling back to defaults.

        Recognized keys:
            CONFIDENCE_THRESHOLD_BEGINNER, CONFIDENCE_THRESHOLD_INTERMEDIATE,
            CONFIDENCE_THRESHOLD_ADVANCED, CORRECTNESS_MINOR_TYPO,
            CORRECTNESS_BEGINNER_PASS
        """
        config = config or {}
        defaults_thresholds = ConfidenceThresholds()
        defaults_bands = CorrectnessBands()

        def _ratio(key: str, default: float) -> float:
            value = config.get(key)
            if value is None or value == "":
                return default
            try:
                ratio = float(value)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid {key}={value!r}, using {default}")
                return default
            # Accept whole percentages (e.g. 85) as well as ratios (0.85);
            # fractional values above 1 (e.g. 1.5) are typos, not percentages
            if 1 < ratio <= 100 and ratio.is_integer():
                ratio = ratio / 100
            if not 0 <= ratio <= 1:
                logger.warning(f"Ignoring out-of-range {key}={value!r}, using {default}")
                return default
            return ratio

        return cls(
            confidence_thresholds=ConfidenceThresholds(
                beginner=_ratio("CONFIDENCE_THRESHOLD_BEGINNER", defaults_thresholds.beginner),
                intermediate=_ratio("CONFIDENCE_THRESHOLD_INTERMEDIATE", defaults_thresholds.intermediate),
                advanced=_ratio("CONFIDENCE_THRESHOLD_ADVANCED", defaults_thresholds.advanced),
            ),
            correctness_bands=CorrectnessBands(
                minor_typo=_ratio("CORRECTNESS_MINOR_TYPO", defaults_bands.minor_typo),
                beginner_pass=_ratio("CORRECTNESS_BEGINNER_PASS", defaults_bands.beginner_pass),
            ),
        )


DEFAULT_POLICY = EvaluationPolicy()
