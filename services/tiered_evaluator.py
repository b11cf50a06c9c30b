"""
Tiered Evaluator - Local grading of written French answers.

The evaluator runs an ordered list of tiers. Each tier looks at the request and
returns one of:
- Terminal(result): a final local verdict, evaluation stops
- DEFER: no local tier can responsibly decide, the semantic evaluator must
- None: this tier does not apply, try the next one

Tier order (first Terminal/DEFER wins):
1. empty_check   - answers shorter than 2 characters score 0
2. exact_match   - normalized equality with the primary answer (100 / 98)
3. variant_match - acceptable variations in list order, exact (98 / 96) or
                   >= 95% similar (similarity - 2), first qualifying wins
4. fuzzy_match   - similarity against the primary answer, deferred below the
                   difficulty's confidence threshold, otherwise classified by
                   correctness band

If every tier passes (only possible for open-ended prompts without a primary
answer) the evaluator defers.

All tiers are pure and never raise.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple, Union

from models.evaluation import (
    Corrections,
    EvaluationRequest,
    EvaluationTier,
    MatchInfo,
    MatchResult,
)
from services.evaluation_policy import (
    BAND_BEGINNER_PASS,
    BAND_MINOR_TYPO,
    DEFAULT_POLICY,
    EvaluationPolicy,
)
from services.similarity_scorer import similarity
from services.text_normalizer import has_correct_accents, normalize, normalized_equal

logger = logging.getLogger(__name__)


class _Defer:
    """Signal that the answer must go to the semantic evaluator"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DEFER"

    def __bool__(self) -> bool:
        return False


DEFER = _Defer()


@dataclass(frozen=True)
class Terminal:
    """A local verdict, with the tier that produced it"""
    result: MatchResult
    tier: EvaluationTier


@dataclass(frozen=True)
class Deferred:
    """Returned by TieredEvaluator.evaluate when no local tier decided"""
    reason: str
    similarity: Optional[float] = None
    threshold: Optional[float] = None


TierOutcome = Union[Terminal, _Defer, None]
TierFunction = Callable[[EvaluationRequest, EvaluationPolicy], TierOutcome]


def _percent(ratio: float) -> int:
    return round(ratio * 100)


# ============================================================================
# TIERS
# ============================================================================

def empty_check_tier(request: EvaluationRequest, policy: EvaluationPolicy) -> TierOutcome:
    """Reject empty or too-short answers, even for open-ended prompts"""
    if len(request.user_answer.strip()) >= policy.min_answer_length:
        return None

    logger.info(f"Answer too short ({request.user_answer!r}), scoring 0")
    return Terminal(
        tier=EvaluationTier.EMPTY_CHECK,
        result=MatchResult(
            is_correct=False,
            score=0,
            has_correct_accents=False,
            feedback="Réponse trop courte. Veuillez fournir une réponse complète.",
            corrections=Corrections(
                suggestions=("Essayez d'écrire une réponse complète en français.",)
            ),
        ),
    )


def exact_match_tier(request: EvaluationRequest, policy: EvaluationPolicy) -> TierOutcome:
    """Normalized equality against the primary answer"""
    if request.correct_answer is None:
        return None

    if not normalized_equal(request.user_answer, request.correct_answer):
        return None

    accents_ok = has_correct_accents(request.user_answer, request.correct_answer)
    logger.info(f"Exact match against primary answer (accents correct: {accents_ok})")

    if accents_ok:
        feedback = "Parfait ! Réponse correcte avec les accents appropriés."
        corrections = Corrections()
    else:
        feedback = "Correct ! Attention aux accents pour être parfait."
        corrections = Corrections(
            accents=(f'La réponse correcte est: "{request.correct_answer}"',)
        )

    return Terminal(
        tier=EvaluationTier.EXACT_MATCH,
        result=MatchResult(
            is_correct=True,
            score=policy.exact_score if accents_ok else policy.exact_score_missing_accents,
            has_correct_accents=accents_ok,
            feedback=feedback,
            corrections=corrections,
            match_info=MatchInfo(
                matched_against="primary_answer",
                match_kind="exact",
                matched_similarity=100,
                evaluation_reason="Exact match against primary answer (after normalization)",
            ),
        ),
    )


def variant_match_tier(request: EvaluationRequest, policy: EvaluationPolicy) -> TierOutcome:
    """
    Acceptable variations, scanned in list order.

    For each variation an exact (normalized) match is tried first, then a
    similarity match. The first variation that qualifies either way wins; later
    variations are not scanned for a better match.
    """
    if not request.acceptable_variations:
        return None

    normalized_user = normalize(request.user_answer)

    for index, variation in enumerate(request.acceptable_variations):
        if normalize(variation) == normalized_user:
            accents_ok = has_correct_accents(request.user_answer, variation)
            logger.info(f"Exact match against acceptable variation #{index + 1}")

            if accents_ok:
                feedback = "Très bien ! C'est une variation acceptable."
                corrections = Corrections()
            else:
                feedback = "Bien ! Attention aux accents. Variation acceptable."
                corrections = Corrections(
                    accents=(f'Une variation correcte est: "{variation}"',)
                )

            return Terminal(
                tier=EvaluationTier.VARIANT_MATCH,
                result=MatchResult(
                    is_correct=True,
                    score=policy.variant_score if accents_ok else policy.variant_score_missing_accents,
                    has_correct_accents=accents_ok,
                    feedback=feedback,
                    corrections=corrections,
                    match_info=MatchInfo(
                        matched_against="acceptable_variation",
                        matched_variation_index=index,
                        match_kind="exact",
                        matched_similarity=100,
                        evaluation_reason=f"Exact match against acceptable variation #{index + 1}",
                    ),
                ),
            )

        variation_similarity = similarity(request.user_answer, variation)
        if variation_similarity >= policy.variant_similarity_threshold:
            similarity_pct = _percent(variation_similarity)
            logger.info(
                f"Similarity match ({similarity_pct}%) against acceptable variation #{index + 1}"
            )
            return Terminal(
                tier=EvaluationTier.VARIANT_MATCH,
                result=MatchResult(
                    is_correct=True,
                    score=max(0, similarity_pct - policy.variant_similarity_penalty),
                    has_correct_accents=has_correct_accents(request.user_answer, variation),
                    feedback="Presque parfait ! Petite erreur dans une variation acceptable.",
                    corrections=Corrections(
                        suggestions=(f'Une variation correcte est: "{variation}"',)
                    ),
                    corrected_answer=variation,
                    match_info=MatchInfo(
                        matched_against="acceptable_variation",
                        matched_variation_index=index,
                        match_kind="similarity",
                        matched_similarity=similarity_pct,
                        evaluation_reason=(
                            f"Similarity match ({similarity_pct}%) against "
                            f"acceptable variation #{index + 1}"
                        ),
                    ),
                ),
            )

    return None


def fuzzy_match_tier(request: EvaluationRequest, policy: EvaluationPolicy) -> TierOutcome:
    """
    Similarity against the primary answer.

    Defers when similarity is below the confidence threshold for the request's
    difficulty. At advanced the threshold (0.95) equals the minor-typo band, so
    only near-exact answers are ever resolved locally.
    """
    if request.correct_answer is None:
        return DEFER

    answer_similarity = similarity(request.user_answer, request.correct_answer)
    threshold = policy.confidence_thresholds.for_difficulty(request.difficulty)

    if answer_similarity < threshold:
        logger.info(
            f"Fuzzy confidence too low ({_percent(answer_similarity)}% < "
            f"{_percent(threshold)}%), deferring to semantic evaluation"
        )
        return DEFER

    similarity_pct = _percent(answer_similarity)
    decision = policy.correctness_bands.classify(answer_similarity, request.difficulty)

    if decision.band == BAND_MINOR_TYPO:
        feedback = "Presque parfait ! Attention aux petites erreurs."
    elif decision.band == BAND_BEGINNER_PASS:
        if decision.is_correct:
            feedback = "Bon effort ! Quelques petites erreurs à corriger."
        else:
            feedback = "Pas mal, mais il y a des erreurs à corriger."
    else:
        feedback = "Vous êtes sur la bonne voie, mais il y a plusieurs erreurs."

    logger.info(
        f"Fuzzy match against primary answer: {similarity_pct}% "
        f"({decision.label}), is_correct={decision.is_correct}"
    )

    return Terminal(
        tier=EvaluationTier.FUZZY_MATCH,
        result=MatchResult(
            is_correct=decision.is_correct,
            score=similarity_pct,
            has_correct_accents=has_correct_accents(request.user_answer, request.correct_answer),
            feedback=feedback,
            corrections=Corrections(
                suggestions=(f'La réponse correcte est: "{request.correct_answer}"',)
            ),
            corrected_answer=request.correct_answer,
            match_info=MatchInfo(
                matched_against="primary_answer",
                match_kind="similarity",
                matched_similarity=similarity_pct,
                evaluation_reason=f"Fuzzy match against primary answer ({similarity_pct}% similarity)",
                correctness_band=decision.label,
            ),
        ),
    )


TIERS: Tuple[Tuple[EvaluationTier, TierFunction], ...] = (
    (EvaluationTier.EMPTY_CHECK, empty_check_tier),
    (EvaluationTier.EXACT_MATCH, exact_match_tier),
    (EvaluationTier.VARIANT_MATCH, variant_match_tier),
    (EvaluationTier.FUZZY_MATCH, fuzzy_match_tier),
)

# Tiers that may run before the semantic evaluator in API-only mode
API_ONLY_TIERS: Tuple[Tuple[EvaluationTier, TierFunction], ...] = TIERS[:2]


class TieredEvaluator:
    """Runs the local tiers in order and reports a Terminal or Deferred outcome"""

    def __init__(
        self,
        policy: Optional[EvaluationPolicy] = None,
        tiers: Sequence[Tuple[EvaluationTier, TierFunction]] = TIERS,
    ):
        self.policy = policy or DEFAULT_POLICY
        self.tiers = tuple(tiers)

    def evaluate(self, request: EvaluationRequest) -> Union[Terminal, Deferred]:
        """
        Grade the request locally.

        Returns:
            Terminal: a local verdict, with the producing tier
            Deferred: the caller must consult the semantic evaluator; carries
                      the primary-answer similarity and the threshold used
                      (None for open-ended prompts) for diagnostics
        """
        for tier_name, tier in self.tiers:
            outcome = tier(request, self.policy)

            if isinstance(outcome, Terminal):
                return outcome

            if outcome is DEFER:
                return self._deferred(request, f"{tier_name.value} deferred")

        return self._deferred(request, "no local tier could decide")

    def _deferred(self, request: EvaluationRequest, reason: str) -> Deferred:
        if request.correct_answer is None:
            logger.info(f"Open-ended question, deferring to semantic evaluation ({reason})")
            return Deferred(reason=reason)

        return Deferred(
            reason=reason,
            similarity=similarity(request.user_answer, request.correct_answer),
            threshold=self.policy.confidence_thresholds.for_difficulty(request.difficulty),
        )
