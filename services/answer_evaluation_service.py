"""
Answer Evaluation Service - Grades written French answers.

This service combines the local tiered evaluator with the semantic (LLM)
fallback:

1. Run the local tiers (empty check, exact match, acceptable variations,
   fuzzy match) in order
2. If a tier produces a verdict, return it
3. If local grading defers, ask the semantic evaluator once and return its
   verdict unchanged

Every call returns a MatchResult; no exception ever reaches the caller.

When API-only evaluation is enabled (API_ONLY_EVALUATION), only the empty
check and exact-match tiers run locally and everything else goes to the
semantic evaluator for maximum accuracy (higher cost).
"""

import logging
from functools import partial
from typing import Any, Mapping, Optional

from models.evaluation import (
    EvaluationMetadata,
    EvaluationRequest,
    EvaluationTier,
    MatchResult,
)
from services.evaluation_policy import DEFAULT_POLICY, EvaluationPolicy, resolve_difficulty
from services.llm_provider_factory import get_llm_client
from services.semantic_fallback import (
    DEFAULT_TIMEOUT,
    LLMSemanticEvaluator,
    SemanticEvaluator,
    SemanticVerdict,
    failure_result,
)
from services.similarity_scorer import similarity_percent
from services.tiered_evaluator import API_ONLY_TIERS, TIERS, Deferred, Terminal, TieredEvaluator

# Configure logging
logger = logging.getLogger(__name__)


def _percent(ratio: Optional[float]) -> Optional[int]:
    return None if ratio is None else round(ratio * 100)


class AnswerEvaluationService:
    """Service to evaluate written answers locally, or semantically when needed"""

    def __init__(
        self,
        policy: Optional[EvaluationPolicy] = None,
        semantic_evaluator: Optional[SemanticEvaluator] = None,
        api_only: bool = False,
    ):
        self.policy = policy or DEFAULT_POLICY
        self.semantic_evaluator = semantic_evaluator or LLMSemanticEvaluator()
        self.api_only = api_only
        self.local_evaluator = TieredEvaluator(
            policy=self.policy,
            tiers=API_ONLY_TIERS if api_only else TIERS,
        )

    @classmethod
    def from_app_config(cls, config: Mapping[str, Any]) -> "AnswerEvaluationService":
        """
        Build the service from Flask config.

        Uses the threshold overrides, API_ONLY_EVALUATION, LLM_PROVIDER,
        SEMANTIC_FALLBACK_MODEL and SEMANTIC_FALLBACK_TIMEOUT keys.
        """
        raw_timeout = config.get("SEMANTIC_FALLBACK_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout not in (None, "") else DEFAULT_TIMEOUT
            if timeout <= 0:
                raise ValueError("timeout must be positive")
        except (TypeError, ValueError):
            logger.warning(
                f"Invalid SEMANTIC_FALLBACK_TIMEOUT={raw_timeout!r}, using {DEFAULT_TIMEOUT}s"
            )
            timeout = DEFAULT_TIMEOUT

        return cls(
            policy=EvaluationPolicy.from_config(config),
            semantic_evaluator=LLMSemanticEvaluator(
                model=config.get("SEMANTIC_FALLBACK_MODEL") or None,
                timeout=timeout,
                provider_factory=partial(get_llm_client, config.get("LLM_PROVIDER") or None),
            ),
            api_only=bool(config.get("API_ONLY_EVALUATION", False)),
        )

    def evaluate(self, request: EvaluationRequest, include_metadata: bool = False) -> MatchResult:
        """
        Evaluate a learner's answer.

        Args:
            request: The question, answer and grading metadata
            include_metadata: Attach tier provenance (tier, similarity,
                              threshold, fallback usage) and match info for
                              privileged callers. Never changes the verdict.

        Returns:
            MatchResult: the local verdict, the semantic verdict, or the
                         deterministic failure result

        Examples:
            >>> service = AnswerEvaluationService(semantic_evaluator=StaticSemanticEvaluator())
            >>> result = service.evaluate(EvaluationRequest(
            ...     question="Translate: coffee", user_answer="cafe", correct_answer="café"
            ... ))
            >>> (result.is_correct, result.score, result.has_correct_accents)
            (True, 98, False)
        """
        try:
            outcome = self.local_evaluator.evaluate(request)

            if isinstance(outcome, Terminal):
                logger.info(
                    f"Answer '{request.user_answer}' graded locally by {outcome.tier.value}: "
                    f"is_correct={outcome.result.is_correct}, score={outcome.result.score}"
                )
                return self._finalize(
                    outcome.result,
                    self._local_metadata(request, outcome) if include_metadata else None,
                    include_metadata,
                )

            verdict = self.semantic_evaluator.evaluate(request)
            return self._finalize(
                verdict.result,
                self._semantic_metadata(request, outcome, verdict) if include_metadata else None,
                include_metadata,
            )

        except Exception as e:
            # Grading must never hard-fail a student submission
            logger.error(f"Answer evaluation failed unexpectedly: {str(e)}", exc_info=True)
            return failure_result()

    @staticmethod
    def _finalize(
        result: MatchResult,
        metadata: Optional[EvaluationMetadata],
        include_metadata: bool,
    ) -> MatchResult:
        if include_metadata:
            return result.model_copy(update={"metadata": metadata})
        return result.model_copy(update={"match_info": None, "metadata": None})

    def _local_metadata(self, request: EvaluationRequest, outcome: Terminal) -> EvaluationMetadata:
        difficulty = resolve_difficulty(request.difficulty).value
        threshold = None
        similarity_score = None

        if request.correct_answer is not None:
            similarity_score = similarity_percent(request.user_answer, request.correct_answer)

        if outcome.tier == EvaluationTier.FUZZY_MATCH:
            threshold = _percent(self.policy.confidence_thresholds.for_difficulty(difficulty))

        confidence = None
        if outcome.tier in (EvaluationTier.EXACT_MATCH, EvaluationTier.VARIANT_MATCH):
            confidence = 100
        elif outcome.tier == EvaluationTier.FUZZY_MATCH:
            confidence = similarity_score

        return EvaluationMetadata(
            difficulty=difficulty,
            evaluation_tier=outcome.tier,
            similarity_score=similarity_score,
            confidence_score=confidence,
            confidence_threshold=threshold,
            used_semantic_fallback=False,
        )

    @staticmethod
    def _semantic_metadata(
        request: EvaluationRequest,
        outcome: Deferred,
        verdict: SemanticVerdict,
    ) -> EvaluationMetadata:
        return EvaluationMetadata(
            difficulty=resolve_difficulty(request.difficulty).value,
            evaluation_tier=EvaluationTier.SEMANTIC_FALLBACK,
            similarity_score=_percent(outcome.similarity),
            confidence_score=verdict.confidence,
            confidence_threshold=_percent(outcome.threshold),
            used_semantic_fallback=True,
            semantic_fallback_failed=verdict.failed,
            model_used=verdict.model,
        )
