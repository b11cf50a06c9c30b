"""
Semantic Fallback - LLM evaluation for answers local grading cannot decide.

Invoked only when the tiered evaluator defers (low fuzzy confidence or an
open-ended prompt). The LLM verdict is authoritative: it is returned as-is and
never second-guessed. Its self-reported confidence is kept for diagnostics.

Every failure mode (missing API key, transport error, timeout, unparseable or
invalid response) is converted into the same deterministic failing result, so
callers never see an exception from this boundary.
"""

import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Callable, Optional

from models.evaluation import Corrections, EvaluationRequest, MatchResult
from services.llm_models.evaluation_models import SemanticEvaluation
from services.llm_provider_factory import LLMProvider, LLMProviderFactory, get_llm_client

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20.0

SYSTEM_MESSAGE = (
    "You are a fair, pedagogical French teacher grading short written answers "
    "from language learners. Return only valid JSON."
)


def failure_result() -> MatchResult:
    """Deterministic result used whenever semantic evaluation is unavailable"""
    return MatchResult(
        is_correct=False,
        score=0,
        has_correct_accents=False,
        feedback=(
            "Unable to evaluate automatically. Please try again or ask your "
            "teacher for feedback."
        ),
        corrections=Corrections(),
    )


@dataclass(frozen=True)
class SemanticVerdict:
    """Result of one semantic evaluation, with diagnostics"""
    result: MatchResult
    confidence: Optional[int] = None
    model: Optional[str] = None
    failed: bool = False


class SemanticEvaluator(ABC):
    """Narrow interface any semantic grader (LLM, stub, remote service) satisfies"""

    @abstractmethod
    def evaluate(self, request: EvaluationRequest) -> SemanticVerdict:
        """Grade the request. Implementations must not raise."""
        pass


class StaticSemanticEvaluator(SemanticEvaluator):
    """Returns a fixed result, or the failure result when none is given"""

    def __init__(self, result: Optional[MatchResult] = None, confidence: Optional[int] = None,
                 model: Optional[str] = "static"):
        self.result = result
        self.confidence = confidence
        self.model = model

    def evaluate(self, request: EvaluationRequest) -> SemanticVerdict:
        if self.result is None:
            return SemanticVerdict(result=failure_result(), model=self.model, failed=True)
        return SemanticVerdict(result=self.result, confidence=self.confidence, model=self.model)


def build_evaluation_prompt(request: EvaluationRequest) -> str:
    """Build the grading prompt sent to the LLM"""
    if request.correct_answer is not None:
        expected = f'Expected Answer: "{request.correct_answer}"'
    else:
        expected = "This is an open-ended question with multiple acceptable answers."

    if request.acceptable_variations:
        expected += (
            "\nAlso acceptable: "
            f"{json.dumps(list(request.acceptable_variations), ensure_ascii=False)}"
        )

    if request.question_type == "open_ended":
        completeness = "Is it a complete, coherent sentence/response?"
    else:
        completeness = "Does it answer the question fully?"

    return f"""You are evaluating a French language student's written answer. Be thorough and pedagogical.

Question Type: {request.question_type}
Difficulty Level: {request.difficulty or 'intermediate'}
Question (English): "{request.question_text}"
{expected}
Student's Answer: "{request.user_answer}"

Evaluate the student's answer considering:

1. **Correctness**: Is the meaning/content correct?
2. **Grammar**: Are grammar rules followed correctly?
3. **Spelling**: Are words spelled correctly (ignoring accents for now)?
4. **Accents**: Are diacritic accents used correctly? (café, été, où, etc.)
5. **Completeness**: {completeness}

For open-ended questions:
- Accept any grammatically correct and contextually appropriate answer
- The student's creativity should be valued
- Focus on whether they expressed their idea correctly in French

Scoring Guidelines:
- 90-100: Excellent, nearly perfect or perfect
- 80-89: Very good, minor errors
- 70-79: Good, some errors but meaning is clear
- 60-69: Acceptable, multiple errors but partially correct
- 50-59: Poor, significant errors but some correct elements
- 0-49: Incorrect or unintelligible

Confidence Assessment (0-100, how certain you are about this evaluation):
- 95-100: clear-cut correct/incorrect, no ambiguity
- 85-94: standard case with clear grammar rules
- 75-84: some interpretation needed
- 60-74: multiple valid interpretations possible
- Below 60: highly ambiguous or creative answer

Return ONLY a valid JSON object with this exact structure:
{{
  "is_correct": boolean (true if score >= 70),
  "score": number (0-100),
  "has_correct_accents": boolean,
  "feedback": "Brief, encouraging feedback in English (2-3 sentences)",
  "corrections": {{
    "grammar": ["list of grammar corrections if needed"],
    "spelling": ["list of spelling corrections if needed"],
    "accents": ["list of words needing correct accents"],
    "suggestions": ["suggestions for improvement"]
  }},
  "corrected_answer": "The fully corrected version of their answer, or null if already perfect",
  "confidence_score": number (0-100)
}}"""


def _clamp_percent(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    return max(0, min(100, int(value)))


def to_match_result(evaluation: SemanticEvaluation) -> MatchResult:
    """Map the LLM's structured response onto a MatchResult, verdict unchanged"""
    corrections = evaluation.corrections
    return MatchResult(
        is_correct=evaluation.is_correct,
        score=_clamp_percent(evaluation.score),
        has_correct_accents=evaluation.has_correct_accents,
        feedback=evaluation.feedback,
        corrections=Corrections(
            grammar=tuple(corrections.grammar),
            spelling=tuple(corrections.spelling),
            accents=tuple(corrections.accents),
            suggestions=tuple(corrections.suggestions),
        ),
        corrected_answer=evaluation.corrected_answer or None,
    )


class LLMSemanticEvaluator(SemanticEvaluator):
    """
    Semantic evaluator backed by an LLM provider.

    Args:
        provider: LLMProvider instance, or None to create one per call from
                  LLM_PROVIDER (so a missing API key becomes a failure result)
        model: Model name, defaults to the provider's default evaluation model
        timeout: Upper bound in seconds for one evaluation round trip
        provider_factory: Callable returning a provider when none is injected
    """

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        model: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        provider_factory: Callable[[], LLMProvider] = get_llm_client,
    ):
        self.provider = provider
        self.model = model
        self.timeout = timeout
        self.provider_factory = provider_factory

    def _resolve_model(self, provider: LLMProvider) -> str:
        return self.model or LLMProviderFactory.get_default_model(provider.get_provider_name())

    def _call_llm(self, request: EvaluationRequest) -> SemanticVerdict:
        provider = self.provider or self.provider_factory()
        model = self._resolve_model(provider)

        response = provider.create_structured_completion(
            messages=[
                {"role": "system", "content": SYSTEM_MESSAGE},
                {"role": "user", "content": build_evaluation_prompt(request)},
            ],
            response_model=SemanticEvaluation,
            model=model,
            temperature=0.3,  # Lower temperature for consistent grading
            max_tokens=1024,
            timeout=self.timeout,
        )

        evaluation = response["parsed_object"]
        if not isinstance(evaluation, SemanticEvaluation):
            evaluation = SemanticEvaluation.model_validate(evaluation)

        return SemanticVerdict(
            result=to_match_result(evaluation),
            confidence=_clamp_percent(evaluation.confidence_score),
            model=response.get("model", model),
        )

    def evaluate(self, request: EvaluationRequest) -> SemanticVerdict:
        """
        Grade the request with the LLM within the configured timeout.

        Returns the failure result on any error instead of raising.
        """
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            future = executor.submit(self._call_llm, request)
            verdict = future.result(timeout=self.timeout)

            logger.info(
                f"Semantic evaluation: user_answer='{request.user_answer}', "
                f"is_correct={verdict.result.is_correct}, score={verdict.result.score}, "
                f"confidence={verdict.confidence}, model={verdict.model}"
            )
            return verdict

        except FutureTimeoutError:
            logger.error(f"Semantic evaluation timed out after {self.timeout}s")
            return SemanticVerdict(result=failure_result(), model=self.model, failed=True)

        except Exception as e:
            logger.error(f"Semantic evaluation failed: {str(e)}", exc_info=True)
            return SemanticVerdict(result=failure_result(), model=self.model, failed=True)

        finally:
            # Don't block on a hung provider call; the worker thread is abandoned
            executor.shutdown(wait=False)
