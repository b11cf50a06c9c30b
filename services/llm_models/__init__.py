"""
LLM Pydantic Models

Structured output models for LLM operations:
- Evaluation models (SemanticEvaluation, SemanticCorrections)
"""

from .evaluation_models import SemanticCorrections, SemanticEvaluation

__all__ = [
    'SemanticCorrections',
    'SemanticEvaluation'
]
