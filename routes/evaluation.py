"""
Evaluation Routes - Endpoint for grading written answers.

- POST /api/evaluate-writing - Evaluate a learner's written French answer
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from models.evaluation import EvaluationRequest

logger = logging.getLogger(__name__)

bp = Blueprint('evaluation', __name__, url_prefix='/api')

DIAGNOSTICS_HEADER = 'X-Diagnostics-Token'


def _diagnostics_allowed(data):
    """Diagnostics require both the opt-in flag and a matching token"""
    if not data.get('includeMetadata'):
        return False

    expected = current_app.config.get('DIAGNOSTICS_TOKEN')
    provided = request.headers.get(DIAGNOSTICS_HEADER, '')
    if not expected or not provided:
        return False

    return hmac.compare_digest(expected, provided)


@bp.route('/evaluate-writing', methods=['POST'])
def evaluate_writing():
    """
    Evaluate a written answer.

    Request Body:
        {
            "question": "Translate: I am going to the market",
            "userAnswer": "je vais au marche",
            "correctAnswer": "je vais au marché",     (null for open-ended)
            "acceptableVariations": [],
            "difficulty": "beginner",
            "questionType": "translation",
            "includeMetadata": false
        }

    Headers:
        X-Diagnostics-Token (optional): required together with
            includeMetadata=true to receive matchInfo/metadata

    Returns:
        200: Evaluation result
            {
                "isCorrect": true,
                "score": 98,
                "hasCorrectAccents": false,
                "feedback": "Correct ! Attention aux accents pour être parfait.",
                "corrections": {"accents": ["La réponse correcte est: \"je vais au marché\""]}
            }
        400: Missing required fields or malformed body
            {
                "error": "Missing required fields"
            }
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({'error': 'No JSON data provided'}), 400

    if not data.get('question') or data.get('userAnswer') is None:
        return jsonify({'error': 'Missing required fields'}), 400

    try:
        evaluation_request = EvaluationRequest.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid evaluation request: {e}")
        return jsonify({'error': 'Invalid request', 'details': [err['msg'] for err in e.errors()]}), 400

    service = current_app.extensions['answer_evaluation_service']
    result = service.evaluate(
        evaluation_request,
        include_metadata=_diagnostics_allowed(data),
    )

    return jsonify(result.to_response()), 200
