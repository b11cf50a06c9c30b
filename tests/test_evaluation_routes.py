"""
Integration tests for the evaluation route (POST /api/evaluate-writing).

Tests:
- Local grading through the HTTP layer (camelCase request/response)
- Deferral to an injected semantic evaluator
- Request validation errors
- Diagnostics gated by includeMetadata + X-Diagnostics-Token
- Health check
"""

import sys
import os
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import create_app
from models.evaluation import Corrections, MatchResult
from services.answer_evaluation_service import AnswerEvaluationService
from services.semantic_fallback import StaticSemanticEvaluator

DIAGNOSTICS_TOKEN = 'test-diagnostics-token'


@pytest.fixture
def semantic_result():
    return MatchResult(
        is_correct=True,
        score=85,
        has_correct_accents=True,
        feedback='Good answer with natural phrasing.',
        corrections=Corrections(suggestions=('Try adding a time expression',)),
    )


@pytest.fixture(scope='function')
def client(semantic_result):
    """Create a test client with a stubbed semantic evaluator"""
    service = AnswerEvaluationService(
        semantic_evaluator=StaticSemanticEvaluator(result=semantic_result, confidence=80, model='stub-model')
    )
    app = create_app('testing', answer_evaluation_service=service)
    app.config['TESTING'] = True

    with app.test_client() as client:
        yield client


def post_answer(client, headers=None, **overrides):
    payload = {
        'question': 'Translate: coffee',
        'userAnswer': 'cafe',
        'correctAnswer': 'café',
        'acceptableVariations': [],
        'difficulty': 'beginner',
        'questionType': 'translation',
    }
    payload.update(overrides)
    return client.post('/api/evaluate-writing', json=payload, headers=headers or {})


# ============================================================================
# GRADING
# ============================================================================

def test_missing_accents_answer(client):
    response = post_answer(client)

    assert response.status_code == 200
    data = response.get_json()
    assert data['isCorrect'] is True
    assert data['score'] == 98
    assert data['hasCorrectAccents'] is False
    assert data['corrections'] == {'accents': ['La réponse correcte est: "café"']}
    assert 'matchInfo' not in data
    assert 'metadata' not in data


def test_variation_answer(client):
    response = post_answer(
        client,
        userAnswer='un cafe',
        correctAnswer='du café',
        acceptableVariations=['un café'],
    )

    data = response.get_json()
    assert data['isCorrect'] is True
    assert data['score'] == 96


def test_open_ended_answer_uses_semantic_evaluator(client):
    response = post_answer(
        client,
        question='Describe your morning routine',
        userAnswer='Je bois un café chaque matin',
        correctAnswer=None,
        questionType='open_ended',
    )

    assert response.status_code == 200
    data = response.get_json()
    assert data['isCorrect'] is True
    assert data['score'] == 85
    assert data['feedback'] == 'Good answer with natural phrasing.'
    assert data['corrections'] == {'suggestions': ['Try adding a time expression']}


def test_empty_answer_scores_zero(client):
    response = post_answer(client, userAnswer='')

    assert response.status_code == 200
    data = response.get_json()
    assert data['isCorrect'] is False
    assert data['score'] == 0


def test_unknown_difficulty_is_accepted(client):
    response = post_answer(client, difficulty='expert')

    assert response.status_code == 200
    assert response.get_json()['score'] == 98


# ============================================================================
# VALIDATION
# ============================================================================

def test_no_json_body(client):
    response = client.post('/api/evaluate-writing', data='cafe', content_type='text/plain')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'No JSON data provided'


def test_missing_user_answer(client):
    response = client.post('/api/evaluate-writing', json={'question': 'Translate: coffee'})

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing required fields'


def test_missing_question(client):
    response = client.post('/api/evaluate-writing', json={'userAnswer': 'cafe'})

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing required fields'


def test_malformed_variations(client):
    response = post_answer(client, acceptableVariations=5)

    assert response.status_code == 400
    data = response.get_json()
    assert data['error'] == 'Invalid request'
    assert data['details']


# ============================================================================
# DIAGNOSTICS
# ============================================================================

def test_metadata_with_valid_token(client):
    response = post_answer(
        client,
        headers={'X-Diagnostics-Token': DIAGNOSTICS_TOKEN},
        includeMetadata=True,
    )

    data = response.get_json()
    assert data['metadata']['evaluationTier'] == 'exact_match'
    assert data['metadata']['usedSemanticFallback'] is False
    assert data['matchInfo']['matchedAgainst'] == 'primary_answer'
    assert data['matchInfo']['matchKind'] == 'exact'


def test_metadata_for_semantic_fallback(client):
    response = post_answer(
        client,
        headers={'X-Diagnostics-Token': DIAGNOSTICS_TOKEN},
        userAnswer='Je bois un café chaque matin',
        correctAnswer=None,
        includeMetadata=True,
    )

    metadata = response.get_json()['metadata']
    assert metadata['evaluationTier'] == 'semantic_fallback'
    assert metadata['usedSemanticFallback'] is True
    assert metadata['confidenceScore'] == 80
    assert metadata['modelUsed'] == 'stub-model'
    assert metadata['semanticFallbackFailed'] is False


def test_metadata_without_token_is_hidden(client):
    response = post_answer(client, includeMetadata=True)

    data = response.get_json()
    assert data['score'] == 98
    assert 'metadata' not in data
    assert 'matchInfo' not in data


def test_metadata_with_wrong_token_is_hidden(client):
    response = post_answer(
        client,
        headers={'X-Diagnostics-Token': 'guess'},
        includeMetadata=True,
    )

    assert 'metadata' not in response.get_json()


def test_token_without_flag_hides_metadata(client):
    response = post_answer(client, headers={'X-Diagnostics-Token': DIAGNOSTICS_TOKEN})

    assert 'metadata' not in response.get_json()


# ============================================================================
# HEALTH
# ============================================================================

def test_health_check(client):
    response = client.get('/health')

    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'healthy'
    assert data['api_only_evaluation'] is False
