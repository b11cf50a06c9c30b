import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default="False"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Base configuration class"""

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    DEBUG = os.getenv("DEBUG", "True") == "True"

    # Semantic fallback (LLM) settings
    LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
    SEMANTIC_FALLBACK_MODEL = os.getenv("SEMANTIC_FALLBACK_MODEL")  # None = provider default
    # Raw string, parsed by AnswerEvaluationService.from_app_config
    SEMANTIC_FALLBACK_TIMEOUT = os.getenv("SEMANTIC_FALLBACK_TIMEOUT", "20")

    # When true: skip fuzzy/variant tiers and always ask the LLM (higher cost)
    API_ONLY_EVALUATION = _env_flag("API_ONLY_EVALUATION")

    # Privileged callers presenting this token in X-Diagnostics-Token may
    # request tier provenance. Unset disables diagnostics entirely.
    DIAGNOSTICS_TOKEN = os.getenv("DIAGNOSTICS_TOKEN")

    # Optional overrides of the grading thresholds (ratios or percentages)
    CONFIDENCE_THRESHOLD_BEGINNER = os.getenv("CONFIDENCE_THRESHOLD_BEGINNER")
    CONFIDENCE_THRESHOLD_INTERMEDIATE = os.getenv("CONFIDENCE_THRESHOLD_INTERMEDIATE")
    CONFIDENCE_THRESHOLD_ADVANCED = os.getenv("CONFIDENCE_THRESHOLD_ADVANCED")
    CORRECTNESS_MINOR_TYPO = os.getenv("CORRECTNESS_MINOR_TYPO")
    CORRECTNESS_BEGINNER_PASS = os.getenv("CORRECTNESS_BEGINNER_PASS")

    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")


class DevelopmentConfig(Config):
    """Development environment configuration"""

    DEBUG = True


class ProductionConfig(Config):
    """Production environment configuration"""

    DEBUG = False


class TestingConfig(Config):
    """Testing environment configuration"""

    TESTING = True
    DEBUG = True
    API_ONLY_EVALUATION = False
    DIAGNOSTICS_TOKEN = "test-diagnostics-token"
    SEMANTIC_FALLBACK_TIMEOUT = 5.0


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
