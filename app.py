import logging
import os

from config import config
from flask import Flask, jsonify
from flask_cors import CORS


def create_app(config_name=None, answer_evaluation_service=None):
    """
    Application factory pattern

    Args:
        config_name: Key into config.config ("development", "production", "testing")
        answer_evaluation_service: Optional pre-built AnswerEvaluationService
            (tests inject one with a stub semantic evaluator)
    """
    if config_name is None:
        config_name = os.getenv("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.basicConfig(
        level=logging.DEBUG if app.config.get("DEBUG") else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize CORS for the frontend
    CORS(
        app,
        resources={r"/api/*": {"origins": app.config["ALLOWED_ORIGINS"]}},
    )

    # Evaluation service is stateless, one instance serves all requests
    from services.answer_evaluation_service import AnswerEvaluationService

    if answer_evaluation_service is None:
        answer_evaluation_service = AnswerEvaluationService.from_app_config(app.config)
    app.extensions["answer_evaluation_service"] = answer_evaluation_service

    # Register API blueprints
    from routes.evaluation import bp as evaluation_bp

    app.register_blueprint(evaluation_bp)

    # Home route
    @app.route("/")
    def home():
        return jsonify({"message": "Writing evaluation service", "version": "1.0.0"})

    # Health check route
    @app.route("/health")
    def health_check():
        return jsonify({
            "status": "healthy",
            "api_only_evaluation": bool(app.config.get("API_ONLY_EVALUATION")),
        }), 200

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(debug=True, port=5001)
