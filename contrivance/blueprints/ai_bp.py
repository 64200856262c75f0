"""
Sales Engineering CRM
AI Blueprint: discovery assistant.

Endpoints:
    CHAT        /api/v1/ai/chat                      POST
    INSIGHTS    /api/v1/ai/discovery-insights        POST
    FOLLOW-UPS  /api/v1/ai/clarifying-questions      POST

A missing CHAT_API_KEY or a failed upstream call answers 503.
"""

from flask import Blueprint, jsonify

from contrivance.blueprints import json_body
from contrivance.services import insight_service
from contrivance.utils.errors import E, api_error, register_error_handlers

ai_bp = Blueprint("ai", __name__, url_prefix="/api/v1/ai")
register_error_handlers(ai_bp)


@ai_bp.route("/chat", methods=["POST"])
def chat():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("message"):
        return api_error(E.VALIDATION_REQUIRED, "message is required")
    return jsonify(insight_service.chat(data)), 200


@ai_bp.route("/discovery-insights", methods=["POST"])
def discovery_insights():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("question"):
        return api_error(E.VALIDATION_REQUIRED, "question is required")
    return jsonify(insight_service.discovery_insights(data)), 200


@ai_bp.route("/clarifying-questions", methods=["POST"])
def clarifying_questions():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("topic"):
        return api_error(E.VALIDATION_REQUIRED, "topic is required")
    return jsonify(insight_service.clarifying_questions(data)), 200
