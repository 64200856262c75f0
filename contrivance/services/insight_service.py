"""
Discovery assistant: chat and insight suggestions backed by the chat gateway.

Nothing here writes to the database; suggestions are returned to the caller,
who decides whether to save them as discovery responses or notes.
"""

import logging

from flask import current_app

from contrivance.ai.chat_gateway import ChatGateway
from contrivance.core.exceptions import CollaboratorUnavailableError, ValidationError

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 8000
MAX_HISTORY_TURNS = 20


def gateway_from_config(config=None) -> ChatGateway:
    """Build a ChatGateway from app configuration.

    Raises:
        CollaboratorUnavailableError: CHAT_API_KEY is not set.
    """
    config = config if config is not None else current_app.config
    api_key = config.get("CHAT_API_KEY") or ""
    if not api_key:
        raise CollaboratorUnavailableError("chat", "CHAT_API_KEY must be set")
    return ChatGateway(
        api_key=api_key,
        base_url=config.get("CHAT_API_BASE_URL", "https://api.x.ai/v1"),
        model=config.get("CHAT_MODEL", "grok-3"),
    )


def _required_text(data: dict, field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", details={field: "required"})
    value = value.strip()
    if len(value) > MAX_PROMPT_LENGTH:
        raise ValidationError(
            f"{field} exceeds {MAX_PROMPT_LENGTH} characters",
            details={field: "too long"},
        )
    return value


def _optional_text(data: dict, field: str) -> str | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    return value.strip() or None


def chat(data: dict, gateway: ChatGateway | None = None) -> dict:
    """Forward one message (with optional history) and return the reply."""
    prompt = _required_text(data, "message")
    context = _optional_text(data, "context")
    history = data.get("history") or []
    if not isinstance(history, list):
        raise ValidationError("history must be a list", details={"history": "invalid"})
    history = [turn for turn in history if isinstance(turn, dict)][-MAX_HISTORY_TURNS:]

    gateway = gateway or gateway_from_config()
    reply = gateway.chat(prompt, context=context, history=history)
    return {"reply": reply, "model": gateway.model}


def discovery_insights(data: dict, gateway: ChatGateway | None = None) -> dict:
    """Ask the model for technology/vendor suggestions for one question."""
    question = _required_text(data, "question")
    context = _optional_text(data, "context")

    gateway = gateway or gateway_from_config()
    insights = gateway.analyze_for_discovery(question, context=context)
    logger.info("Discovery insights generated", extra={"count": len(insights)})
    return {"question": question, "insights": [i.to_dict() for i in insights]}


def clarifying_questions(data: dict, gateway: ChatGateway | None = None) -> dict:
    topic = _required_text(data, "topic")
    gateway = gateway or gateway_from_config()
    return {"topic": topic, "questions": gateway.clarifying_questions(topic)}
