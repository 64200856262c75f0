"""
Chat completion gateway (OpenAI-compatible endpoint, Grok by default).

Used by the discovery assistant to turn a discovery question into suggested
technology/vendor insights and follow-up questions.

  - Provider: any endpoint speaking the OpenAI chat-completions protocol
  - Retry: max 2 extra attempts with 1 s → 4 s backoff
  - Failure after retries raises CollaboratorUnavailableError (HTTP 503)

Usage:
    from contrivance.ai.chat_gateway import ChatGateway
    gw = ChatGateway(api_key="...", base_url="https://api.x.ai/v1", model="grok-3")
    insights = gw.analyze_for_discovery("Which SIEM do you run?")

Testability: pass a fake ``client`` exposing ``chat.completions.create``.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Callable, NamedTuple

from contrivance.core.exceptions import CollaboratorUnavailableError

logger = logging.getLogger(__name__)

_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000

VALID_CONFIDENCE = {"high", "medium", "low"}

SYSTEM_PROMPT = (
    "You are an expert technology discovery assistant. Your role is to help "
    "identify and understand technology stacks, infrastructure choices, and "
    "architectural decisions within organizations.\n\n"
    "When analyzing discovery questions, provide structured insights about:\n"
    "1. Security technologies and practices\n"
    "2. Infrastructure and cloud services\n"
    "3. Development tools and frameworks\n"
    "4. Data management and analytics solutions\n"
    "5. AI/LLM capabilities and integrations\n\n"
    "Format your responses as clear, actionable insights that can be mapped to "
    "discovery categories. Always be concise and focused on practical "
    "technology discovery insights."
)

_INSIGHT_PROMPT = """Based on the following discovery question, identify and suggest relevant technologies, vendors, and infrastructure choices:

Question: {question}
{context_line}
Provide a structured analysis with:
1. Suggested technology categories (Security, Infrastructure, Development, Data, AI/LLM)
2. Specific vendors or tools
3. Brief reasoning for each suggestion
4. Confidence level (high/medium/low)

Format as JSON array of objects with fields: category, technology, vendor, reasoning, confidence
"""

_CLARIFY_PROMPT = """Generate 3-5 follow-up questions to better understand the organization's {topic} technology choices and requirements.

Format as a simple numbered list:
1. [question 1]
2. [question 2]

Focus on practical discovery aspects like compliance, scale, existing vendors, team expertise, and business goals.
"""

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*\]", re.DOTALL)
_NUMBERED_RE = re.compile(r"^\d+\.\s+")


class DiscoveryInsight(NamedTuple):
    category: str
    technology: str
    vendor: str
    reasoning: str
    confidence: str

    def to_dict(self) -> dict:
        return self._asdict()


def parse_insights(text: str) -> list[DiscoveryInsight]:
    """Extract the JSON array of insights from a model reply.

    Code fences are stripped first. A reply without a parsable array yields
    an empty list rather than an error; entries that are not objects are
    skipped and an unknown confidence collapses to "low".
    """
    if not text:
        return []
    fenced = _FENCE_RE.search(text)
    body = fenced.group(1) if fenced else text
    match = _ARRAY_RE.search(body)
    if not match:
        return []
    try:
        raw = json.loads(match.group(0))
    except ValueError:
        logger.info("Chat reply held no parsable insight array")
        return []
    if not isinstance(raw, list):
        return []

    insights = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        confidence = str(item.get("confidence") or "").strip().lower()
        insights.append(DiscoveryInsight(
            category=str(item.get("category") or ""),
            technology=str(item.get("technology") or ""),
            vendor=str(item.get("vendor") or ""),
            reasoning=str(item.get("reasoning") or ""),
            confidence=confidence if confidence in VALID_CONFIDENCE else "low",
        ))
    return insights


def parse_numbered_list(text: str) -> list[str]:
    lines = (line.strip() for line in (text or "").splitlines())
    return [_NUMBERED_RE.sub("", line).strip() for line in lines if _NUMBERED_RE.match(line)]


class ChatGateway:
    """Thin wrapper around ``openai.OpenAI`` pointed at a configurable base URL.

    Args:
        api_key:  Bearer key for the endpoint.
        base_url: Endpoint root, e.g. ``https://api.x.ai/v1``.
        model:    Model identifier sent with every request.
        client:   Optional pre-built client (tests inject a fake).
        sleep:    Backoff sleeper; tests pass a no-op.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        client=None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self._client = client
        self._sleep = sleep

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url)
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
        return self._client

    def _build_messages(self, prompt: str, context: str | None, history: list | None) -> list[dict]:
        messages = [{"role": "system", "content": SYSTEM_PROMPT}]
        for turn in history or []:
            role = turn.get("role")
            content = turn.get("content")
            if role in ("user", "assistant") and isinstance(content, str):
                messages.append({"role": role, "content": content})
        user_content = prompt if not context else f"{prompt}\n\nAdditional Context: {context}"
        messages.append({"role": "user", "content": user_content})
        return messages

    def chat(
        self,
        prompt: str,
        context: str | None = None,
        history: list | None = None,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> str:
        """Send one user turn (plus prior ``history``) and return the reply text.

        Raises:
            CollaboratorUnavailableError: every attempt failed.
        """
        client = self._get_client()
        messages = self._build_messages(prompt, context, history)

        last_error = None
        for attempt in range(_RETRY_MAX + 1):
            started = time.monotonic()
            try:
                response = client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "Chat call attempt %d/%d failed: %s", attempt + 1, _RETRY_MAX + 1, exc,
                )
                if attempt < _RETRY_MAX:
                    self._sleep(_RETRY_BACKOFF_SECONDS[attempt])
                continue

            latency_ms = int((time.monotonic() - started) * 1000)
            choices = getattr(response, "choices", None) or []
            content = choices[0].message.content if choices else ""
            logger.info(
                "Chat call ok model=%s latency_ms=%d attempt=%d",
                self.model, latency_ms, attempt + 1,
            )
            return content or ""

        raise CollaboratorUnavailableError("chat", f"call failed after retries: {last_error}")

    def analyze_for_discovery(self, question: str, context: str | None = None) -> list[DiscoveryInsight]:
        context_line = f"Additional Context: {context}\n" if context else ""
        prompt = _INSIGHT_PROMPT.format(question=question, context_line=context_line)
        return parse_insights(self.chat(prompt))

    def clarifying_questions(self, topic: str) -> list[str]:
        return parse_numbered_list(self.chat(_CLARIFY_PROMPT.format(topic=topic)))
