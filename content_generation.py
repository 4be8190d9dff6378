"""Content generation boundary: retry, circuit breaker, media extraction.

generate_content() is the one entry point the rest of the app uses to ask a
language model for tutoring text. Responses are split into plain text plus
ordered media items (images, mermaid graphs, code blocks). This module never
touches engine state; callers must not hold a learner lock while calling it.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from models import LearningPreferences

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "gemini": "gemini-2.0-flash",
}

SYSTEM_PROMPT = (
    "You are an expert tutor who helps students understand complex topics. "
    "You can create diagrams with Mermaid.js syntax wrapped in ```mermaid blocks "
    "and show code in fenced code blocks tagged with their language. "
    "Adjust your language, examples and complexity to the student's grade level."
)

TONE_PROMPTS = {
    "encouraging": "Be encouraging and motivating. Celebrate student successes and provide positive reinforcement.",
    "socratic": "Use the Socratic method. Guide students to answers through questioning.",
    "professional": "Maintain a professional and formal tone. Focus on clear, concise explanations.",
    "friendly": "Be casual and approachable. Use conversational language and relatable examples.",
}


class ContentGenerationError(Exception):
    """The provider could not produce content (circuit open, bad response, hard failure)."""


class TransientLLMError(Exception):
    """Wrapper for transient provider errors that should be retried."""


# ── Circuit Breaker ─────────────────────────────────────────

class CircuitBreaker:
    """Skips a provider for RECOVERY_TIMEOUT seconds after FAILURE_THRESHOLD
    consecutive failures, then lets a trial call through."""

    FAILURE_THRESHOLD = 3
    RECOVERY_TIMEOUT = 60  # seconds

    def __init__(self) -> None:
        self._failures: dict[str, int] = {}
        self._opened_at: dict[str, float] = {}
        self._lock = threading.Lock()

    def record_success(self, provider: str) -> None:
        with self._lock:
            self._failures.pop(provider, None)
            self._opened_at.pop(provider, None)

    def record_failure(self, provider: str) -> None:
        with self._lock:
            failures = self._failures.get(provider, 0) + 1
            self._failures[provider] = failures
            if failures >= self.FAILURE_THRESHOLD:
                self._opened_at[provider] = time.time()

    def get_state(self, provider: str) -> str:
        """closed, open, or half_open once the recovery window has passed."""
        with self._lock:
            opened_at = self._opened_at.get(provider)
        if opened_at is None:
            return "closed"
        if time.time() - opened_at >= self.RECOVERY_TIMEOUT:
            return "half_open"
        return "open"

    def is_open(self, provider: str) -> bool:
        return self.get_state(provider) == "open"


_circuit_breaker = CircuitBreaker()


def get_circuit_breaker() -> CircuitBreaker:
    return _circuit_breaker


# ── Results ─────────────────────────────────────────────────

MEDIA_KINDS = ("image", "graph", "code")


@dataclass
class MediaItem:
    kind: str
    payload: str
    language: Optional[str] = None

    def to_dict(self) -> dict:
        item = {"kind": self.kind, "payload": self.payload}
        if self.kind == "code":
            item["language"] = self.language or ""
        return item


@dataclass
class GeneratedContent:
    text: str
    media: list[MediaItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"text": self.text, "media": [m.to_dict() for m in self.media]}


_MEDIA_PATTERN = re.compile(
    r"```(?P<lang>[\w+#.-]*)[ \t]*\n(?P<code>.*?)```"
    r"|!\[(?P<alt>[^\]]*)\]\((?P<url>[^)\s]+)\)",
    re.DOTALL,
)


def extract_media(response_text: str) -> GeneratedContent:
    """Split fenced blocks and markdown images out of a response, in order."""
    media: list[MediaItem] = []
    text_parts: list[str] = []
    last = 0
    for match in _MEDIA_PATTERN.finditer(response_text):
        text_parts.append(response_text[last:match.start()])
        last = match.end()
        if match.group("url"):
            media.append(MediaItem(kind="image", payload=match.group("url")))
            continue
        lang = match.group("lang").lower()
        code = match.group("code").rstrip("\n")
        if lang == "mermaid":
            media.append(MediaItem(kind="graph", payload=code))
        else:
            media.append(MediaItem(kind="code", payload=code, language=lang))
    text_parts.append(response_text[last:])
    text = re.sub(r"\n{3,}", "\n\n", "".join(text_parts)).strip()
    return GeneratedContent(text=text, media=media)


# ── Prompting ───────────────────────────────────────────────

def build_system_prompt(preferences: Optional[LearningPreferences]) -> str:
    if preferences is None:
        return f"{SYSTEM_PROMPT}\n{TONE_PROMPTS['professional']}"
    areas = ", ".join(preferences.research_areas) or "none given"
    return (
        f"{SYSTEM_PROMPT}\n"
        f"{TONE_PROMPTS.get(preferences.assistant_tone, TONE_PROMPTS['professional'])}\n"
        "Consider these learning preferences:\n"
        f"- Educational level: {preferences.grade_level}\n"
        f"- Research interests: {areas}\n"
        f"- Learning style: {preferences.learning_style}\n"
        f"- Pace: {preferences.pace}\n"
        f"- Detail level: {preferences.detail_level}\n"
        f"- Example frequency: {preferences.example_frequency}"
    )


# ── Transient error detection ───────────────────────────────

_TRANSIENT_ERRORS = (ConnectionError, TimeoutError, OSError)
_TRANSIENT_PATTERNS = (
    "rate limit", "429", "503", "502", "500", "overloaded",
    "temporarily unavailable", "timeout", "connection",
)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, _TRANSIENT_ERRORS):
        return True
    msg = str(exc).lower()
    return any(p in msg for p in _TRANSIENT_PATTERNS)


def _do_call(provider: str, model: str, prompt: str, system: str, json_mode: bool = False) -> str:
    """Execute the provider call (no retry)."""
    if provider == "openai":
        from openai import OpenAI
        client = OpenAI(api_key=os.getenv("OPENAI_API_KEY", ""))
        kwargs: dict = {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": 2048,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    elif provider == "gemini":
        import google.generativeai as genai
        genai.configure(api_key=os.getenv("GOOGLE_API_KEY", ""))
        m = genai.GenerativeModel(model)
        response = m.generate_content(f"{system}\n\n{prompt}" if system else prompt)
        return response.text

    raise ValueError(f"Unknown provider: {provider}")


@retry(
    retry=retry_if_exception_type(TransientLLMError),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    stop=stop_after_attempt(3),
    reraise=True,
)
def _call_with_retry(provider: str, model: str, prompt: str, system: str, json_mode: bool = False) -> str:
    try:
        return _do_call(provider, model, prompt, system, json_mode)
    except Exception as exc:
        if _is_transient(exc):
            raise TransientLLMError(str(exc)) from exc
        raise


def _resilient_call(prompt: str, system: str, provider: Optional[str], model: Optional[str],
                    json_mode: bool = False) -> str:
    provider = provider or os.getenv("CONTENT_PROVIDER", "openai")
    model = model or os.getenv("CONTENT_MODEL") or DEFAULT_MODELS.get(provider, "")

    if _circuit_breaker.is_open(provider):
        raise ContentGenerationError(f"Circuit breaker open for provider: {provider}")

    start = time.time()
    try:
        text = _call_with_retry(provider, model, prompt, system, json_mode)
    except Exception as exc:
        _circuit_breaker.record_failure(provider)
        logger.warning("Content generation via %s failed: %s", provider, exc)
        raise ContentGenerationError(str(exc)) from exc

    _circuit_breaker.record_success(provider)
    logger.info("Content generated via %s/%s in %dms", provider, model, int((time.time() - start) * 1000))
    return text


# ── Public API ──────────────────────────────────────────────

def generate_content(prompt: str, context: Optional[dict] = None,
                     provider: Optional[str] = None, model: Optional[str] = None) -> GeneratedContent:
    """Ask the configured provider for tutoring content.

    `context` may carry `preferences` (LearningPreferences) and `subject`.
    """
    if not prompt or not prompt.strip():
        raise ValueError("prompt is required")
    context = context or {}
    system = build_system_prompt(context.get("preferences"))
    if context.get("subject"):
        prompt = f"Subject: {context['subject']}\n\n{prompt}"
    return extract_media(_resilient_call(prompt, system, provider, model))


def generate_flashcards(content_text: str, provider: Optional[str] = None,
                        model: Optional[str] = None) -> list[dict]:
    """Turn study material into [{front, back, difficulty}] card drafts."""
    prompt = (
        "Generate a set of flashcards from the following content. Each flashcard "
        "has a front (question or concept) and a back (answer or explanation). "
        "Cover the key concepts; keep the cards clear and concise.\n\n"
        f"Content to process:\n{content_text}\n\n"
        'Respond with a JSON object: {"flashcards": [{"front": "...", "back": "...", '
        '"difficulty": 1-5}]}'
    )
    raw = _resilient_call(prompt, SYSTEM_PROMPT, provider, model, json_mode=True)
    try:
        cards = json.loads(raw).get("flashcards", [])
    except (json.JSONDecodeError, AttributeError) as exc:
        raise ContentGenerationError("Provider returned malformed flashcard JSON") from exc

    drafts = []
    for card in cards:
        if not isinstance(card, dict) or not card.get("front") or not card.get("back"):
            continue
        difficulty = card.get("difficulty", 3)
        if isinstance(difficulty, bool) or not isinstance(difficulty, int):
            difficulty = 3
        drafts.append({
            "front": str(card["front"]),
            "back": str(card["back"]),
            "difficulty": min(5, max(1, difficulty)),
        })
    return drafts
