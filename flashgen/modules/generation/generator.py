"""Flashcard generator using pydantic-ai.

Turns a block of source text into a list of question/answer previews. The
provider is picked from the model name: ``gemini-*`` goes to Google, anything
else is sent to OpenRouter through its OpenAI-compatible API. Provider
imports are kept lazy to avoid import-time errors when credentials are
missing.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from pydantic_ai import Agent
from pydantic_ai.models import Model

from flashgen.core.config import settings
from flashgen.modules.generation.models import GeneratedFlashcard, GeneratedFlashcards

QUESTION_MAX_CHARS = 200
ANSWER_MAX_CHARS = 500

# (source_text, model_name) -> previews; the queue accepts any callable of this shape
FlashcardGenerator = Callable[[str, str], Awaitable[list[GeneratedFlashcard]]]


def _build_google_model(model_name: str):
    """Build the Google Gemini model provider (lazy import)."""
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    provider = GoogleProvider(api_key=settings.gemini_api_key)
    return GoogleModel(model_name, provider=provider)


def _build_openrouter_model(model_name: str):
    """Build OpenRouter model via OpenAI-compatible provider (lazy import)."""
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openai import OpenAIProvider

    if not settings.openrouter_api_key:
        raise RuntimeError(
            "OpenRouter API key not configured. Set OPENROUTER_API_KEY in your environment."
        )

    provider = OpenAIProvider(
        api_key=settings.openrouter_api_key,
        base_url="https://openrouter.ai/api/v1",
    )
    return OpenAIChatModel(model_name.removeprefix("openrouter/"), provider=provider)


def build_model(model_name: str):
    if model_name.lower().startswith("gemini"):
        return _build_google_model(model_name)
    return _build_openrouter_model(model_name)


SYSTEM_PROMPT = (
    "You are an expert educator who turns study material into flashcards. "
    "Return a single JSON object that validates as GeneratedFlashcards: {flashcards}. "
    "Rules: "
    "- Use only facts stated in the source text; do not invent content. "
    "- Each question is clear, atomic and at most 200 characters. "
    "- Each answer is concise, self-contained and at most 500 characters. "
    "- Prefer conceptual understanding over trivia; avoid duplicate questions. "
    "- Plain text only: no markdown, no code fences, no numbering. "
    "- Aim for 5-15 cards depending on how dense the text is."
)


def _build_instruction(source_text: str) -> str:
    return (
        "Create flashcards for the source text below. "
        "Follow the system rules and output only the JSON object.\n\n"
        f"Source text:\n{source_text}"
    )


def build_flashcards_agent(model) -> Agent[None, GeneratedFlashcards]:
    agent: Agent[None, GeneratedFlashcards] = Agent[None, GeneratedFlashcards](
        model=model,
        output_type=GeneratedFlashcards,
        system_prompt=SYSTEM_PROMPT,
        retries=3,
    )
    return agent


async def generate_flashcards(
    source_text: str,
    model_name: str,
    *,
    model: Optional[Model] = None,
) -> list[GeneratedFlashcard]:
    """Ask the model for previews of ``source_text`` and normalise them.

    ``model`` overrides the provider lookup (tests pass pydantic-ai's
    ``TestModel``).
    """
    agent = build_flashcards_agent(model or build_model(model_name))
    res = await agent.run(_build_instruction(source_text))
    return postprocess(res.output.flashcards, max_cards=settings.generation.max_cards)


def postprocess(
    cards: list[GeneratedFlashcard], *, max_cards: int
) -> list[GeneratedFlashcard]:
    """Trim whitespace, drop blanks and repeats, clamp lengths and count."""
    seen: set[str] = set()
    clean: list[GeneratedFlashcard] = []
    for c in cards or []:
        q = (c.question or "").strip()[:QUESTION_MAX_CHARS]
        a = (c.answer or "").strip()[:ANSWER_MAX_CHARS]
        if not q or not a:
            continue
        key = q.lower()
        if key in seen:
            continue
        seen.add(key)
        clean.append(GeneratedFlashcard(question=q, answer=a))

    return clean[: max(0, max_cards)]
