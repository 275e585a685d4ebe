"""Pydantic models for the structured output of the generation model.

Note: To keep the provider structured output schema simple and compatible,
length limits are not expressed here; they are applied post-generation.
"""

from pydantic import BaseModel, Field


class GeneratedFlashcard(BaseModel):
    """Simple question/answer preview proposed by the model."""

    question: str
    answer: str


class GeneratedFlashcards(BaseModel):
    """Everything the model returns for one source text."""

    flashcards: list[GeneratedFlashcard] = Field(default_factory=list)
