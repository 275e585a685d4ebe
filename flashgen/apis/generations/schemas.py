from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import Field, StringConstraints, field_validator

from flashgen.apis.flashcards.schemas import Answer, Question
from flashgen.apis.schemas import CamelModel, PaginatedResponse
from flashgen.core.config import settings
from flashgen.core.db.schemas.generations import GenerationStatus


class GenerationSubmit(CamelModel):
    source_text: str = Field(..., description="Text the flashcards are generated from")
    model: Optional[
        Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    ] = None
    category_id: Optional[uuid.UUID] = None

    @field_validator("source_text")
    @classmethod
    def _source_text_length(cls, value: str) -> str:
        lo = settings.generation.source_text_min
        hi = settings.generation.source_text_max
        if not lo <= len(value) <= hi:
            raise ValueError(f"sourceText must be between {lo} and {hi} characters")
        return value


class GeneratedFlashcardIn(CamelModel):
    question: Question
    answer: Answer


class AcceptGeneratedCards(CamelModel):
    flashcards: Optional[list[GeneratedFlashcardIn]] = None


class GeneratedFlashcardRead(CamelModel):
    question: str
    answer: str


class GenerationRead(CamelModel):
    id: uuid.UUID
    status: GenerationStatus
    progress: int
    model_used: str
    category_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class GenerationStatusRead(GenerationRead):
    generated_flashcards: list[GeneratedFlashcardRead] = Field(default_factory=list)
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None


GenerationList = PaginatedResponse[GenerationRead]
