from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Optional

from pydantic import Field, StringConstraints, model_validator

from flashgen.apis.schemas import CamelModel, PaginatedResponse
from flashgen.core.db.schemas.flashcards import FlashcardSource

Question = Annotated[str, StringConstraints(min_length=1, max_length=200)]
Answer = Annotated[str, StringConstraints(min_length=1, max_length=500)]


class FlashcardCreate(CamelModel):
    question: Question
    answer: Answer
    category_id: Optional[uuid.UUID] = None


class FlashcardUpdate(CamelModel):
    question: Optional[Question] = None
    answer: Optional[Answer] = None
    category_id: Optional[uuid.UUID] = Field(
        default=None, description="null detaches the flashcard from its category"
    )

    @model_validator(mode="after")
    def _require_one_field(self) -> "FlashcardUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided for update")
        for name in ("question", "answer"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return self.model_dump(include=self.model_fields_set)


class FlashcardRead(CamelModel):
    id: uuid.UUID
    question: str
    answer: str
    category_id: Optional[uuid.UUID] = None
    generation_id: Optional[uuid.UUID] = None
    source: FlashcardSource
    created_at: datetime
    updated_at: datetime


FlashcardList = PaginatedResponse[FlashcardRead]
