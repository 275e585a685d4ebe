from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy import (
    DateTime,
    ForeignKey,
    String,
    Uuid,
    func,
    Enum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from flashgen.core.db.base import Base, utcnow

if TYPE_CHECKING:
    from .auth import User
    from .categories import Category
    from .generations import Generation


class FlashcardSource(enum.Enum):
    MANUAL = "manual"
    AI = "ai"


class Flashcard(Base):
    __tablename__ = "flashcards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped[str] = mapped_column(String(200), nullable=False)
    answer: Mapped[str] = mapped_column(String(500), nullable=False)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Set only for cards created by accepting a generation
    generation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("generations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    source: Mapped[FlashcardSource] = mapped_column(
        Enum(
            FlashcardSource,
            name="flashcard_source",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=FlashcardSource.MANUAL,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="flashcards")
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="flashcards"
    )
    generation: Mapped[Optional["Generation"]] = relationship(
        "Generation", back_populates="flashcards"
    )


__all__ = [
    "FlashcardSource",
    "Flashcard",
]
