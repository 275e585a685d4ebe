from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
    func,
    JSON,
    Enum,
    text as sa_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from flashgen.core.db.base import Base, utcnow

if TYPE_CHECKING:
    from .auth import User
    from .flashcards import Flashcard


class GenerationStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Acceptance (and cancellation) may only start from these
OPEN_STATUSES = (GenerationStatus.PENDING, GenerationStatus.PROCESSING)
TERMINAL_STATUSES = (
    GenerationStatus.COMPLETED,
    GenerationStatus.FAILED,
    GenerationStatus.CANCELLED,
)


class Generation(Base):
    __tablename__ = "generations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[GenerationStatus] = mapped_column(
        Enum(
            GenerationStatus,
            name="generation_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        default=GenerationStatus.PENDING,
        nullable=False,
    )
    source_text: Mapped[str] = mapped_column(Text, nullable=False)
    model_used: Mapped[str] = mapped_column(String(100), nullable=False)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # JSON array of {question, answer} previews proposed by the model
    generated_flashcards: Mapped[list[dict]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        server_default=sa_text("'[]'"),
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
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
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped["User"] = relationship("User", back_populates="generations")
    flashcards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard", back_populates="generation"
    )
    error_logs: Mapped[list["GenerationErrorLog"]] = relationship(
        "GenerationErrorLog", back_populates="generation", cascade="all, delete-orphan"
    )


class GenerationErrorLog(Base):
    __tablename__ = "generation_error_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    generation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("generations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    error_code: Mapped[str] = mapped_column(String(100), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        index=True,
    )

    generation: Mapped["Generation"] = relationship(
        "Generation", back_populates="error_logs"
    )


__all__ = [
    "GenerationStatus",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "Generation",
    "GenerationErrorLog",
]
