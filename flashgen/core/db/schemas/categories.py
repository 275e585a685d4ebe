from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flashgen.core.db.base import Base, utcnow

if TYPE_CHECKING:
    from .auth import User
    from .flashcards import Flashcard


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
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

    user: Mapped["User"] = relationship("User", back_populates="categories")
    flashcards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard", back_populates="category"
    )


# Names are unique per owner regardless of case
Index(
    "uq_categories_user_lower_name",
    Category.user_id,
    func.lower(Category.name),
    unique=True,
)


__all__ = ["Category"]
