from __future__ import annotations

from typing import TYPE_CHECKING
from sqlalchemy.orm import Mapped, relationship

from fastapi_users_db_sqlalchemy import SQLAlchemyBaseUserTableUUID

from flashgen.core.db.base import Base

if TYPE_CHECKING:
    from .categories import Category
    from .flashcards import Flashcard
    from .generations import Generation


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    # Relationships
    categories: Mapped[list["Category"]] = relationship(
        "Category", back_populates="user", cascade="all, delete-orphan"
    )
    flashcards: Mapped[list["Flashcard"]] = relationship(
        "Flashcard", back_populates="user", cascade="all, delete-orphan"
    )
    generations: Mapped[list["Generation"]] = relationship(
        "Generation", back_populates="user", cascade="all, delete-orphan"
    )


__all__ = ["User"]
