"""Database service classes for categories, flashcards and generations."""

from __future__ import annotations

import math
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flashgen.core.db.base import utcnow
from flashgen.core.db.schemas.categories import Category
from flashgen.core.db.schemas.flashcards import Flashcard, FlashcardSource
from flashgen.core.db.schemas.generations import (
    OPEN_STATUSES,
    Generation,
    GenerationErrorLog,
    GenerationStatus,
)
from flashgen.core.errors import (
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from flashgen.core.events import GenerationEvents
from flashgen.core.logging import get_logger
from flashgen.modules.generation.models import GeneratedFlashcard

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: Sequence[T]
    page: int
    limit: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit) if self.limit else 0


class CategoryService:
    """Service for managing a user's categories."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: uuid.UUID, name: str) -> Category:
        """Create a category; names are unique per user, ignoring case."""
        try:
            existing = await self.session.execute(
                select(Category.id).where(
                    Category.user_id == user_id,
                    func.lower(Category.name) == name.lower(),
                )
            )
        except SQLAlchemyError as e:
            logger.error(f"Error checking category uniqueness: {e}")
            raise InternalError("Failed to check category uniqueness") from e

        if existing.first() is not None:
            raise ConflictError("Category with this name already exists")

        category = Category(user_id=user_id, name=name)
        self.session.add(category)
        try:
            await self.session.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same name
            await self.session.rollback()
            raise ConflictError("Category with this name already exists") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating category: {e}")
            raise InternalError("Failed to create category") from e
        return category

    async def list_for_user(self, user_id: uuid.UUID) -> Sequence[Category]:
        rows = await self.session.execute(
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(func.lower(Category.name))
        )
        return rows.scalars().all()

    async def get_owned(self, user_id: uuid.UUID, category_id: uuid.UUID) -> Category:
        result = await self.session.execute(
            select(Category).where(
                Category.id == category_id, Category.user_id == user_id
            )
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category not found")
        return category


class FlashcardService:
    """Service for creating, reading and editing flashcards."""

    UPDATABLE_FIELDS = ("question", "answer", "category_id")

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        user_id: uuid.UUID,
        *,
        question: str,
        answer: str,
        category_id: Optional[uuid.UUID] = None,
    ) -> Flashcard:
        """Create a manual flashcard, checking category ownership first."""
        if category_id is not None:
            await CategoryService(self.session).get_owned(user_id, category_id)

        card = Flashcard(
            user_id=user_id,
            question=question,
            answer=answer,
            category_id=category_id,
            source=FlashcardSource.MANUAL,
            generation_id=None,
        )
        self.session.add(card)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating flashcard: {e}")
            raise InternalError(
                "Failed to create flashcard", code="DATABASE_ERROR"
            ) from e
        return card

    async def get(self, user_id: uuid.UUID, flashcard_id: uuid.UUID) -> Flashcard:
        card = await self.session.get(Flashcard, flashcard_id)
        if card is None:
            raise NotFoundError("Flashcard not found")
        if card.user_id != user_id:
            # Same answer as a missing row so existence is not leaked
            logger.warning(
                f"Flashcard {flashcard_id} requested by non-owner {user_id}"
            )
            raise NotFoundError("Flashcard not found")
        return card

    async def update(
        self,
        user_id: uuid.UUID,
        flashcard_id: uuid.UUID,
        changes: dict[str, Any],
    ) -> Flashcard:
        """Apply only the provided fields and refresh ``updated_at``."""
        card = await self.get(user_id, flashcard_id)

        fields = {k: v for k, v in changes.items() if k in self.UPDATABLE_FIELDS}
        if not fields:
            raise ValidationError("At least one field must be provided for update")

        if fields.get("category_id") is not None:
            await CategoryService(self.session).get_owned(
                user_id, fields["category_id"]
            )

        for field, value in fields.items():
            setattr(card, field, value)
        card.updated_at = utcnow()

        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating flashcard {flashcard_id}: {e}")
            raise InternalError("Failed to update flashcard") from e
        return card

    async def list_for_user(
        self,
        user_id: uuid.UUID,
        *,
        page: int,
        limit: int,
        category_id: Optional[uuid.UUID] = None,
        source: Optional[FlashcardSource] = None,
    ) -> Page[Flashcard]:
        filters = [Flashcard.user_id == user_id]
        if category_id is not None:
            filters.append(Flashcard.category_id == category_id)
        if source is not None:
            filters.append(Flashcard.source == source)

        total = await self.session.scalar(
            select(func.count()).select_from(Flashcard).where(*filters)
        )
        rows = await self.session.execute(
            select(Flashcard)
            .where(*filters)
            .order_by(Flashcard.created_at.desc(), Flashcard.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(
            items=rows.scalars().all(),
            page=page,
            limit=limit,
            total_items=total or 0,
        )


def progress_event(
    status: GenerationStatus, progress: int, *, ready: bool = False
) -> dict[str, Any]:
    """Payload pushed to stream subscribers.

    Terminal states and "ready" (previews stored, awaiting acceptance) close
    the stream.
    """
    if status in (
        GenerationStatus.COMPLETED,
        GenerationStatus.FAILED,
        GenerationStatus.CANCELLED,
    ):
        return {"type": status.value, "status": status.value, "progress": progress}
    if ready:
        return {"type": "ready", "status": status.value, "progress": progress}
    return {"type": "progress", "status": status.value, "progress": progress}


def _check_subset(
    selection: list[GeneratedFlashcard], suggested: list[GeneratedFlashcard]
) -> None:
    """Every selected card must match a distinct stored suggestion."""
    remaining = Counter((p.question, p.answer) for p in suggested)
    unknown: list[int] = []
    for idx, card in enumerate(selection):
        key = (card.question, card.answer)
        if remaining[key] > 0:
            remaining[key] -= 1
        else:
            unknown.append(idx)
    if unknown:
        raise ValidationError(
            "Selected flashcards must come from the generated suggestions",
            details={"indexes": unknown},
        )


class GenerationService:
    """Service for generation tasks: submission, engine callbacks and acceptance."""

    def __init__(
        self, session: AsyncSession, events: Optional[GenerationEvents] = None
    ):
        self.session = session
        self.events = events

    def _publish(
        self,
        generation_id: uuid.UUID,
        status: GenerationStatus,
        progress: int,
        *,
        ready: bool = False,
    ) -> None:
        if self.events is not None:
            self.events.publish(
                generation_id, progress_event(status, progress, ready=ready)
            )

    async def create(
        self,
        *,
        user_id: uuid.UUID,
        source_text: str,
        model: str,
        category_id: Optional[uuid.UUID] = None,
    ) -> Generation:
        """Create a generation record; work starts immediately so it is PROCESSING."""
        if category_id is not None:
            await CategoryService(self.session).get_owned(user_id, category_id)

        now = utcnow()
        generation = Generation(
            user_id=user_id,
            source_text=source_text,
            model_used=model,
            category_id=category_id,
            status=GenerationStatus.PROCESSING,
            progress=0,
            generated_flashcards=[],
            created_at=now,
            updated_at=now,
        )
        self.session.add(generation)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating generation: {e}")
            raise InternalError("Failed to create generation") from e
        return generation

    async def get(self, user_id: uuid.UUID, generation_id: uuid.UUID) -> Generation:
        generation = await self.session.get(Generation, generation_id)
        if generation is None:
            raise NotFoundError("Generation not found")
        if generation.user_id != user_id:
            logger.warning(
                f"Generation {generation_id} requested by non-owner {user_id}"
            )
            raise NotFoundError("Generation not found")
        return generation

    async def list_for_user(
        self, user_id: uuid.UUID, *, page: int, limit: int
    ) -> Page[Generation]:
        """Newest-first page of the user's generations."""
        try:
            total = await self.session.scalar(
                select(func.count())
                .select_from(Generation)
                .where(Generation.user_id == user_id)
            )
            rows = await self.session.execute(
                select(Generation)
                .where(Generation.user_id == user_id)
                .order_by(Generation.created_at.desc(), Generation.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        except SQLAlchemyError as e:
            logger.error(f"Error in GenerationService.list_for_user: {e}")
            raise InternalError("Failed to fetch generations list") from e
        return Page(
            items=rows.scalars().all(),
            page=page,
            limit=limit,
            total_items=total or 0,
        )

    async def _transition(
        self,
        generation_id: uuid.UUID,
        values: dict[str, Any],
        *,
        user_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Compare-and-swap update that only touches non-terminal generations."""
        stmt = (
            update(Generation)
            .where(
                Generation.id == generation_id,
                Generation.status.in_(OPEN_STATUSES),
            )
            .values(updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            stmt = stmt.where(Generation.user_id == user_id)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def accept_generated_cards(
        self,
        user_id: uuid.UUID,
        generation_id: uuid.UUID,
        selection: Optional[list[GeneratedFlashcard]] = None,
    ) -> list[Flashcard]:
        """Persist the selected previews as AI flashcards and complete the task.

        An explicit ``selection`` must be drawn from the stored suggestions;
        ``None`` accepts all of them.

        The status flip and the inserts share one transaction: either every
        card is created and the generation is COMPLETED, or nothing changes.
        """
        generation = await self.get(user_id, generation_id)
        if generation.status not in OPEN_STATUSES:
            raise ConflictError("Generation already accepted or cancelled")

        suggested = [
            GeneratedFlashcard.model_validate(p)
            for p in generation.generated_flashcards or []
        ]
        previews = list(selection) if selection is not None else suggested
        if not previews:
            raise ValidationError("No flashcards to accept")
        if selection is not None:
            _check_subset(previews, suggested)

        category_id = generation.category_id
        try:
            now = utcnow()
            claimed = await self._transition(
                generation_id,
                {
                    "status": GenerationStatus.COMPLETED,
                    "progress": 100,
                    "completed_at": now,
                },
                user_id=user_id,
            )
            if not claimed:
                # Another request got there first
                await self.session.rollback()
                raise ConflictError("Generation already accepted or cancelled")

            cards = [
                Flashcard(
                    user_id=user_id,
                    question=p.question,
                    answer=p.answer,
                    category_id=category_id,
                    generation_id=generation_id,
                    source=FlashcardSource.AI,
                    created_at=now,
                    updated_at=now,
                )
                for p in previews
            ]
            self.session.add_all(cards)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error accepting generation {generation_id}: {e}")
            raise InternalError("Failed to accept generated flashcards") from e

        logger.info(
            f"Accepted {len(cards)} flashcards from generation {generation_id}"
        )
        self._publish(generation_id, GenerationStatus.COMPLETED, 100)
        return cards

    async def cancel(self, user_id: uuid.UUID, generation_id: uuid.UUID) -> Generation:
        generation = await self.get(user_id, generation_id)
        if generation.status not in OPEN_STATUSES:
            raise ConflictError("Generation already finished")

        try:
            cancelled = await self._transition(
                generation_id,
                {
                    "status": GenerationStatus.CANCELLED,
                    "completed_at": utcnow(),
                },
                user_id=user_id,
            )
            if not cancelled:
                await self.session.rollback()
                raise ConflictError("Generation already finished")
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error cancelling generation {generation_id}: {e}")
            raise InternalError("Failed to cancel generation") from e

        await self.session.refresh(generation)
        self._publish(generation_id, generation.status, generation.progress)
        return generation

    # --- engine callbacks -------------------------------------------------

    async def mark_processing(self, generation_id: uuid.UUID, progress: int = 10) -> bool:
        """Claim the task for the engine; False when it is already terminal."""
        ok = await self._transition(
            generation_id,
            {"status": GenerationStatus.PROCESSING, "progress": progress},
        )
        await self.session.commit()
        if ok:
            self._publish(generation_id, GenerationStatus.PROCESSING, progress)
        return ok

    async def record_progress(self, generation_id: uuid.UUID, progress: int) -> bool:
        progress = max(0, min(100, int(progress)))
        ok = await self._transition(generation_id, {"progress": progress})
        await self.session.commit()
        if ok:
            self._publish(generation_id, GenerationStatus.PROCESSING, progress)
        return ok

    async def record_result(
        self, generation_id: uuid.UUID, previews: list[GeneratedFlashcard]
    ) -> bool:
        """Store the engine's previews.

        The status stays PROCESSING: only acceptance moves a task to COMPLETED.
        """
        ok = await self._transition(
            generation_id,
            {
                "generated_flashcards": [p.model_dump() for p in previews],
                "progress": 100,
            },
        )
        await self.session.commit()
        if ok:
            self._publish(generation_id, GenerationStatus.PROCESSING, 100, ready=True)
        return ok

    async def mark_failed(self, generation_id: uuid.UUID, message: str) -> bool:
        ok = await self._transition(
            generation_id,
            {
                "status": GenerationStatus.FAILED,
                "error_message": message,
                "completed_at": utcnow(),
            },
        )
        await self.session.commit()
        if ok:
            self._publish(generation_id, GenerationStatus.FAILED, 0)
        return ok

    async def log_error(
        self,
        generation_id: Optional[uuid.UUID],
        error: BaseException | str,
        *,
        code: str = "GENERATION_ERROR",
    ) -> None:
        """Record a generation failure in generation_error_logs (best effort)."""
        message = str(error) or type(error).__name__
        logger.error(
            f"Generation error {code} for {generation_id or 'unknown'}: {message}"
        )
        if generation_id is None:
            return
        self.session.add(
            GenerationErrorLog(
                generation_id=generation_id,
                error_code=code,
                error_message=message[:2000],
            )
        )
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception(f"Could not persist error log for {generation_id}: {e}")
