from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from flashgen.apis.deps import CurrentUser, Pagination
from flashgen.apis.schemas import ERROR_RESPONSES, PaginationMeta
from flashgen.core.config import settings
from flashgen.core.db.base import get_session
from flashgen.core.db.schemas.flashcards import FlashcardSource
from flashgen.core.db_services import FlashcardService
from .schemas import FlashcardCreate, FlashcardList, FlashcardRead, FlashcardUpdate


router = APIRouter()


@router.post(
    f"{settings.app.api_prefix}/flashcards",
    response_model=FlashcardRead,
    status_code=status.HTTP_201_CREATED,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404, 500)},
    tags=["flashcards"],
)
async def create_flashcard(
    req: FlashcardCreate,
    user: CurrentUser,
    response: Response,
    session: AsyncSession = Depends(get_session),
) -> FlashcardRead:
    card = await FlashcardService(session).create(
        user.id,
        question=req.question,
        answer=req.answer,
        category_id=req.category_id,
    )
    response.headers["Location"] = f"{settings.app.api_prefix}/flashcards/{card.id}"
    return FlashcardRead.model_validate(card)


@router.get(
    f"{settings.app.api_prefix}/flashcards",
    response_model=FlashcardList,
    responses={400: ERROR_RESPONSES[400]},
    tags=["flashcards"],
)
async def list_flashcards(
    user: CurrentUser,
    pagination: Pagination,
    category_id: Optional[uuid.UUID] = Query(default=None, alias="categoryId"),
    source: Optional[FlashcardSource] = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> FlashcardList:
    page = await FlashcardService(session).list_for_user(
        user.id,
        page=pagination.page,
        limit=pagination.limit,
        category_id=category_id,
        source=source,
    )
    return FlashcardList(
        data=[FlashcardRead.model_validate(c) for c in page.items],
        pagination=PaginationMeta(
            page=page.page,
            limit=page.limit,
            total_items=page.total_items,
            total_pages=page.total_pages,
        ),
    )


@router.get(
    f"{settings.app.api_prefix}/flashcards/{{flashcard_id}}",
    response_model=FlashcardRead,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404)},
    tags=["flashcards"],
)
async def get_flashcard(
    flashcard_id: uuid.UUID,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
) -> FlashcardRead:
    card = await FlashcardService(session).get(user.id, flashcard_id)
    return FlashcardRead.model_validate(card)


@router.patch(
    f"{settings.app.api_prefix}/flashcards/{{flashcard_id}}",
    response_model=FlashcardRead,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404)},
    tags=["flashcards"],
)
async def update_flashcard(
    flashcard_id: uuid.UUID,
    req: FlashcardUpdate,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
) -> FlashcardRead:
    card = await FlashcardService(session).update(user.id, flashcard_id, req.changes())
    return FlashcardRead.model_validate(card)
