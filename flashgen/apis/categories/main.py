from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from flashgen.apis.deps import CurrentUser
from flashgen.apis.schemas import ERROR_RESPONSES
from flashgen.core.config import settings
from flashgen.core.db.base import get_session
from flashgen.core.db_services import CategoryService
from .schemas import CategoryCreate, CategoryRead


router = APIRouter()


@router.post(
    f"{settings.app.api_prefix}/categories",
    response_model=CategoryRead,
    status_code=status.HTTP_201_CREATED,
    responses={k: ERROR_RESPONSES[k] for k in (400, 409)},
    tags=["categories"],
)
async def create_category(
    req: CategoryCreate,
    user: CurrentUser,
    response: Response,
    session: AsyncSession = Depends(get_session),
) -> CategoryRead:
    category = await CategoryService(session).create(user.id, req.name)
    response.headers["Location"] = f"{settings.app.api_prefix}/categories/{category.id}"
    return CategoryRead.model_validate(category)


@router.get(
    f"{settings.app.api_prefix}/categories",
    response_model=list[CategoryRead],
    tags=["categories"],
)
async def list_categories(
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
) -> list[CategoryRead]:
    categories = await CategoryService(session).list_for_user(user.id)
    return [CategoryRead.model_validate(c) for c in categories]


@router.get(
    f"{settings.app.api_prefix}/categories/{{category_id}}",
    response_model=CategoryRead,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404)},
    tags=["categories"],
)
async def get_category(
    category_id: uuid.UUID,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
) -> CategoryRead:
    category = await CategoryService(session).get_owned(user.id, category_id)
    return CategoryRead.model_validate(category)
