from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Query, Request, status

from flashgen.apis.schemas import PaginationParams
from flashgen.core.db.schemas.auth import User
from flashgen.core.events import GenerationEvents
from flashgen.core.task_queue import GenerationQueue
from flashgen.modules.auth import current_active_user, get_jwt_strategy, get_user_manager


CurrentUser = Annotated[User, Depends(current_active_user)]


async def current_user_or_query_token(
    access_token: Optional[str] = None,
    authorization: Optional[str] = Header(default=None),
    user_manager=Depends(get_user_manager),
) -> User:
    """Resolve current user from Authorization header or `access_token` query param.

    Useful for SSE, where setting custom headers is inconvenient. Falls back to
    query param token when header is missing.
    """
    token: Optional[str] = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    elif access_token:
        token = access_token

    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    strategy = get_jwt_strategy()
    user = await strategy.read_token(token, user_manager)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user


def pagination_params(
    page: int = Query(1, gt=0, description="1-based page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
) -> PaginationParams:
    return PaginationParams(page=page, limit=limit)


Pagination = Annotated[PaginationParams, Depends(pagination_params)]


def get_generation_events(request: Request) -> GenerationEvents:
    return request.app.state.generation_events


def get_generation_queue(request: Request) -> GenerationQueue:
    return request.app.state.generation_queue
