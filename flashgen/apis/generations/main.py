from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flashgen.apis.deps import (
    CurrentUser,
    Pagination,
    current_user_or_query_token,
    get_generation_events,
    get_generation_queue,
)
from flashgen.apis.flashcards.schemas import FlashcardRead
from flashgen.apis.schemas import ERROR_RESPONSES, PaginationMeta
from flashgen.core.config import settings
from flashgen.core.db.base import get_session, get_session_factory
from flashgen.core.db.schemas.auth import User
from flashgen.core.db.schemas.generations import Generation
from flashgen.core.db_services import GenerationService, progress_event
from flashgen.core.errors import InternalError
from flashgen.core.events import GenerationEvents
from flashgen.core.logging import get_logger
from flashgen.core.task_queue import GenerationQueue
from flashgen.modules.generation.models import GeneratedFlashcard
from .schemas import (
    AcceptGeneratedCards,
    GenerationList,
    GenerationRead,
    GenerationStatusRead,
    GenerationSubmit,
)


router = APIRouter()

logger = get_logger(__name__)


@router.post(
    f"{settings.app.api_prefix}/generations",
    response_model=GenerationRead,
    status_code=status.HTTP_202_ACCEPTED,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404, 500)},
    tags=["generations"],
)
async def submit_generation(
    req: GenerationSubmit,
    user: CurrentUser,
    response: Response,
    session: AsyncSession = Depends(get_session),
    events: GenerationEvents = Depends(get_generation_events),
    queue: GenerationQueue = Depends(get_generation_queue),
) -> GenerationRead:
    db = GenerationService(session, events)
    generation = await db.create(
        user_id=user.id,
        source_text=req.source_text,
        model=req.model or settings.generation.default_model,
        category_id=req.category_id,
    )

    try:
        queue.enqueue_generation(generation.id)
    except Exception as e:  # noqa: BLE001
        await db.log_error(generation.id, e, code="ENQUEUE_ERROR")
        await db.mark_failed(generation.id, "Failed to start flashcard generation")
        raise InternalError("Failed to start flashcard generation") from e

    response.headers["Location"] = (
        f"{settings.app.api_prefix}/generations/{generation.id}"
    )
    return GenerationRead.model_validate(generation)


@router.get(
    f"{settings.app.api_prefix}/generations",
    response_model=GenerationList,
    responses={k: ERROR_RESPONSES[k] for k in (400, 500)},
    tags=["generations"],
)
async def list_generations(
    user: CurrentUser,
    pagination: Pagination,
    session: AsyncSession = Depends(get_session),
) -> GenerationList:
    page = await GenerationService(session).list_for_user(
        user.id, page=pagination.page, limit=pagination.limit
    )
    return GenerationList(
        data=[GenerationRead.model_validate(g) for g in page.items],
        pagination=PaginationMeta(
            page=page.page,
            limit=page.limit,
            total_items=page.total_items,
            total_pages=page.total_pages,
        ),
    )


@router.get(
    f"{settings.app.api_prefix}/generations/{{generation_id}}",
    response_model=GenerationStatusRead,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404)},
    tags=["generations"],
)
async def get_generation(
    generation_id: uuid.UUID,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
) -> GenerationStatusRead:
    generation = await GenerationService(session).get(user.id, generation_id)
    return GenerationStatusRead.model_validate(generation)


@router.post(
    f"{settings.app.api_prefix}/generations/{{generation_id}}/accept",
    response_model=list[FlashcardRead],
    status_code=status.HTTP_200_OK,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404, 409)},
    tags=["generations"],
)
async def accept_generation(
    generation_id: uuid.UUID,
    user: CurrentUser,
    req: Optional[AcceptGeneratedCards] = Body(default=None),
    session: AsyncSession = Depends(get_session),
    events: GenerationEvents = Depends(get_generation_events),
) -> list[FlashcardRead]:
    selection = None
    if req is not None and req.flashcards is not None:
        selection = [
            GeneratedFlashcard(question=c.question, answer=c.answer)
            for c in req.flashcards
        ]
    cards = await GenerationService(session, events).accept_generated_cards(
        user.id, generation_id, selection
    )
    return [FlashcardRead.model_validate(c) for c in cards]


@router.post(
    f"{settings.app.api_prefix}/generations/{{generation_id}}/cancel",
    response_model=GenerationStatusRead,
    responses={k: ERROR_RESPONSES[k] for k in (400, 404, 409)},
    tags=["generations"],
)
async def cancel_generation(
    generation_id: uuid.UUID,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
    events: GenerationEvents = Depends(get_generation_events),
) -> GenerationStatusRead:
    generation = await GenerationService(session, events).cancel(user.id, generation_id)
    return GenerationStatusRead.model_validate(generation)


def _sse(event: str | None, data: dict) -> bytes:
    payload = json.dumps(data, ensure_ascii=False)
    parts = []
    if event:
        parts.append(f"event: {event}")
    parts.append(f"data: {payload}")
    parts.append("")
    return ("\n".join(parts) + "\n").encode("utf-8")


def _heartbeat() -> bytes:
    return b": keep-alive\n\n"


async def _current_state(
    session_factory: async_sessionmaker[AsyncSession], generation_id: uuid.UUID
) -> Optional[dict[str, Any]]:
    async with session_factory() as session:
        generation = await session.get(Generation, generation_id)
        if generation is None:
            return None
        return progress_event(
            generation.status,
            generation.progress,
            ready=bool(generation.generated_flashcards),
        )


@router.get(
    f"{settings.app.api_prefix}/generations/{{generation_id}}/events",
    responses={k: ERROR_RESPONSES[k] for k in (400, 404)},
    tags=["generations"],
)
async def stream_generation_events(
    generation_id: uuid.UUID,
    user: User = Depends(current_user_or_query_token),
    events: GenerationEvents = Depends(get_generation_events),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> StreamingResponse:
    # Ownership check with a short-lived session; raises 404 before streaming
    async with session_factory() as _sess:
        generation = await GenerationService(_sess).get(user.id, generation_id)
        initial = progress_event(
            generation.status,
            generation.progress,
            ready=bool(generation.generated_flashcards),
        )

    poll_seconds = settings.generation.stream_poll_seconds
    heartbeat_seconds = settings.generation.stream_heartbeat_seconds
    timeout_seconds = settings.generation.stream_timeout_seconds

    async def gen() -> AsyncIterator[bytes]:
        loop = asyncio.get_running_loop()
        started = last_beat = loop.time()
        last = initial
        try:
            with events.subscription(generation_id) as inbox:
                yield _sse(None, initial)
                while last["type"] == "progress":
                    try:
                        event = await asyncio.wait_for(inbox.get(), timeout=poll_seconds)
                    except asyncio.TimeoutError:
                        # Writer may live in another process; re-read the row
                        event = await _current_state(session_factory, generation_id)
                        if event is None:
                            break

                    if event != last:
                        last = event
                        yield _sse(None, event)

                    now = loop.time()
                    if now - started >= timeout_seconds:
                        logger.info(f"Event stream for generation {generation_id} timed out")
                        break
                    if now - last_beat >= heartbeat_seconds:
                        last_beat = now
                        yield _heartbeat()
        except asyncio.CancelledError:
            # Client disconnected
            logger.debug(f"Event stream for generation {generation_id} closed by client")
            raise

    return StreamingResponse(
        gen(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
