from __future__ import annotations

import asyncio
import uuid
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flashgen.core.db_services import GenerationService
from flashgen.core.db.schemas.generations import Generation
from flashgen.core.events import GenerationEvents
from flashgen.core.logging import get_logger
from flashgen.modules.generation.generator import (
    FlashcardGenerator,
    generate_flashcards,
)

logger = get_logger(__name__)

JobCallable = Callable[[], Awaitable[None]]


class BackgroundQueue:
    """Simple in-process async job queue with fixed concurrency."""

    def __init__(self, *, concurrency: int = 2) -> None:
        self.concurrency = max(1, int(concurrency))
        self._queue: asyncio.Queue[JobCallable] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def _worker(self, idx: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception as e:  # noqa: BLE001
                # Keep the worker alive; the job reports its own failures
                logger.exception(f"Worker {idx} job failed: {e}")
            finally:
                self._queue.task_done()

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for i in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._worker(i)))
        logger.info(f"Background queue started with {self.concurrency} workers")

    async def stop(self) -> None:
        # Drain queue and cancel workers
        await self._queue.join()
        for t in self._workers:
            t.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._started = False
        logger.info("Background queue stopped")

    def enqueue(self, fn: JobCallable) -> None:
        self._queue.put_nowait(fn)


class GenerationQueue(BackgroundQueue):
    """Runs generation jobs against the AI model and reports back to the DB."""

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        events: Optional[GenerationEvents] = None,
        generator: FlashcardGenerator = generate_flashcards,
        concurrency: int = 2,
    ) -> None:
        super().__init__(concurrency=concurrency)
        self.session_factory = session_factory
        self.events = events
        self.generator = generator

    def enqueue_generation(self, generation_id: uuid.UUID) -> None:
        """Fire-and-forget: returning does not mean the job will run."""

        async def _job() -> None:
            await run_generation_job(
                generation_id,
                session_factory=self.session_factory,
                generator=self.generator,
                events=self.events,
            )

        self.enqueue(_job)
        logger.info(f"Enqueued generation {generation_id}")


async def run_generation_job(
    generation_id: uuid.UUID,
    *,
    session_factory: async_sessionmaker[AsyncSession],
    generator: FlashcardGenerator = generate_flashcards,
    events: Optional[GenerationEvents] = None,
) -> None:
    """Process one generation from PROCESSING to previews-ready (or FAILED)."""
    async with session_factory() as session:
        db = GenerationService(session, events)

        db_gen = await session.get(Generation, generation_id)
        if db_gen is None:
            logger.warning(f"Generation {generation_id} not found")
            return

        if not await db.mark_processing(generation_id):
            logger.info(f"Generation {generation_id} is already finished; skipping")
            return

        try:
            previews = await generator(db_gen.source_text, db_gen.model_used)
        except Exception as e:  # noqa: BLE001
            await db.log_error(generation_id, e, code="MODEL_ERROR")
            await db.mark_failed(generation_id, "Flashcard generation failed")
            return

        if not previews:
            await db.log_error(generation_id, "Model returned no flashcards", code="EMPTY_RESULT")
            await db.mark_failed(generation_id, "No flashcards could be generated")
            return

        if await db.record_result(generation_id, previews):
            logger.info(
                f"Generation {generation_id} produced {len(previews)} previews"
            )
        else:
            # Cancelled while the model was running
            logger.info(f"Generation {generation_id} finished after cancellation; result dropped")
