"""Tests for generations API endpoints."""

import json
import math
import uuid

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from flashgen.core.config import settings
from flashgen.core.db.schemas import Flashcard, Generation, GenerationStatus, User
from flashgen.core.db_services import CategoryService, GenerationService
from flashgen.core.task_queue import run_generation_job
from flashgen.modules.generation.models import GeneratedFlashcard

from .conftest import SOURCE_TEXT, FakeGenerationQueue

PREVIEWS = [
    GeneratedFlashcard(question="What does photosynthesis produce?", answer="Glucose and oxygen"),
    GeneratedFlashcard(question="Where does it happen?", answer="In the chloroplasts"),
]


async def _two_previews(source_text: str, model_name: str) -> list[GeneratedFlashcard]:
    return list(PREVIEWS)


def _submit(client: TestClient, **extra) -> dict:
    response = client.post("/api/v1/generations", json={"sourceText": SOURCE_TEXT, **extra})
    assert response.status_code == status.HTTP_202_ACCEPTED, response.text
    return response.json()


def _complete_engine(run, session_factory, generation_id: str) -> None:
    run(
        run_generation_job(
            uuid.UUID(generation_id),
            session_factory=session_factory,
            generator=_two_previews,
        )
    )


def _foreign_generation(run, session_factory, user: User) -> str:
    async def _create() -> str:
        async with session_factory() as session:
            generation = await GenerationService(session).create(
                user_id=user.id, source_text=SOURCE_TEXT, model="test"
            )
            return str(generation.id)

    return run(_create())


def _count_flashcards(run, session_factory) -> int:
    async def _count() -> int:
        async with session_factory() as session:
            return await session.scalar(select(func.count()).select_from(Flashcard))

    return run(_count())


def _sse_frames(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


class TestSubmitGeneration:
    """Test suite for POST /api/v1/generations endpoint."""

    def test_submit_generation_success(
        self, client: TestClient, fake_queue: FakeGenerationQueue
    ) -> None:
        """Test that a submission is accepted for processing and enqueued."""
        data = _submit(client)

        assert data["status"] == "processing"
        assert data["modelUsed"] == settings.generation.default_model
        assert data["categoryId"] is None
        assert fake_queue.enqueued == [uuid.UUID(data["id"])]

    def test_submit_generation_location_header(self, client: TestClient) -> None:
        response = client.post("/api/v1/generations", json={"sourceText": SOURCE_TEXT})

        assert response.headers["Location"] == f"/api/v1/generations/{response.json()['id']}"

    def test_submit_generation_with_model_and_category(self, client: TestClient) -> None:
        category = client.post("/api/v1/categories", json={"name": "Botany"}).json()

        data = _submit(client, model="openai/gpt-4o-mini", categoryId=category["id"])

        assert data["modelUsed"] == "openai/gpt-4o-mini"
        assert data["categoryId"] == category["id"]

    def test_submit_generation_exact_minimum_length(self, client: TestClient) -> None:
        """Test that a source text of exactly the minimum length is accepted."""
        text = "a" * settings.generation.source_text_min

        response = client.post("/api/v1/generations", json={"sourceText": text})

        assert response.status_code == status.HTTP_202_ACCEPTED

    @pytest.mark.parametrize(
        "length_delta", [-1, None],
        ids=["below-minimum", "above-maximum"],
    )
    def test_submit_generation_source_text_bounds(
        self, client: TestClient, length_delta
    ) -> None:
        """Test that source text outside the configured bounds is rejected."""
        if length_delta is None:
            text = "a" * (settings.generation.source_text_max + 1)
        else:
            text = "a" * (settings.generation.source_text_min + length_delta)

        response = client.post("/api/v1/generations", json={"sourceText": text})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_submit_generation_unknown_category(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/generations",
            json={"sourceText": SOURCE_TEXT, "categoryId": str(uuid.uuid4())},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_submit_generation_foreign_category(
        self, client: TestClient, run, session_factory, other_user: User
    ) -> None:
        """Test that another user's category is reported as missing."""
        async def _create() -> str:
            async with session_factory() as session:
                category = await CategoryService(session).create(other_user.id, "Theirs")
                return str(category.id)

        response = client.post(
            "/api/v1/generations",
            json={"sourceText": SOURCE_TEXT, "categoryId": run(_create())},
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_submit_generation_enqueue_failure(
        self, client: TestClient, fake_queue: FakeGenerationQueue, run, session_factory
    ) -> None:
        """Test that a queue failure is a 500 and leaves the task failed."""
        fake_queue.fail = True

        response = client.post("/api/v1/generations", json={"sourceText": SOURCE_TEXT})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {
            "error": {"code": "INTERNAL_SERVER_ERROR", "message": "Internal server error"}
        }

        async def _statuses() -> list[GenerationStatus]:
            async with session_factory() as session:
                rows = await session.execute(select(Generation.status))
                return list(rows.scalars().all())

        assert run(_statuses()) == [GenerationStatus.FAILED]


class TestListGenerations:
    """Test suite for GET /api/v1/generations endpoint."""

    def test_list_includes_submitted_task(self, client: TestClient) -> None:
        submitted = _submit(client)

        body = client.get("/api/v1/generations").json()

        assert [g["id"] for g in body["data"]] == [submitted["id"]]
        assert body["data"][0]["status"] == "processing"
        assert body["data"][0]["progress"] == 0
        assert body["pagination"] == {
            "page": 1,
            "limit": 20,
            "totalItems": 1,
            "totalPages": 1,
        }

    def test_pages_reconstruct_newest_first_order(self, client: TestClient) -> None:
        """Test that the union of all pages is the full list, in order, once."""
        for _ in range(5):
            _submit(client)
        full = [g["id"] for g in client.get("/api/v1/generations", params={"limit": 100}).json()["data"]]

        limit = 2
        first = client.get("/api/v1/generations", params={"page": 1, "limit": limit}).json()
        total_pages = first["pagination"]["totalPages"]
        assert total_pages == math.ceil(5 / limit)

        walked: list[str] = []
        for page in range(1, total_pages + 1):
            body = client.get("/api/v1/generations", params={"page": page, "limit": limit}).json()
            walked.extend(g["id"] for g in body["data"])

        assert walked == full
        assert len(set(walked)) == 5

    def test_page_past_the_end_is_empty(self, client: TestClient) -> None:
        _submit(client)

        body = client.get("/api/v1/generations", params={"page": 3}).json()

        assert body["data"] == []
        assert body["pagination"]["totalItems"] == 1

    def test_invalid_pagination(self, client: TestClient) -> None:
        response = client.get("/api/v1/generations", params={"limit": 500})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestGetGeneration:
    """Test suite for GET /api/v1/generations/:id endpoint."""

    def test_status_after_engine_run(self, client: TestClient, run, session_factory) -> None:
        """Test that previews and progress are readable once the engine finishes."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        data = client.get(f"/api/v1/generations/{submitted['id']}").json()

        assert data["status"] == "processing"
        assert data["progress"] == 100
        assert data["generatedFlashcards"] == [p.model_dump() for p in PREVIEWS]

    def test_get_generation_not_found(self, client: TestClient) -> None:
        response = client.get(f"/api/v1/generations/{uuid.uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_get_foreign_generation(
        self, client: TestClient, run, session_factory, other_user: User
    ) -> None:
        generation_id = _foreign_generation(run, session_factory, other_user)

        response = client.get(f"/api/v1/generations/{generation_id}")

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestAcceptGeneration:
    """Test suite for POST /api/v1/generations/:id/accept endpoint."""

    def test_accept_all_without_body(self, client: TestClient, run, session_factory) -> None:
        """Test the full submit, engine, accept flow with no selection body."""
        category = client.post("/api/v1/categories", json={"name": "Plants"}).json()
        submitted = _submit(client, categoryId=category["id"])
        _complete_engine(run, session_factory, submitted["id"])

        response = client.post(f"/api/v1/generations/{submitted['id']}/accept")

        assert response.status_code == status.HTTP_200_OK
        cards = response.json()
        assert len(cards) == 2
        for card in cards:
            assert card["source"] == "ai"
            assert card["generationId"] == submitted["id"]
            assert card["categoryId"] == category["id"]
        assert [c["question"] for c in cards] == [p.question for p in PREVIEWS]

        status_after = client.get(f"/api/v1/generations/{submitted['id']}").json()
        assert status_after["status"] == "completed"

    def test_accept_selected_subset(self, client: TestClient, run, session_factory) -> None:
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        response = client.post(
            f"/api/v1/generations/{submitted['id']}/accept",
            json={"flashcards": [PREVIEWS[1].model_dump()]},
        )

        assert response.status_code == status.HTTP_200_OK
        assert [c["question"] for c in response.json()] == [PREVIEWS[1].question]
        assert _count_flashcards(run, session_factory) == 1

    def test_accept_rejects_cards_not_suggested(
        self, client: TestClient, run, session_factory
    ) -> None:
        """Test that only cards the engine suggested can be accepted."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        response = client.post(
            f"/api/v1/generations/{submitted['id']}/accept",
            json={
                "flashcards": [
                    PREVIEWS[0].model_dump(),
                    {"question": "Injected?", "answer": "Yes"},
                ]
            },
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "Selected flashcards must come from the generated suggestions"
        assert error["details"] == {"indexes": [1]}
        assert _count_flashcards(run, session_factory) == 0
        assert client.get(f"/api/v1/generations/{submitted['id']}").json()["status"] == "processing"

    def test_accept_selection_counts_duplicates(
        self, client: TestClient, run, session_factory
    ) -> None:
        """Test that one suggestion cannot be accepted twice in one selection."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        response = client.post(
            f"/api/v1/generations/{submitted['id']}/accept",
            json={"flashcards": [PREVIEWS[0].model_dump(), PREVIEWS[0].model_dump()]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert _count_flashcards(run, session_factory) == 0

    def test_accept_selection_before_suggestions(
        self, client: TestClient, run, session_factory
    ) -> None:
        submitted = _submit(client)

        response = client.post(
            f"/api/v1/generations/{submitted['id']}/accept",
            json={"flashcards": [PREVIEWS[0].model_dump()]},
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert _count_flashcards(run, session_factory) == 0

    def test_accept_empty_selection(self, client: TestClient, run, session_factory) -> None:
        """Test that an explicit empty list is a validation error and writes nothing."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        response = client.post(
            f"/api/v1/generations/{submitted['id']}/accept", json={"flashcards": []}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert _count_flashcards(run, session_factory) == 0
        assert client.get(f"/api/v1/generations/{submitted['id']}").json()["status"] == "processing"

    def test_accept_without_suggestions(self, client: TestClient, run, session_factory) -> None:
        """Test accepting a task the engine has not produced anything for yet."""
        submitted = _submit(client)

        response = client.post(f"/api/v1/generations/{submitted['id']}/accept")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"]["message"] == "No flashcards to accept"
        assert _count_flashcards(run, session_factory) == 0

    def test_accept_twice(self, client: TestClient, run, session_factory) -> None:
        """Test that a completed task cannot be accepted again."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])
        client.post(f"/api/v1/generations/{submitted['id']}/accept")

        response = client.post(f"/api/v1/generations/{submitted['id']}/accept")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["error"]["code"] == "CONFLICT"
        assert _count_flashcards(run, session_factory) == 2

    def test_accept_cancelled(self, client: TestClient, run, session_factory) -> None:
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])
        client.post(f"/api/v1/generations/{submitted['id']}/cancel")

        response = client.post(f"/api/v1/generations/{submitted['id']}/accept")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert _count_flashcards(run, session_factory) == 0

    def test_accept_bad_id(self, client: TestClient) -> None:
        response = client.post("/api/v1/generations/123/accept")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_accept_unknown_generation(self, client: TestClient) -> None:
        response = client.post(f"/api/v1/generations/{uuid.uuid4()}/accept")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_accept_foreign_generation(
        self, client: TestClient, run, session_factory, other_user: User
    ) -> None:
        """Test that another user's task looks missing and stays untouched."""
        generation_id = _foreign_generation(run, session_factory, other_user)

        response = client.post(f"/api/v1/generations/{generation_id}/accept")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert _count_flashcards(run, session_factory) == 0

    def test_accept_failed_task(self, client: TestClient, run, session_factory) -> None:
        """Test that a failed task cannot be accepted."""
        submitted = _submit(client)

        async def _broken(source_text: str, model_name: str) -> list[GeneratedFlashcard]:
            raise RuntimeError("model unavailable")

        run(
            run_generation_job(
                uuid.UUID(submitted["id"]),
                session_factory=session_factory,
                generator=_broken,
            )
        )
        assert client.get(f"/api/v1/generations/{submitted['id']}").json()["status"] == "failed"

        response = client.post(f"/api/v1/generations/{submitted['id']}/accept")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert _count_flashcards(run, session_factory) == 0


class TestCancelGeneration:
    """Test suite for POST /api/v1/generations/:id/cancel endpoint."""

    def test_cancel_processing_task(self, client: TestClient) -> None:
        submitted = _submit(client)

        response = client.post(f"/api/v1/generations/{submitted['id']}/cancel")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "cancelled"

    def test_cancel_twice(self, client: TestClient) -> None:
        submitted = _submit(client)
        client.post(f"/api/v1/generations/{submitted['id']}/cancel")

        response = client.post(f"/api/v1/generations/{submitted['id']}/cancel")

        assert response.status_code == status.HTTP_409_CONFLICT


class TestGenerationEvents:
    """Test suite for GET /api/v1/generations/:id/events endpoint."""

    def test_stream_terminal_task(self, client: TestClient) -> None:
        """Test that a finished task yields one terminal frame and closes."""
        submitted = _submit(client)
        client.post(f"/api/v1/generations/{submitted['id']}/cancel")

        response = client.get(f"/api/v1/generations/{submitted['id']}/events")

        assert response.status_code == status.HTTP_200_OK
        assert response.headers["content-type"].startswith("text/event-stream")
        assert _sse_frames(response.text) == [
            {"type": "cancelled", "status": "cancelled", "progress": 0}
        ]

    def test_stream_closes_when_suggestions_ready(
        self, client: TestClient, run, session_factory
    ) -> None:
        """Test that a task awaiting acceptance yields one ready frame and closes."""
        submitted = _submit(client)
        _complete_engine(run, session_factory, submitted["id"])

        response = client.get(f"/api/v1/generations/{submitted['id']}/events")

        assert _sse_frames(response.text) == [
            {"type": "ready", "status": "processing", "progress": 100}
        ]

    def test_stream_times_out_on_stalled_task(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a task that never moves gets its current state, then the stream ends."""
        monkeypatch.setattr(settings.generation, "stream_poll_seconds", 0.01)
        monkeypatch.setattr(settings.generation, "stream_timeout_seconds", 0.0)
        submitted = _submit(client)

        response = client.get(f"/api/v1/generations/{submitted['id']}/events")

        assert _sse_frames(response.text) == [
            {"type": "progress", "status": "processing", "progress": 0}
        ]

    def test_stream_unknown_generation(self, client: TestClient) -> None:
        response = client.get(f"/api/v1/generations/{uuid.uuid4()}/events")

        assert response.status_code == status.HTTP_404_NOT_FOUND
