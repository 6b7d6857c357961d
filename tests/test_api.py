"""HTTP surface tests against a seeded database and a stub producer."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from rebus.api.main import create_app
from rebus.config.settings import Settings
from rebus.db.session import create_session_factory, init_db
from rebus.errors import BatchProductionError, RenderError
from rebus.services.assembler import PuzzleRecord, puzzle_id
from rebus.services.container import Services
from rebus.services.repository import PuzzleRepository
from rebus.storage.backend import LocalImageStore
from rebus.workers.scheduler import DailyScheduler

SEEDED_DATE = "2026-10-17"
TODAY = "2026-10-18"


def _batch(date: str) -> list[PuzzleRecord]:
    answers = ["time flies", "piece of cake", "break the ice", "home sweet home", "sunshine"]
    return [
        PuzzleRecord(
            id=puzzle_id(date, position),
            date=date,
            position=position,
            image_reference=f"/api/images/{date}-{position}.png",
            answer=answer,
            hint=f"hint {position}",
        )
        for position, answer in enumerate(answers)
    ]


class StubProducer:
    def __init__(self, repository: PuzzleRepository) -> None:
        self.repository = repository
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def produce(self, date: str) -> list[PuzzleRecord]:
        self.calls.append(date)
        if self.error is not None:
            raise self.error
        records = _batch(date)
        await self.repository.replace_all(date, records)
        return records


@pytest.fixture
def engine(settings: Settings):
    # Connections must not outlive the event loop that opened them.
    return create_async_engine(settings.database_url, poolclass=NullPool)


@pytest.fixture
def repository(engine) -> PuzzleRepository:
    return PuzzleRepository(create_session_factory(engine))


@pytest.fixture
def producer(repository: PuzzleRepository) -> StubProducer:
    return StubProducer(repository)


@pytest.fixture
def services(
    settings: Settings, engine, repository: PuzzleRepository, producer: StubProducer, png_bytes: bytes
) -> Services:
    async def _seed() -> None:
        await init_db(engine)
        await repository.replace_all(SEEDED_DATE, _batch(SEEDED_DATE))

    asyncio.run(_seed())

    image_store = LocalImageStore(Path(settings.images_root), settings.image_url_prefix)
    (image_store.root / f"{SEEDED_DATE}-0.png").write_bytes(png_bytes)

    scheduler = DailyScheduler(
        repository,
        producer,
        hour=6,
        minute=0,
        clock=lambda: datetime(2026, 10, 18, 9, 0),
    )
    return Services(
        settings=settings,
        repository=repository,
        image_store=image_store,
        scheduler=scheduler,
        engine=engine,
    )


@pytest.fixture
def client(settings: Settings, services: Services):
    with TestClient(create_app(settings, services)) as test_client:
        yield test_client
    asyncio.run(services.engine.dispose())


def test_get_puzzles_hides_answers(client: TestClient) -> None:
    response = client.get(f"/api/puzzles/{SEEDED_DATE}")

    assert response.status_code == 200
    body = response.json()
    assert body["date"] == SEEDED_DATE
    assert [puzzle["index"] for puzzle in body["puzzles"]] == [0, 1, 2, 3, 4]
    first = body["puzzles"][0]
    assert first == {
        "id": "2026-10-17-0",
        "date": SEEDED_DATE,
        "index": 0,
        "imageUrl": "/api/images/2026-10-17-0.png",
        "hint": "hint 0",
    }


def test_get_puzzles_for_missing_date(client: TestClient) -> None:
    response = client.get("/api/puzzles/2020-01-01")

    assert response.status_code == 404
    assert "2020-01-01" in response.json()["detail"]


@pytest.mark.parametrize("date", ["2026-13-01", "20261017", "yesterday"])
def test_get_puzzles_rejects_bad_date(client: TestClient, date: str) -> None:
    response = client.get(f"/api/puzzles/{date}")

    assert response.status_code == 400


@pytest.mark.parametrize(
    ("answer", "expected"),
    [("Piece of Cake", True), ("  piece of cake ", True), ("pie", False)],
)
def test_verify_answer(client: TestClient, answer: str, expected: bool) -> None:
    response = client.post("/api/puzzles/verify", json={"puzzleId": "2026-10-17-1", "answer": answer})

    assert response.status_code == 200
    assert response.json() == {"correct": expected}


def test_verify_unknown_puzzle(client: TestClient) -> None:
    response = client.post("/api/puzzles/verify", json={"puzzleId": "2026-10-17-9", "answer": "x"})

    assert response.status_code == 404


def test_verify_malformed_id(client: TestClient) -> None:
    response = client.post("/api/puzzles/verify", json={"puzzleId": "not-an-id", "answer": "x"})

    assert response.status_code == 400


def test_trigger_generates_then_reports_existing(client: TestClient, producer: StubProducer) -> None:
    first = client.post("/api/puzzles/trigger")
    second = client.post("/api/puzzles/trigger")

    assert first.status_code == 200
    assert first.json() == {
        "success": True,
        "generated": True,
        "message": "Puzzles generated successfully for today",
    }
    assert second.json()["generated"] is False
    assert second.json()["message"] == "Puzzles already exist for today"
    assert client.get(f"/api/puzzles/{TODAY}").status_code == 200
    assert producer.calls == [TODAY]


def test_trigger_failure_returns_500(client: TestClient, producer: StubProducer) -> None:
    producer.error = BatchProductionError("render", TODAY, RenderError("GPU on fire"), position=2)

    response = client.post("/api/puzzles/trigger")

    assert response.status_code == 500
    assert response.json()["detail"].startswith("Failed to trigger job: render failed")
    assert client.get(f"/api/puzzles/{TODAY}").status_code == 404


def test_serve_image(client: TestClient, png_bytes: bytes) -> None:
    response = client.get(f"/api/images/{SEEDED_DATE}-0.png")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == png_bytes


def test_serve_missing_image(client: TestClient) -> None:
    assert client.get("/api/images/2020-01-01-0.png").status_code == 404


def test_serve_image_rejects_traversal(client: TestClient) -> None:
    assert client.get("/api/images/..secret.png").status_code == 400
