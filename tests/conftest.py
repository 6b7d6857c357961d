"""Shared fixtures and in-memory fakes for the external services."""

from __future__ import annotations

import json
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import httpx
import pytest
from PIL import Image

from rebus.config.settings import Settings
from rebus.db.session import create_engine, create_session_factory, init_db
from rebus.imggen.job_client import ImageJobClient
from rebus.services.repository import PuzzleRepository

PROMPT_ITEMS = [
    {"text": "a drawing of a clock with wings", "answer": "  Time Flies ", "hint": "It happens when you have fun."},
    {"text": "a slice of cake on a plate", "answer": "Piece of Cake", "hint": "Something very easy."},
    {"text": "an ice cube cracked in two", "answer": "break the ice", "hint": "Start a conversation."},
    {"text": "a house between two hearts", "answer": "Home Sweet Home", "hint": "Where you belong."},
    {"text": "a sun above a shining star", "answer": "sunshine", "hint": "A bright day."},
]


def make_reply(items: list[dict[str, Any]] | None = None) -> str:
    """Return a model reply that wraps the JSON array in prose and a code fence."""

    payload = json.dumps(PROMPT_ITEMS if items is None else items, indent=2)
    return f"Here are today's puzzles:\n```json\n{payload}\n```\nHave fun!"


class FakeCompletions:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls: list[dict[str, Any]] = []
        self.error: Exception | None = None

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeChatClient:
    """Stands in for ``AsyncOpenAI`` with just the calls the prompt source makes."""

    def __init__(self, content: str) -> None:
        self.completions = FakeCompletions(content)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeRenderService:
    """Scriptable prediction API served through ``httpx.MockTransport``."""

    def __init__(self, image_bytes: bytes) -> None:
        self.image_bytes = image_bytes
        self.requests: list[httpx.Request] = []
        self.submitted: list[dict[str, Any]] = []
        self.polls: dict[str, int] = {}
        self.scripts: dict[str, list[dict[str, Any]]] = {}
        self.version_requests = 0
        self.model_body: Any = {"latest_version": {"id": "v-123"}}
        self.poll_body: Any = None
        self.download_status = 200
        self.submit_status = 201

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == "cdn.test":
            if self.download_status != 200:
                return httpx.Response(self.download_status)
            return httpx.Response(200, content=self.image_bytes)

        if request.method == "GET" and path.startswith("/v1/models/"):
            self.version_requests += 1
            return httpx.Response(200, json=self.model_body)

        if request.method == "POST" and path == "/v1/predictions":
            if self.submit_status != 201:
                return httpx.Response(self.submit_status, text="upstream exploded")
            self.submitted.append(json.loads(request.content))
            job_id = f"job-{len(self.submitted) - 1}"
            return httpx.Response(201, json={"id": job_id, "status": "starting"})

        if request.method == "GET" and path.startswith("/v1/predictions/"):
            job_id = path.rsplit("/", 1)[1]
            self.polls[job_id] = self.polls.get(job_id, 0) + 1
            if self.poll_body is not None:
                return httpx.Response(200, json=self.poll_body)
            script = self.scripts.get(job_id)
            if not script:
                return httpx.Response(
                    200,
                    json={"id": job_id, "status": "succeeded", "output": f"https://cdn.test/{job_id}.png"},
                )
            step = script.pop(0) if len(script) > 1 else script[0]
            return httpx.Response(200, json={"id": job_id, **step})

        return httpx.Response(404)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'rebus.db'}",
        images_root=str(tmp_path / "images"),
        prompt_api_key="test-prompt",
        replicate_api_token="test-replicate",
        render_poll_interval=0.0,
        render_poll_max_attempts=3,
        scheduler_enabled=False,
    )


@pytest.fixture
def png_bytes() -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (8, 6), color="black").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def chat_client() -> FakeChatClient:
    return FakeChatClient(make_reply())


@pytest.fixture
def render_service(png_bytes: bytes) -> FakeRenderService:
    return FakeRenderService(png_bytes)


@pytest.fixture
async def image_client(settings: Settings, render_service: FakeRenderService):
    client = ImageJobClient(settings, transport=httpx.MockTransport(render_service.handler))
    yield client
    await client.close()


@pytest.fixture
async def repository(settings: Settings):
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield PuzzleRepository(create_session_factory(engine))
    await engine.dispose()
