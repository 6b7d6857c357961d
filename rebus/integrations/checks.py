"""Connectivity checks for the services a batch depends on."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from sqlalchemy import text
from sqlalchemy.engine import make_url

from rebus.config.settings import get_settings
from rebus.db.session import create_engine
from rebus.imggen.job_client import ImageJobClient
from rebus.nlp.prompt_source import PromptSource


@dataclass(slots=True)
class IntegrationCheckResult:
    """Outcome of one check, printed by ``scripts/check_integrations.py``."""

    name: str
    success: bool
    message: str


async def _run_check(name: str, probe: Callable[[], Awaitable[str | None]]) -> IntegrationCheckResult:
    """Run ``probe``; a returned string is the success message, ``None`` a refusal."""

    try:
        detail = await probe()
    except Exception as exc:  # noqa: BLE001
        return IntegrationCheckResult(name=name, success=False, message=f"{type(exc).__name__}: {exc}")

    if detail is None:
        return IntegrationCheckResult(name=name, success=False, message="Service responded with non-success status.")
    return IntegrationCheckResult(name=name, success=True, message=detail)


async def check_prompt_service() -> IntegrationCheckResult:
    """List models on the prompt service and report the model batches will use."""

    settings = get_settings()

    async def _probe() -> str | None:
        client = PromptSource(settings)
        try:
            if not await client.ping():
                return None
        finally:
            await client.close()
        return f"Reachable; prompts are requested from {settings.prompt_model}."

    return await _run_check("Prompt service", _probe)


async def check_render_service() -> IntegrationCheckResult:
    """Resolve the configured render model to the version new jobs are submitted with."""

    settings = get_settings()

    async def _probe() -> str | None:
        client = ImageJobClient(settings)
        try:
            version = await client.model_version()
        finally:
            await client.close()
        return f"{settings.replicate_model} resolves to version {version}."

    return await _run_check("Rendering service", _probe)


async def check_database() -> IntegrationCheckResult:
    """Open a connection to the puzzle database."""

    settings = get_settings()

    async def _probe() -> str | None:
        engine = create_engine(settings.database_url)
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        finally:
            await engine.dispose()
        url = make_url(settings.database_url).render_as_string(hide_password=True)
        return f"Connected to {url}."

    return await _run_check("Database", _probe)


async def run_all_checks() -> list[IntegrationCheckResult]:
    """Execute all integration checks concurrently."""

    return list(await asyncio.gather(check_prompt_service(), check_render_service(), check_database()))
