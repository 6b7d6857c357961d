"""Async client for the prediction-style image rendering API."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping

import httpx
from pydantic import TypeAdapter, ValidationError

from rebus.config.settings import Settings
from rebus.errors import (
    DownloadError,
    OutputShapeError,
    RenderCanceledError,
    RenderError,
    RenderTimeoutError,
    TransportError,
)
from rebus.imggen.prompt_builder import build_render_prompt
from rebus.metrics.prometheus_exporter import render_jobs_total

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Statuses reported by the rendering service."""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class GenerationJob:
    """In-flight render request tracked until it reaches a terminal status."""

    job_id: str
    status: str = JobStatus.STARTING.value
    result_locator: str | None = None


# Order matters: the service returns different shapes depending on model version.
_OUTPUT_DECODERS: tuple[TypeAdapter[Any], ...] = (
    TypeAdapter(str),
    TypeAdapter(list[str]),
    TypeAdapter(list[Any]),
)


def extract_result_locator(output: Any) -> str:
    """Return the first usable URL from a job's polymorphic ``output`` field."""

    for decoder in _OUTPUT_DECODERS:
        try:
            decoded = decoder.validate_python(output, strict=True)
        except ValidationError:
            continue
        if isinstance(decoded, str) and decoded:
            return decoded
        if isinstance(decoded, list) and decoded and isinstance(decoded[0], str) and decoded[0]:
            return decoded[0]
    raise OutputShapeError(f"Could not extract image URL from output: {output!r}")


class ImageJobClient:
    """Submits render jobs, polls them to completion and downloads the result."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not settings.replicate_api_token:
            raise RuntimeError("Rendering service API token is not configured.")

        self._settings = settings
        self._base_url = settings.replicate_base_url.rstrip("/")
        self._auth_headers = {"Authorization": f"Bearer {settings.replicate_api_token}"}
        # Credentials are attached per request so downloads never carry them.
        self._client = httpx.AsyncClient(timeout=settings.request_timeout, transport=transport)
        self._sleep = sleep
        self._model_version: str | None = None
        self._version_lock = asyncio.Lock()

    async def close(self) -> None:
        """Close the underlying HTTP client."""

        await self._client.aclose()

    async def render_image(self, prompt_text: str) -> bytes:
        """Render ``prompt_text`` and return the raw image bytes."""

        job = await self.submit(build_render_prompt(prompt_text))
        locator = await self.wait_for_result(job)
        return await self.download(locator)

    async def submit(self, prompt: str) -> GenerationJob:
        """Create a prediction and return the job handle."""

        version = await self.model_version()
        payload = {
            "version": version,
            "input": {
                "prompt": prompt,
                "width": self._settings.image_width,
                "height": self._settings.image_height,
            },
        }
        body = await self._request_json("POST", "/predictions", json_body=payload)
        job_id = body.get("id")
        if not job_id:
            raise TransportError("Rendering service did not return a job id.")
        job = GenerationJob(job_id=str(job_id), status=str(body.get("status") or JobStatus.STARTING.value))
        logger.info("Submitted render job %s", job.job_id)
        return job

    async def wait_for_result(self, job: GenerationJob) -> str:
        """Poll ``job`` until it reaches a terminal status and return its locator."""

        max_attempts = self._settings.render_poll_max_attempts
        for attempt in range(1, max_attempts + 1):
            body = await self._request_json("GET", f"/predictions/{job.job_id}")
            job.status = str(body.get("status") or "")

            if job.status == JobStatus.SUCCEEDED.value:
                render_jobs_total.labels(status="succeeded").inc()
                job.result_locator = extract_result_locator(body.get("output"))
                logger.info("Render job %s succeeded after %d polls", job.job_id, attempt)
                return job.result_locator
            if job.status == JobStatus.FAILED.value:
                render_jobs_total.labels(status="failed").inc()
                raise RenderError(f"Render job {job.job_id} failed: {body.get('error') or 'unknown error'}")
            if job.status == JobStatus.CANCELED.value:
                render_jobs_total.labels(status="canceled").inc()
                raise RenderCanceledError(f"Render job {job.job_id} was canceled.")

            logger.debug("Render job %s is %s (poll %d/%d)", job.job_id, job.status, attempt, max_attempts)
            if attempt < max_attempts:
                await self._sleep(self._settings.render_poll_interval)

        render_jobs_total.labels(status="timeout").inc()
        raise RenderTimeoutError(f"Render job {job.job_id} timed out after {max_attempts} attempts.")

    async def download(self, url: str) -> bytes:
        """Fetch the rendered image bytes."""

        logger.info("Downloading rendered image from %s", url)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download image: {exc}") from exc
        if not response.is_success:
            raise DownloadError(
                f"Failed to download image: status {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    async def model_version(self) -> str:
        """Return the model's latest version id, fetching it once per process."""

        if self._model_version is not None:
            return self._model_version
        async with self._version_lock:
            if self._model_version is None:
                body = await self._request_json("GET", f"/models/{self._settings.replicate_model}")
                latest = body.get("latest_version")
                version = latest.get("id") if isinstance(latest, dict) else None
                if not isinstance(version, str) or not version:
                    raise RenderError(f"No latest version found for model {self._settings.replicate_model}.")
                logger.info("Resolved %s to version %s", self._settings.replicate_model, version)
                self._model_version = version
        return self._model_version

    async def _request_json(
        self,
        method: str,
        endpoint: str,
        *,
        json_body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{endpoint}",
                json=json_body,
                headers=self._auth_headers,
            )
            response.raise_for_status()
            body = response.json() if response.content else {}
        except httpx.TimeoutException as exc:
            raise TransportError("Timed out waiting for the rendering service.") from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Rendering service returned {exc.response.status_code}: {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Rendering service request failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Rendering service returned invalid JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise TransportError(
                f"Rendering service returned a non-object body: {type(body).__name__}",
                status_code=response.status_code,
            )
        return body
