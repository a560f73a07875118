"""
Client for the external CAD-to-mesh conversion service.

Contract:
- POST /convert        multipart `file`, query options -> {job_id, status, ...}
- GET  /status/{id}    -> {job_id, status, error?}
- GET  /download/{id}  -> mesh bytes, filename in Content-Disposition
- GET  /health, GET /formats
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, Field

from fabquote.config import get_settings
from fabquote.integrations.http import build_outbound_headers, resolve_bearer

logger = logging.getLogger(__name__)

TERMINAL_JOB_STATUSES = {"completed", "failed"}
DEFAULT_MESH_FILENAME = "converted_mesh.glb"

_FILENAME_RE = re.compile(r"filename[^;=\n]*=((['\"]).*?\2|[^;\n]*)")


class ConversionServiceError(RuntimeError):
    """Transport or protocol failure talking to the conversion service."""


class ConversionTimeoutError(ConversionServiceError):
    def __init__(self, job_id: str, attempts: int, elapsed_s: float):
        super().__init__(
            f"Conversion timed out after {attempts} status checks ({elapsed_s:.1f}s) for job {job_id}"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.elapsed_s = elapsed_s


class ConversionOptions(BaseModel):
    output_format: str = "glb"
    deflection: float = 0.1
    angular_deflection: float = 0.5
    async_processing: bool = True

    def as_params(self) -> Dict[str, str]:
        return {
            "output_format": self.output_format,
            "deflection": str(self.deflection),
            "angular_deflection": str(self.angular_deflection),
            "async_processing": "true" if self.async_processing else "false",
        }


class ConversionJobStatus(BaseModel):
    job_id: str
    status: str
    message: Optional[str] = None
    output_file: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class DownloadedMesh(BaseModel):
    content: bytes
    filename: str = DEFAULT_MESH_FILENAME
    content_type: Optional[str] = None


class PollSettings(BaseModel):
    interval_s: float = Field(default=2.0, ge=0)
    max_attempts: int = Field(default=30, ge=1)
    budget_s: float = Field(default=120.0, gt=0)


def filename_from_disposition(header: Optional[str], default: str = DEFAULT_MESH_FILENAME) -> str:
    if not header:
        return default
    match = _FILENAME_RE.search(header)
    if not match or not match.group(1):
        return default
    name = match.group(1).replace('"', "").replace("'", "").strip()
    return name or default


class ConversionServiceClient:
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_s: Optional[float] = None,
        status_timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url if base_url is not None else settings.CONVERSION_API_URL).rstrip("/")
        self._token = token if token is not None else settings.CONVERSION_API_TOKEN
        self.timeout_s = timeout_s or settings.CONVERSION_API_TIMEOUT_SECONDS
        self.status_timeout_s = status_timeout_s or settings.CONVERSION_STATUS_TIMEOUT_SECONDS
        self._transport = transport
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict[str, str]:
        return build_outbound_headers(authorization=resolve_bearer(self._token)).as_dict()

    def _client(self, timeout_s: float) -> httpx.AsyncClient:
        if not self.configured:
            raise ConversionServiceError("Conversion service URL is not configured")
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout_s),
            transport=self._transport,
        )

    async def submit(
        self,
        *,
        content: bytes,
        filename: str,
        options: Optional[ConversionOptions] = None,
    ) -> ConversionJobStatus:
        options = options or ConversionOptions()
        try:
            async with self._client(self.timeout_s) as client:
                resp = await client.post(
                    "/convert",
                    params=options.as_params(),
                    files={"file": (filename, content, "application/octet-stream")},
                    headers=self._headers(),
                )
                resp.raise_for_status()
                job = ConversionJobStatus.model_validate(resp.json())
        except httpx.HTTPStatusError as exc:
            raise ConversionServiceError(
                f"Conversion service rejected submission: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConversionServiceError(f"Failed to submit conversion job: {exc}") from exc
        except ValueError as exc:
            raise ConversionServiceError(f"Invalid submit response: {exc}") from exc

        if not job.job_id:
            raise ConversionServiceError("Conversion service returned no job id")
        if job.status == "failed":
            raise ConversionServiceError(job.error or job.message or "Conversion submission failed")
        logger.info("Submitted conversion job %s for %s", job.job_id, filename)
        return job

    async def get_status(self, job_id: str, *, timeout_s: Optional[float] = None) -> ConversionJobStatus:
        try:
            async with self._client(timeout_s or self.status_timeout_s) as client:
                resp = await client.get(f"/status/{job_id}", headers=self._headers())
                resp.raise_for_status()
                return ConversionJobStatus.model_validate(resp.json())
        except httpx.HTTPStatusError as exc:
            raise ConversionServiceError(
                f"Failed to check status for job {job_id}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConversionServiceError(f"Failed to check status for job {job_id}: {exc}") from exc
        except ValueError as exc:
            raise ConversionServiceError(f"Invalid status response for job {job_id}: {exc}") from exc

    async def poll(self, job_id: str, poll: Optional[PollSettings] = None) -> ConversionJobStatus:
        """
        Poll until the job reaches a terminal status.

        Bounded by both max attempts and a wall-clock budget; exhaustion raises
        ConversionTimeoutError. Cancellation propagates from the sleep/HTTP await.
        """
        poll = poll or PollSettings()
        started = time.monotonic()
        deadline = started + poll.budget_s
        attempts = 0
        while attempts < poll.max_attempts:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            attempts += 1
            status = await self.get_status(
                job_id, timeout_s=min(self.status_timeout_s, remaining)
            )
            if status.is_terminal:
                return status
            if attempts >= poll.max_attempts:
                break
            if time.monotonic() + poll.interval_s >= deadline:
                break
            await self._sleep(poll.interval_s)

        elapsed = time.monotonic() - started
        logger.error("Conversion job %s timed out after %s attempts", job_id, attempts)
        raise ConversionTimeoutError(job_id, attempts, elapsed)

    async def download(self, job_id: str) -> DownloadedMesh:
        try:
            async with self._client(self.timeout_s) as client:
                resp = await client.get(f"/download/{job_id}", headers=self._headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ConversionServiceError(
                f"Failed to download result for job {job_id}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ConversionServiceError(f"Failed to download result for job {job_id}: {exc}") from exc

        return DownloadedMesh(
            content=resp.content,
            filename=filename_from_disposition(resp.headers.get("content-disposition")),
            content_type=resp.headers.get("content-type"),
        )

    async def health(self) -> Dict[str, Any]:
        try:
            async with self._client(self.status_timeout_s) as client:
                resp = await client.get("/health", headers=self._headers())
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            raise ConversionServiceError(f"Conversion service health check failed: {exc}") from exc
