"""
Video Provider - GeminiGen video jobs.

Submission returns a job uuid immediately; the job is then polled through the
history endpoint. Provider status codes: 1 = processing, 2 = completed, 3 = failed.
"""

import time

import httpx
from structlog import get_logger

from jovitools.config import settings
from jovitools.exceptions import GenerationProviderError, ValidationError
from jovitools.models.api import VideoJobState
from jovitools.models.domain import VideoJobStatus, VideoJobSubmission
from jovitools.observability.metrics import metrics

logger = get_logger(__name__)

PROVIDER_STATES = {
    1: VideoJobState.PROCESSING,
    2: VideoJobState.COMPLETED,
    3: VideoJobState.FAILED,
}

SUBMITTED_MESSAGE = "Vídeo sendo gerado! Aguarde..."

PROVIDER_MESSAGES = {
    429: "Rate limit exceeded. Please try again later.",
    402: "Insufficient credits. Please add credits to continue.",
}


def parse_state(raw_status: object) -> VideoJobState:
    """Provider status code to job state. Unknown codes are still processing."""
    try:
        code = int(raw_status)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return VideoJobState.PROCESSING
    return PROVIDER_STATES.get(code, VideoJobState.PROCESSING)


def parse_percentage(raw: object) -> int:
    """Progress as 0-100. Anything unparseable counts as no progress."""
    try:
        value = int(float(raw))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(0, min(100, value))


def status_message(status: VideoJobStatus) -> str:
    if status.state == VideoJobState.COMPLETED:
        return "Vídeo gerado com sucesso!"
    if status.state == VideoJobState.FAILED:
        return f"Erro: {status.error_message or 'Falha na geração do vídeo'}"
    return "Processando..."


class VideoGenerationProvider:
    """HTTP client for the video job API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.video_api_key
        self.base_url = (base_url or settings.video_api_base_url).rstrip("/")
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        return self._http_client

    def _require_key(self) -> None:
        if not self.api_key:
            logger.error("video_api_key_missing")
            raise GenerationProviderError("API key not configured")

    async def submit(self, prompt: str, aspect_ratio: str = "16:9") -> VideoJobSubmission:
        """
        Submit a generation job.

        Raises:
            ValidationError: Empty prompt
            GenerationProviderError: Provider failure (status_code 429/402/500)
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt is required")
        self._require_key()

        form = {
            "prompt": prompt,
            "model": settings.video_model,
            "resolution": settings.video_resolution,
            "aspect_ratio": aspect_ratio or "16:9",
        }
        start = time.perf_counter()
        try:
            response = await self.http_client.post(
                f"{self.base_url}/video-gen/veo",
                data=form,
                headers={"x-api-key": self.api_key},
            )
        except httpx.HTTPError as exc:
            logger.error("video_provider_unreachable", error=str(exc))
            metrics.record_generation("video", "error_500", time.perf_counter() - start)
            raise GenerationProviderError("Failed to generate video") from exc

        if response.status_code != 200:
            logger.error(
                "video_submit_failed", status=response.status_code, text=response.text[:500]
            )
            status_code = response.status_code if response.status_code in PROVIDER_MESSAGES else 500
            metrics.record_generation(
                "video", f"error_{status_code}", time.perf_counter() - start
            )
            raise GenerationProviderError(
                PROVIDER_MESSAGES.get(status_code, "Failed to generate video"),
                status_code=status_code,
            )

        data = _json_object(response) or {}
        job_id = data.get("uuid")
        if not job_id:
            metrics.record_generation("video", "error_500", time.perf_counter() - start)
            raise GenerationProviderError("Video provider returned no job id")

        metrics.record_generation("video", "submitted", time.perf_counter() - start)
        logger.info("video_job_submitted", job_id=job_id, aspect_ratio=aspect_ratio)
        return VideoJobSubmission(
            job_id=str(job_id),
            status=parse_state(data.get("status")),
            message=SUBMITTED_MESSAGE,
            estimated_credit=_as_float(data.get("estimated_credit")),
        )

    async def fetch_status(self, job_id: str) -> VideoJobStatus:
        """
        One status snapshot for a job.

        Raises:
            ValidationError: Empty job id
            GenerationProviderError: History endpoint failure
        """
        if not job_id:
            raise ValidationError("UUID is required")
        self._require_key()

        try:
            response = await self.http_client.get(
                f"{self.base_url}/history/{job_id}", headers={"x-api-key": self.api_key}
            )
        except httpx.HTTPError as exc:
            logger.warning("video_status_unreachable", job_id=job_id, error=str(exc))
            raise GenerationProviderError("Failed to check video status") from exc

        if response.status_code != 200:
            logger.error(
                "video_status_failed",
                job_id=job_id,
                status=response.status_code,
                text=response.text[:500],
            )
            raise GenerationProviderError("Failed to check video status")

        data = _json_object(response)
        if data is None:
            logger.error("video_status_invalid_body", job_id=job_id, text=response.text[:500])
            raise GenerationProviderError("Failed to check video status")
        return VideoJobStatus(
            job_id=str(data.get("uuid") or job_id),
            state=parse_state(data.get("status")),
            percentage=parse_percentage(data.get("status_percentage")),
            video_url=_as_text(data.get("output_url")) or _as_text(data.get("result_url")),
            error_message=_as_text(data.get("error_message")),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


def _json_object(response: httpx.Response) -> dict[str, object] | None:
    """Response body as a JSON object, or None when it is not one."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _as_text(value: object) -> str | None:
    return value if isinstance(value, str) and value else None


def _as_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float | str):
        return None
    try:
        return float(value)
    except ValueError:
        return None
