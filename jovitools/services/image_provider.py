"""
Image Provider - two-step image generation through a chat-completions gateway.

Step 1: a text model rewrites the user's description into a detailed prompt.
Step 2: an image model renders the enhanced prompt.

Upstream 429 (rate limited) and 402 (gateway credits exhausted) are surfaced
with their status code; every other failure is a 500.
"""

import time

import httpx
from structlog import get_logger

from jovitools.config import settings
from jovitools.exceptions import GenerationProviderError, ValidationError
from jovitools.models.domain import GeneratedImage
from jovitools.observability.metrics import metrics

logger = get_logger(__name__)

PASSTHROUGH_STATUS_CODES = (429, 402)

ASPECT_RATIO_DESCRIPTIONS = {
    "1:1": "square format (1:1 aspect ratio)",
    "16:9": "widescreen landscape format (16:9 aspect ratio)",
    "9:16": "vertical portrait format (9:16 aspect ratio, ideal for mobile/stories)",
    "4:3": "standard landscape format (4:3 aspect ratio)",
    "3:4": "standard portrait format (3:4 aspect ratio)",
}

PROVIDER_MESSAGES = {
    429: "Limite de requisições excedido. Tente novamente mais tarde.",
    402: "Créditos insuficientes. Adicione créditos à sua conta.",
}

SYSTEM_PROMPT = """You are the JoviTools Image Creation Agent, an expert in generating \
highly visual, commercial, and professional images focused on quality, clarity, and \
market appeal.

Your role is to create detailed, objective, and optimized prompts for AI image \
generation, following these guidelines:

Main Guidelines:
- Produce images with clean, modern, and commercial aesthetics
- Prioritize balanced composition, realistic or stylized lighting according to the theme
- Ensure high resolution, sharpness, and absence of artifacts
- Avoid illegible text, registered trademarks, or protected elements
- Adapt the style according to the objective (realistic, illustration, vector, cartoon, \
3D, motion, abstract, paper cut, etc.)

Always clearly define:
- Visual style
- Color palette
- Type of lighting
- Framing and perspective
- Emotion or message conveyed
- Commercial context (advertising, technology, education, business, seasonal, social \
media, stock images)

When applicable, include:
- Clean or contextual background
- Negative space for advertising use
- Composition designed for Adobe Stock and digital media

Output format:
- Clear, well-structured prompts ready for use
- Written in English with technical and descriptive language
- Always focused on generating unique, sellable, and professional images

Your ultimate goal is to maximize acceptance in image banks and visual impact for \
brands, always representing the JoviTools identity as synonymous with quality, \
innovation, and efficiency.

Based on the user's description, create an enhanced, detailed image generation prompt. \
Only output the enhanced prompt, nothing else."""


def describe_aspect_ratio(aspect_ratio: str) -> str:
    return ASPECT_RATIO_DESCRIPTIONS.get(aspect_ratio, "square format")


class ImageGenerationProvider:
    """Chat-completions gateway client for prompt enhancement and image rendering."""

    def __init__(
        self,
        api_key: str | None = None,
        gateway_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.image_gateway_api_key
        self.gateway_url = gateway_url or settings.image_gateway_url
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        return self._http_client

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def generate(self, prompt: str, aspect_ratio: str = "1:1") -> GeneratedImage:
        """
        Enhance the prompt, then render it.

        Raises:
            ValidationError: Empty prompt
            GenerationProviderError: Gateway failure (status_code 429/402/500)
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt é obrigatório")
        if not self.api_key:
            raise GenerationProviderError("Image gateway API key is not configured")

        start = time.perf_counter()
        try:
            enhanced_prompt = await self._enhance_prompt(prompt, aspect_ratio)
            image = await self._render(enhanced_prompt)
        except GenerationProviderError as exc:
            metrics.record_generation(
                "image", f"error_{exc.status_code}", time.perf_counter() - start
            )
            raise

        metrics.record_generation("image", "success", time.perf_counter() - start)
        logger.info("image_generated", aspect_ratio=aspect_ratio)
        return image

    async def _enhance_prompt(self, prompt: str, aspect_ratio: str) -> str:
        """Rewrite the description with the JoviTools agent; falls back to the raw prompt."""
        body = {
            "model": settings.prompt_enhancer_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f'Create an enhanced image generation prompt for: "{prompt}". '
                        f"The image should be in {describe_aspect_ratio(aspect_ratio)}. "
                        "Make it professional, detailed, and optimized for commercial use."
                    ),
                },
            ],
        }
        response = await self._post(body)
        if response.status_code != 200:
            logger.error("prompt_enhancement_failed", status=response.status_code)
            raise GenerationProviderError("Erro ao processar prompt")

        content = _first_message(_json_body(response, "Erro ao processar prompt")).get("content")
        return content if isinstance(content, str) and content.strip() else prompt

    async def _render(self, enhanced_prompt: str) -> GeneratedImage:
        body = {
            "model": settings.image_model,
            "messages": [{"role": "user", "content": enhanced_prompt}],
            "modalities": ["image", "text"],
        }
        response = await self._post(body)
        if response.status_code in PASSTHROUGH_STATUS_CODES:
            logger.warning("image_gateway_refused", status=response.status_code)
            raise GenerationProviderError(
                PROVIDER_MESSAGES[response.status_code], status_code=response.status_code
            )
        if response.status_code != 200:
            logger.error(
                "image_gateway_error", status=response.status_code, text=response.text[:500]
            )
            raise GenerationProviderError("Erro ao gerar imagem")

        message = _first_message(_json_body(response, "Erro ao gerar imagem"))
        image_url = _first_image_url(message)
        if not image_url:
            raise GenerationProviderError("Não foi possível gerar a imagem. Tente novamente.")

        content = message.get("content")
        return GeneratedImage(
            image_url=image_url,
            message=content if isinstance(content, str) else "",
            enhanced_prompt=enhanced_prompt,
        )

    async def _post(self, body: dict[str, object]) -> httpx.Response:
        try:
            return await self.http_client.post(self.gateway_url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            logger.error("image_gateway_unreachable", error=str(exc))
            raise GenerationProviderError("Erro ao gerar imagem") from exc

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()


def _json_body(response: httpx.Response, error_message: str) -> object:
    try:
        return response.json()
    except ValueError as exc:
        logger.error("image_gateway_invalid_body", text=response.text[:500])
        raise GenerationProviderError(error_message) from exc


def _first_message(payload: object) -> dict[str, object]:
    """choices[0].message from a chat-completions response, or {}."""
    if not isinstance(payload, dict):
        return {}
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return {}
    message = choices[0].get("message")
    return message if isinstance(message, dict) else {}


def _first_image_url(message: dict[str, object]) -> str | None:
    """images[0].image_url.url, or None when any level is missing or malformed."""
    images = message.get("images")
    if not isinstance(images, list) or not images or not isinstance(images[0], dict):
        return None
    image_url = images[0].get("image_url")
    url = image_url.get("url") if isinstance(image_url, dict) else None
    return url if isinstance(url, str) and url else None
