"""OpenRouter client for text, image and vision model calls."""

import logging
from typing import Optional, Protocol

import httpx

from models.generation import ImageGenerationOutput

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

# Image generation can take a while
DEFAULT_TIMEOUT = 120.0
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 4000


class OpenRouterError(Exception):
    """Transport or HTTP error from the OpenRouter API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelProvider(Protocol):
    """Remote model operations the generation pipeline depends on."""

    async def generate_text(self, model: str, prompt: str) -> str: ...

    async def generate_image(
        self, model: str, prompt: str, negative_prompt: Optional[str] = None
    ) -> ImageGenerationOutput: ...

    async def analyze_image(self, model: str, prompt: str, image_data: str) -> str: ...


class OpenRouterClient:
    """Client for the OpenRouter chat completions API.

    Text and vision calls raise ``OpenRouterError`` on failure. Image calls
    never raise for provider-side problems; they return an
    ``ImageGenerationOutput`` with ``success=False`` instead.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        site_url: str = "http://localhost:3000",
        site_name: str = "Dream Weaver AI",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            api_key: OpenRouter API key used as a bearer token
            base_url: API base URL
            site_url: Attribution URL sent as HTTP-Referer
            site_name: Attribution name sent as X-Title
            http_client: Optional pre-built client (tests pass one with a mock transport)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": site_url,
            "X-Title": site_name,
        }
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def _chat(self, payload: dict) -> dict:
        """POST a chat completion request and return the decoded body.

        Raises:
            OpenRouterError: On transport errors, non-2xx responses or a non-JSON body
        """
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions", json=payload, headers=self.headers
            )
        except httpx.HTTPError as e:
            raise OpenRouterError(f"Request to OpenRouter failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise OpenRouterError(
                f"Invalid response from OpenRouter (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from e

        if response.status_code >= 400:
            message = _error_message(body) or f"HTTP {response.status_code}"
            raise OpenRouterError(message, status_code=response.status_code)

        return body

    async def generate_text(
        self, model: str, prompt: str, temperature: float = DEFAULT_TEMPERATURE
    ) -> str:
        """Generate text with a chat model.

        Args:
            model: OpenRouter model id
            prompt: User prompt
            temperature: Sampling temperature

        Returns:
            The first choice's message content, or "" if the model returned none
        """
        body = await self._chat(
            {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
                "max_tokens": DEFAULT_MAX_TOKENS,
            }
        )
        return _first_message(body).get("content") or ""

    async def generate_image(
        self, model: str, prompt: str, negative_prompt: Optional[str] = None
    ) -> ImageGenerationOutput:
        """Generate one image.

        Args:
            model: OpenRouter image model id
            prompt: Image prompt
            negative_prompt: Things to avoid, appended to the prompt

        Returns:
            ImageGenerationOutput with a base64 data URL on success
        """
        full_prompt = prompt
        if negative_prompt:
            full_prompt = f"{prompt}\n\nAvoid: {negative_prompt}"

        try:
            body = await self._chat(
                {
                    "model": model,
                    "messages": [{"role": "user", "content": full_prompt}],
                    "modalities": ["image", "text"],
                }
            )
        except OpenRouterError as e:
            logger.warning(f"Image generation request failed: {e}")
            return ImageGenerationOutput(success=False, error=str(e) or "Image generation failed")

        images = _first_message(body).get("images") or []
        if images:
            url = (images[0].get("image_url") or {}).get("url")
            if url:
                return ImageGenerationOutput(success=True, image_data=url)

        return ImageGenerationOutput(success=False, error="No image in response")

    async def analyze_image(self, model: str, prompt: str, image_data: str) -> str:
        """Ask a vision model about an image.

        Args:
            model: OpenRouter vision model id
            prompt: Question or rubric for the image
            image_data: Data URL or http(s) URL of the image

        Returns:
            The model's text answer
        """
        body = await self._chat(
            {
                "model": model,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image_data}},
                        ],
                    }
                ],
                "temperature": DEFAULT_TEMPERATURE,
            }
        )
        return _first_message(body).get("content") or ""

    async def list_models(self) -> list[dict]:
        """Fetch the public model catalog.

        Raises:
            OpenRouterError: If the catalog cannot be fetched
        """
        try:
            response = await self.client.get(f"{self.base_url}/models")
        except httpx.HTTPError as e:
            raise OpenRouterError(f"Request to OpenRouter failed: {e}") from e

        if response.status_code >= 400:
            raise OpenRouterError(
                f"OpenRouter API error: {response.status_code}",
                status_code=response.status_code,
            )

        data = response.json().get("data") or []
        logger.debug(f"Fetched {len(data)} models from OpenRouter")
        return data


def _first_message(body: dict) -> dict:
    choices = body.get("choices") or []
    if not choices:
        return {}
    return choices[0].get("message") or {}


def _error_message(body) -> Optional[str]:
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return error
    return None
