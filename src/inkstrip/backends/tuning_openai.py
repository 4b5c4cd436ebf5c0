"""OpenAI-compatible multimodal tuning-suggestion source."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from inkstrip import logger
from inkstrip.exceptions import BackendError
from inkstrip.prompts import build_tuning_prompt

if TYPE_CHECKING:
    from inkstrip.settings import Settings


class OpenAITuningSource:
    """Asks a multimodal chat model for HSV thresholds matching a sample page."""

    def __init__(self, settings: Settings, *, aggressive_prompt: bool = False) -> None:
        """Initialize source.

        Args:
            settings (Settings): Runtime settings.
            aggressive_prompt (bool): Use the broader-coverage instruction.
        """
        self._settings = settings
        self._prompt = build_tuning_prompt(aggressive=aggressive_prompt)

    async def suggest(self, image_png_base64: str) -> str:
        """Return the model's raw text answer for one sample image.

        Args:
            image_png_base64 (str): Base64 PNG sample.

        Returns:
            str: Response text, empty when the model returned no content.
        """
        self._validate_endpoint_settings()
        data = await self._call_completion(self._build_payload(image_png_base64))
        text = _first_message_text(data)
        logger.debug("Tuning suggestion received", extra={"chars": len(text)})
        return text

    def _validate_endpoint_settings(self) -> None:
        """Validate endpoint settings required for tuning suggestions.

        Raises:
            BackendError: If endpoint configuration is incomplete.
        """
        if not self._settings.openai_base_url:
            raise BackendError(message="OPENAI_BASE_URL is required for tuning suggestions")
        if not self._settings.openai_api_key:
            raise BackendError(message="OPENAI_API_KEY is required for tuning suggestions")

    def _build_payload(self, image_png_base64: str) -> dict[str, object]:
        """Build the chat.completions payload with prompt and image content."""
        return {
            "model": self._settings.openai_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self._prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{image_png_base64}"},
                        },
                    ],
                },
            ],
        }

    async def _call_completion(self, payload: dict[str, object]) -> dict[str, Any]:
        """Execute chat.completions request and return raw payload.

        Args:
            payload (dict[str, object]): Completion payload.

        Raises:
            BackendError: If request fails.

        Returns:
            dict[str, Any]: Completion payload.
        """
        client = self._settings.select_async_httpx_client(self._settings.openai_base_url)
        if client is None:
            raise BackendError(message="httpx clients are not initialized in settings")
        openai_client = AsyncOpenAI(
            api_key=self._settings.openai_api_key,
            base_url=self._settings.openai_base_url,
            http_client=cast("Any", client),
        )
        try:
            completion = await openai_client.chat.completions.create(**cast("Any", payload))
            return completion.model_dump(mode="json")
        except APIStatusError as exc:
            status_code = getattr(exc, "status_code", None)
            raise BackendError(message=f"Tuning request failed with status {status_code}") from exc
        except APITimeoutError as exc:
            raise BackendError(message="Tuning request timed out") from exc
        except APIConnectionError as exc:
            raise BackendError(message=f"Tuning request failed: {exc}") from exc
        except Exception as exc:
            raise BackendError(message=f"Tuning request failed: {exc}") from exc


def _first_message_text(data: dict[str, Any]) -> str:
    """Return the first choice's message content, or an empty string."""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


def build_tuning_source(settings: Settings, *, aggressive_prompt: bool = False) -> OpenAITuningSource | None:
    """Return a tuning source when the service is configured, else None."""
    if not settings.tuning_service_configured:
        return None
    return OpenAITuningSource(settings, aggressive_prompt=aggressive_prompt)
