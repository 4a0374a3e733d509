import base64
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import requests
from django.conf import settings
from requests.exceptions import ConnectionError, HTTPError, RequestException, Timeout

from .exceptions import ImageGenerationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceImage:
    data: bytes
    mime_type: str


class GeminiImageClient:
    """
    Composite image generation through the Gemini ``generateContent`` REST API.

    The client is a black box to the pipeline: it takes reference images plus a
    prompt and returns raw image bytes, or raises ``ImageGenerationError``.
    """

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None,
                 model: Optional[str] = None, timeout: Optional[int] = None, session=None):
        self.api_key = api_key if api_key is not None else getattr(settings, "GEMINI_API_KEY", "")
        self.api_url = (api_url or getattr(settings, "GEMINI_API_URL", "")).rstrip("/")
        self.model = model or getattr(settings, "GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
        self.timeout = timeout or getattr(settings, "GEMINI_TIMEOUT_SECONDS", 120)
        self.session = session or requests

    def generate(self, reference_images: Sequence[ReferenceImage], prompt: str) -> bytes:
        """
        Generate one image from the references and the prompt.

        :param reference_images: images in prompt reference order
        :param prompt: final prompt text
        :return: raw bytes of the generated image
        :raises ImageGenerationError: on any transport, API or response error
        """
        if not self.api_key:
            raise ImageGenerationError("GEMINI_API_KEY is not configured")
        if not prompt or not prompt.strip():
            raise ImageGenerationError("Generation prompt cannot be empty")

        url = f"{self.api_url}/models/{self.model}:generateContent"
        payload = self._build_payload(reference_images, prompt)
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        logger.info(f"Sending generation request to {self.model} with {len(reference_images)} reference image(s)")

        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
            response.raise_for_status()

        except Timeout:
            error_msg = f"Request timed out after {self.timeout} seconds. The image service may be overloaded."
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        except ConnectionError:
            error_msg = "Failed to connect to the image generation API."
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        except HTTPError:
            error_msg = self._describe_http_error(response)
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        except RequestException as e:
            error_msg = f"Request failed due to network error: {str(e)}"
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        try:
            data = response.json()
        except ValueError:
            error_msg = "Invalid JSON response received from the image generation API"
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        if "error" in data:
            error = data.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else error
            error_msg = f"API returned error: {message or 'Unknown error'}"
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        return self._extract_image(data)

    @staticmethod
    def _build_payload(reference_images: Sequence[ReferenceImage], prompt: str) -> dict:
        parts: List[dict] = [
            {
                "inline_data": {
                    "mime_type": image.mime_type,
                    "data": base64.b64encode(image.data).decode("ascii"),
                }
            }
            for image in reference_images
        ]
        parts.append({"text": prompt})
        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["IMAGE"]},
        }

    @staticmethod
    def _describe_http_error(response) -> str:
        status = response.status_code
        if status == 401:
            return "Authentication failed. Please check your API key."
        if status == 403:
            return "Access forbidden. You may not have permission to use this model."
        if status == 404:
            return "Model not found. Please check the configured model name."
        if status == 429:
            return "Rate limit exceeded. Please try again in a moment."
        if 500 <= status < 600:
            return f"Server error ({status}). Please try again later."
        return f"HTTP error {status}: {response.text}"

    @staticmethod
    def _extract_image(data: dict) -> bytes:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise ImageGenerationError(f"Prompt was blocked: {feedback['blockReason']}")

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            error_msg = f"Unexpected response format from API: {str(e)}"
            logger.error(error_msg)
            raise ImageGenerationError(error_msg)

        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                try:
                    return base64.b64decode(inline["data"])
                except (ValueError, TypeError) as e:
                    raise ImageGenerationError(f"Image payload could not be decoded: {str(e)}")

        raise ImageGenerationError("No image was returned by the image generation API")
