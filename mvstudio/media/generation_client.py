"""
Media Generation Client

One generation attempt against one Gemini image model over the
`generateContent` REST endpoint. Every failure is classified and returned
as a GenerationOutcome; this client never retries and never raises on
provider errors.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional, Sequence

import httpx

from mvstudio.core.constants import (
    DEFAULT_ASPECT_RATIO,
    GEMINI_BASE_URL,
    HARM_CATEGORIES,
    PERMISSIVE_THRESHOLD,
)
from mvstudio.core.exceptions import MissingConfigError
from mvstudio.core.logging_config import get_logger
from mvstudio.media.error_classifier import (
    ErrorCategory,
    classify_error,
    classify_response,
    describe_failure,
)
from mvstudio.media.image_preprocessor import normalize_mime_type
from mvstudio.media.types import GenerationOutcome, ImagePayload

logger = get_logger("media.generation_client")


class MediaGenerationClient:
    """
    Async client for Gemini image generation.

    Usage:
        client = MediaGenerationClient(api_key)
        outcome = await client.generate(
            "gemini-2.5-flash-image", instruction, [sheet], image_size="2K"
        )
        if outcome.success:
            save(outcome.image)
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = GEMINI_BASE_URL,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            api_key: Gemini API key
            base_url: Models endpoint root
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)

        Raises:
            MissingConfigError: If no API key is given
        """
        if not api_key:
            raise MissingConfigError(
                "Gemini API key is not configured. Set geminiApiKey in config/settings.json "
                "or the GEMINI_API_KEY environment variable."
            )
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def endpoint(self, model: str) -> str:
        return f"{self.base_url}/{model}:generateContent"

    async def generate(
        self,
        model: str,
        instruction: str,
        images: Sequence[ImagePayload] = (),
        *,
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        image_size: Optional[str] = None
    ) -> GenerationOutcome:
        """
        Make exactly one generation attempt.

        Args:
            model: Provider model id
            instruction: Instruction text, sent as the first part
            images: Image parts, sent after the text in order
            aspect_ratio: Requested aspect ratio
            image_size: Requested size tier ("1K", "2K", "4K")

        Returns:
            GenerationOutcome with the image or a classified failure
        """
        body = self.build_request_body(instruction, images, aspect_ratio, image_size)
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

        logger.debug(f"{model}: sending {len(images)} image(s), size={image_size}, aspect={aspect_ratio}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint(model), json=body, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_detail(e.response)
            category = classify_error(detail, status_code=e.response.status_code)
            logger.warning(f"{model}: HTTP {e.response.status_code} classified as {category.value}")
            return GenerationOutcome.failed(model, category, describe_failure(category, detail))
        except (httpx.HTTPError, ValueError) as e:
            category = classify_error(e)
            detail = str(e) or type(e).__name__
            logger.warning(f"{model}: {type(e).__name__} classified as {category.value}: {detail}")
            return GenerationOutcome.failed(model, category, describe_failure(category, detail))

        return self.parse_response(model, payload)

    @staticmethod
    def build_request_body(
        instruction: str,
        images: Sequence[ImagePayload],
        aspect_ratio: str = DEFAULT_ASPECT_RATIO,
        image_size: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build the generateContent request body."""
        parts: List[Dict[str, Any]] = [{"text": instruction}]
        for image in images:
            parts.append({
                "inline_data": {
                    "mime_type": image.mime_type,
                    "data": image.to_base64(),
                }
            })

        image_config = {"aspectRatio": aspect_ratio}
        if image_size:
            image_config["imageSize"] = image_size

        return {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "responseModalities": ["TEXT", "IMAGE"],
                "imageConfig": image_config,
            },
            "safetySettings": [
                {"category": category, "threshold": PERMISSIVE_THRESHOLD}
                for category in HARM_CATEGORIES
            ],
        }

    @staticmethod
    def parse_response(model: str, payload: Any) -> GenerationOutcome:
        """
        Extract the generated image from a response body.

        When several image parts are present the last one wins.
        """
        if not isinstance(payload, dict):
            return GenerationOutcome.failed(
                model, ErrorCategory.NO_OUTPUT, describe_failure(ErrorCategory.NO_OUTPUT, "unreadable response")
            )

        image: Optional[ImagePayload] = None
        finish_reasons: List[str] = []
        text_parts: List[str] = []

        for candidate in payload.get("candidates") or []:
            if not isinstance(candidate, dict):
                continue
            if candidate.get("finishReason"):
                finish_reasons.append(str(candidate["finishReason"]))
            for part in (candidate.get("content") or {}).get("parts") or []:
                decoded = _decode_image_part(part)
                if decoded is not None:
                    image = decoded
                elif isinstance(part, dict) and part.get("text"):
                    text_parts.append(str(part["text"]))

        feedback = payload.get("promptFeedback") or {}
        block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None

        category = classify_response(image is not None, block_reason, finish_reasons)
        if category is None:
            logger.info(f"{model}: received image ({image.size} bytes)")
            return GenerationOutcome.succeeded(model, image)

        if block_reason:
            detail = f"blockReason={block_reason}"
        elif finish_reasons:
            detail = f"finishReason={', '.join(finish_reasons)}"
        else:
            detail = " ".join(text_parts)[:200]
        logger.warning(f"{model}: no image in response ({category.value}) {detail}")
        return GenerationOutcome.failed(model, category, describe_failure(category, detail))


def _decode_image_part(part: Any) -> Optional[ImagePayload]:
    if not isinstance(part, dict):
        return None
    inline = part.get("inlineData") or part.get("inline_data")
    if not isinstance(inline, dict) or not inline.get("data"):
        return None
    try:
        data = base64.b64decode(inline["data"])
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Skipping undecodable image part: {e}")
        return None
    mime_type = inline.get("mimeType") or inline.get("mime_type") or ""
    return ImagePayload(data=data, mime_type=normalize_mime_type(mime_type))


def _error_detail(response: httpx.Response) -> str:
    """Summarize a provider error body as 'STATUS: message'."""
    try:
        error = response.json().get("error", {})
    except (ValueError, AttributeError):
        return f"HTTP {response.status_code}: {response.text[:300]}"
    if not isinstance(error, dict):
        return f"HTTP {response.status_code}: {error}"
    status = error.get("status", "")
    message = error.get("message", "")
    return f"HTTP {response.status_code} {status}: {message}".strip()
