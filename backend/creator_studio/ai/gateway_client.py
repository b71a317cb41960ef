"""Remote AI gateway: image edits, chat turns and video jobs over the OpenAI SDK."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Any, Type

import requests
from openai import AuthenticationError, OpenAI

from creator_studio.errors import (
    ChatError,
    DownloadFailed,
    GatewayError,
    InvalidCredential,
    ResultMissing,
)
from creator_studio.media.assets import ImageAsset

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-4.1-mini"
DEFAULT_IMAGE_MODEL = "gpt-image-1"
DEFAULT_VIDEO_MODEL = "sora-2"

ASPECT_RATIO_SIZES = {
    "16:9": "1280x720",
    "9:16": "720x1280",
}

# Provider messages that mean the key itself is unusable.
INVALID_CREDENTIAL_SIGNATURES = (
    "Requested entity was not found.",
    "Incorrect API key provided",
    "invalid_api_key",
)

_DONE_STATUSES = {"completed", "failed", "cancelled"}


@dataclass(frozen=True)
class JobHandle:
    """Opaque token for an in-flight generation job, refreshed on every poll."""

    id: str
    done: bool = False
    status: str = "queued"
    location: str | None = None
    error: str | None = None
    progress: int | None = None


def is_invalid_credential(exc: BaseException) -> bool:
    if isinstance(exc, (AuthenticationError, InvalidCredential)):
        return True
    text = str(exc)
    return any(signature in text for signature in INVALID_CREDENTIAL_SIGNATURES)


def classify_provider_error(exc: BaseException, fallback: Type[GatewayError] = GatewayError) -> GatewayError:
    """Map a raw provider exception onto the studio taxonomy."""
    if isinstance(exc, InvalidCredential):
        return exc
    if is_invalid_credential(exc):
        return InvalidCredential("API key not found or invalid. Please select a valid API key and try again.")
    if isinstance(exc, fallback):
        return exc
    return fallback(str(exc) or exc.__class__.__name__)


class GatewayClient:
    """Thin wrapper around one OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        chat_model: str | None = None,
        image_model: str | None = None,
        video_model: str | None = None,
        download_timeout: float = 120.0,
    ):
        self.api_key = self._clean(api_key)
        self.base_url = self._clean(base_url)
        self.chat_model = self._clean(chat_model) or DEFAULT_CHAT_MODEL
        self.image_model = self._clean(image_model) or DEFAULT_IMAGE_MODEL
        self.video_model = self._clean(video_model) or DEFAULT_VIDEO_MODEL
        self.download_timeout = download_timeout
        self._client: OpenAI | None = None

    @staticmethod
    def _clean(value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @property
    def has_credential(self) -> bool:
        return self.api_key is not None

    def require_credential(self) -> None:
        if not self.has_credential:
            raise InvalidCredential("OPENAI_API_KEY environment variable not set")

    @property
    def client(self) -> OpenAI:
        self.require_credential()
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def edit_image(self, image: bytes, mime_type: str, prompt: str) -> tuple[bytes, str]:
        """Return ``(bytes, mime_type)`` of the edited image."""
        try:
            logger.debug("Editing image with model %s", self.image_model)
            response = self.client.images.edit(
                model=self.image_model,
                image=(_file_name_for(mime_type, "image"), image, mime_type),
                prompt=prompt,
            )
        except Exception as exc:
            logger.error("Error editing image: %s", exc)
            error = classify_provider_error(exc)
            if type(error) is GatewayError:
                raise GatewayError(f"Failed to generate image: {error}") from exc
            raise error from exc

        for item in getattr(response, "data", None) or []:
            b64 = getattr(item, "b64_json", None)
            if b64:
                output_format = getattr(response, "output_format", None) or "png"
                return base64.b64decode(b64), f"image/{output_format}"
        raise GatewayError("No image found in the provider response.")

    def chat_turn(self, handle: str | None, text: str) -> tuple[str, str]:
        """Send one user turn. Returns ``(assistant_text, conversation_handle)``.

        The provider keeps the conversation; ``handle`` chains this turn onto
        the previous response and is ``None`` for the first turn.
        """
        params: dict[str, Any] = {"model": self.chat_model, "input": text}
        if handle:
            params["previous_response_id"] = handle
        try:
            response = self.client.responses.create(**params)
        except Exception as exc:
            logger.error("Error sending chat turn: %s", exc)
            error = classify_provider_error(exc, ChatError)
            if isinstance(error, ChatError):
                raise ChatError(f"Failed to get chat response: {error}") from exc
            raise error from exc
        return _extract_text(response), response.id

    def submit_video_job(
        self,
        prompt: str,
        aspect_ratio: str,
        starting_image: ImageAsset | None = None,
    ) -> JobHandle:
        params: dict[str, Any] = {
            "model": self.video_model,
            "prompt": prompt,
            "size": ASPECT_RATIO_SIZES[aspect_ratio],
        }
        if starting_image is not None:
            params["input_reference"] = (
                starting_image.file_name or _file_name_for(starting_image.mime_type, "start"),
                starting_image.raw_bytes,
                starting_image.mime_type,
            )
        logger.debug("Submitting video job with model %s (%s)", self.video_model, aspect_ratio)
        video = self.client.videos.create(**params)
        return self._to_handle(video)

    def poll_job(self, handle: JobHandle) -> JobHandle:
        video = self.client.videos.retrieve(handle.id)
        return self._to_handle(video)

    def fetch_asset(self, location: str) -> bytes:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        organization = getattr(self.client, "organization", None)
        if organization:
            headers["OpenAI-Organization"] = organization
        project = getattr(self.client, "project", None)
        if project:
            headers["OpenAI-Project"] = project
        response = requests.get(location, headers=headers, timeout=self.download_timeout)
        if not response.ok:
            raise DownloadFailed(response.status_code)
        return response.content

    def _to_handle(self, video: Any) -> JobHandle:
        status = str(getattr(video, "status", "") or "queued")
        video_id = getattr(video, "id", None)
        if not video_id:
            raise ResultMissing("Provider did not return a job id.")
        error = getattr(video, "error", None)
        error_message = None
        if error is not None:
            error_message = getattr(error, "message", None) or str(error)
        elif status in ("failed", "cancelled"):
            error_message = f"Video generation {status}."
        location = None
        if status == "completed":
            location = f"{self._api_root()}/videos/{video_id}/content"
        return JobHandle(
            id=video_id,
            done=status in _DONE_STATUSES,
            status=status,
            location=location,
            error=error_message,
            progress=getattr(video, "progress", None),
        )

    def _api_root(self) -> str:
        return str(self.client.base_url).rstrip("/")


def _file_name_for(mime_type: str, stem: str) -> str:
    extension = mime_type.split("/")[-1] if "/" in mime_type else "bin"
    if extension == "jpeg":
        extension = "jpg"
    return f"{stem}.{extension}"


def _extract_text(response: Any) -> str:
    """Pull the assistant text out of a Responses API payload."""
    output_text = getattr(response, "output_text", None)
    if output_text:
        return output_text

    parts: list[str] = []
    for item in getattr(response, "output", None) or []:
        if getattr(item, "type", None) == "message":
            for content in getattr(item, "content", None) or []:
                text = getattr(content, "text", None)
                if isinstance(text, str):
                    parts.append(text)
    return "".join(parts)
