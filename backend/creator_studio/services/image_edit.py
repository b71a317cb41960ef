"""Prompt-driven image edits against the gateway."""

from __future__ import annotations

import logging
from typing import Protocol

from creator_studio.errors import MissingInput
from creator_studio.media.assets import ImageAsset
from creator_studio.media.normalizer import SUPPORTED_OUTPUT_FORMATS, normalize
from creator_studio.session.editor_session import EditorSession

logger = logging.getLogger(__name__)


class ImageEditGateway(Protocol):
    def edit_image(self, image: bytes, mime_type: str, prompt: str) -> tuple[bytes, str]: ...


def apply_edit(
    session: EditorSession,
    gateway: ImageEditGateway,
    prompt: str,
    output_format: str = "image/png",
) -> ImageAsset:
    """Edit the session's original image and record the result.

    Edits always start from the original upload, not the latest result. The
    new image is converted to ``output_format``, appended to the history and
    written through to the store.
    """
    if session.original is None or not (prompt or "").strip():
        raise MissingInput("Please upload an image and provide an editing prompt.")
    if output_format not in SUPPORTED_OUTPUT_FORMATS:
        raise MissingInput(f"Unsupported output format: {output_format}")

    original = session.original
    data, mime_type = gateway.edit_image(original.raw_bytes, original.mime_type, prompt.strip())
    if mime_type != output_format:
        data = normalize(data, mime_type, output_format)
    result = ImageAsset(raw_bytes=data, mime_type=output_format)
    session.record_edit(result)
    logger.info("Recorded edit %d (%s, %d bytes)", len(session.history), output_format, len(data))
    return result
