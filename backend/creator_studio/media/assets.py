"""Image assets, data URLs and locally materialized result handles."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import tempfile
import weakref
from dataclasses import dataclass
from typing import Any

from creator_studio.errors import DecodeError

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = "data:"
_BASE64_MARKER = ";base64,"


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"{_DATA_URL_PREFIX}{mime_type}{_BASE64_MARKER}{base64.b64encode(data).decode('ascii')}"


def parse_data_url(data_url: str) -> tuple[bytes, str]:
    """Split a base64 data URL into ``(bytes, mime_type)``."""
    if not isinstance(data_url, str) or not data_url.startswith(_DATA_URL_PREFIX):
        raise DecodeError("Not a data URL.")
    header, marker, payload = data_url[len(_DATA_URL_PREFIX) :].partition(_BASE64_MARKER)
    if not marker or not header:
        raise DecodeError("Only base64 data URLs with a mime type are supported.")
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Invalid base64 payload: {exc}") from exc
    return data, header


@dataclass(frozen=True)
class ImageAsset:
    """An immutable image. ``data_url`` is always derived from the bytes."""

    raw_bytes: bytes
    mime_type: str
    file_name: str | None = None

    @property
    def data_url(self) -> str:
        return to_data_url(self.raw_bytes, self.mime_type)

    @property
    def base64(self) -> str:
        return base64.b64encode(self.raw_bytes).decode("ascii")

    @classmethod
    def from_upload(cls, data: bytes, mime_type: str | None, file_name: str | None = None) -> "ImageAsset":
        if not data:
            raise DecodeError("Uploaded file is empty.")
        return cls(raw_bytes=bytes(data), mime_type=mime_type or "application/octet-stream", file_name=file_name)

    @classmethod
    def from_data_url(cls, data_url: str) -> "ImageAsset":
        data, mime_type = parse_data_url(data_url)
        return cls(raw_bytes=data, mime_type=mime_type)

    def to_record(self) -> dict[str, str]:
        """Serializable form stored under the ``originalImage`` key."""
        return {"base64": self.base64, "mimeType": self.mime_type, "dataURL": self.data_url}

    @classmethod
    def from_record(cls, record: Any) -> "ImageAsset":
        if not isinstance(record, dict):
            raise DecodeError("Image record must be an object.")
        mime_type = record.get("mimeType")
        payload = record.get("base64")
        if not isinstance(mime_type, str) or not isinstance(payload, str):
            raise DecodeError("Image record is missing base64 or mimeType.")
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError(f"Invalid base64 payload: {exc}") from exc
        asset = cls(raw_bytes=data, mime_type=mime_type)
        data_url = record.get("dataURL")
        if data_url is not None and data_url != asset.data_url:
            raise DecodeError("Image record dataURL does not match its bytes.")
        return asset


_SUFFIXES = {
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "image/png": ".png",
    "image/jpeg": ".jpg",
}


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


class AssetHandle:
    """Downloaded result bytes materialized as a local file for display.

    The handle owns the file until ``release()`` is called; it can also be
    used as a context manager. A handle that is dropped or still alive at
    interpreter exit removes its file through a finalizer.
    """

    def __init__(self, data: bytes, mime_type: str = "video/mp4", directory: str | None = None):
        fd, path = tempfile.mkstemp(prefix="creator_studio_", suffix=_SUFFIXES.get(mime_type, ".bin"), dir=directory)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        self.path = path
        self.mime_type = mime_type
        self.size = len(data)
        self._released = False
        self._finalizer = weakref.finalize(self, _remove_file, path)
        logger.debug("Materialized asset handle %s (%d bytes)", path, self.size)

    @property
    def released(self) -> bool:
        return self._released

    def read_bytes(self) -> bytes:
        if self._released:
            raise ValueError("Asset handle has been released.")
        with open(self.path, "rb") as handle:
            return handle.read()

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._finalizer()
        logger.debug("Released asset handle %s", self.path)

    def __enter__(self) -> "AssetHandle":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.release()


class AssetSlot:
    """Holds at most one live ``AssetHandle`` for a view."""

    def __init__(self) -> None:
        self._handle: AssetHandle | None = None

    @property
    def handle(self) -> AssetHandle | None:
        return self._handle

    def replace(self, handle: AssetHandle | None) -> None:
        previous = self._handle
        self._handle = None
        if previous is not None and previous is not handle:
            previous.release()
        self._handle = handle

    def release(self) -> None:
        self.replace(None)

    def __enter__(self) -> "AssetSlot":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.release()
