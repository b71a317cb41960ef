"""Error taxonomy shared by the studio services and the Streamlit layer."""

from __future__ import annotations


class StudioError(Exception):
    """Base class for every error the studio raises on purpose."""


class MissingInput(StudioError):
    """Local validation failed before anything reached the gateway."""


class GatewayError(StudioError):
    """The provider rejected or failed an edit, chat or job call."""


class InvalidCredential(GatewayError):
    """The provider reported a missing or invalid API key."""


class GenerationFailed(GatewayError):
    """A video generation job failed on the provider side."""


class ChatError(GatewayError):
    """A chat turn could not be completed."""


class ResultMissing(StudioError):
    """The job finished but carried no usable asset reference."""


class DownloadFailed(StudioError):
    def __init__(self, status: int, message: str | None = None):
        self.status = status
        super().__init__(message or f"Failed to download the generated asset. Status: {status}")


class DecodeError(StudioError):
    """Bytes could not be interpreted as an image."""


class StorageCorrupt(StudioError):
    """Persisted session state could not be read back."""


class JobCancelled(StudioError):
    """The caller cancelled a job between polls."""


class JobTimeout(StudioError):
    """A job did not finish within the configured ceiling."""
