"""Video generation: submit a job, poll it to completion, fetch the result."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

from creator_studio.ai.gateway_client import JobHandle, classify_provider_error
from creator_studio.errors import (
    DownloadFailed,
    GenerationFailed,
    InvalidCredential,
    JobCancelled,
    JobTimeout,
    MissingInput,
    ResultMissing,
    StudioError,
)
from creator_studio.media.assets import AssetHandle, AssetSlot, ImageAsset

logger = logging.getLogger(__name__)

ASPECT_RATIOS = ("16:9", "9:16")
DEFAULT_POLL_INTERVAL_SECONDS = 10.0

# Raised by the poller itself and passed through without reclassification.
_LOCAL_ERRORS = (MissingInput, ResultMissing, DownloadFailed, JobCancelled, JobTimeout)


class VideoGateway(Protocol):
    def submit_video_job(
        self, prompt: str, aspect_ratio: str, starting_image: ImageAsset | None = None
    ) -> JobHandle: ...

    def poll_job(self, handle: JobHandle) -> JobHandle: ...

    def fetch_asset(self, location: str) -> bytes: ...


@dataclass
class CredentialState:
    """Whether the user has supplied a key the video path may use."""

    selected: bool = False


@dataclass
class VideoJob:
    prompt: str
    aspect_ratio: str
    starting_image: ImageAsset | None = None
    status: str = "submitted"  # submitted, polling, done, failed, cancelled
    result: AssetHandle | None = None
    error: str | None = None


class JobPoller:
    """Runs one generation job to a terminal state.

    Polls on a fixed interval. ``timeout`` (seconds, ``None`` for no ceiling)
    and the optional cancel token are only checked between polls. A failed
    job is never retried.
    """

    def __init__(
        self,
        gateway: VideoGateway,
        credentials: CredentialState | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.credentials = credentials if credentials is not None else CredentialState(selected=True)
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def run(
        self,
        prompt: str,
        aspect_ratio: str,
        starting_image: ImageAsset | None = None,
        cancel_token: threading.Event | None = None,
        on_status: Callable[[JobHandle], None] | None = None,
    ) -> bytes:
        if not (prompt or "").strip():
            raise MissingInput("Please provide a prompt for the video.")
        if aspect_ratio not in ASPECT_RATIOS:
            raise MissingInput(f"Unsupported aspect ratio: {aspect_ratio}")
        if not self.credentials.selected:
            raise InvalidCredential("Please select an API key before generating a video.")

        try:
            return self._run(prompt.strip(), aspect_ratio, starting_image, cancel_token, on_status)
        except _LOCAL_ERRORS:
            raise
        except Exception as exc:
            error = classify_provider_error(exc, GenerationFailed)
            if isinstance(error, InvalidCredential):
                self.credentials.selected = False
            logger.error("Error generating video: %s", exc)
            if error is exc:
                raise
            raise error from exc

    def _run(
        self,
        prompt: str,
        aspect_ratio: str,
        starting_image: ImageAsset | None,
        cancel_token: threading.Event | None,
        on_status: Callable[[JobHandle], None] | None,
    ) -> bytes:
        deadline = None if not self.timeout else self._clock() + self.timeout
        handle = self.gateway.submit_video_job(prompt, aspect_ratio, starting_image)
        logger.info("Submitted video job %s", handle.id)

        while not handle.done:
            if on_status is not None:
                on_status(handle)
            self._check_interrupt(handle, cancel_token, deadline)
            self._sleep(self.poll_interval)
            self._check_interrupt(handle, cancel_token, deadline)
            handle = self.gateway.poll_job(handle)
            logger.debug("Video job %s status: %s", handle.id, handle.status)

        if on_status is not None:
            on_status(handle)
        if handle.error:
            raise GenerationFailed(handle.error)
        if not handle.location:
            raise ResultMissing("Video generation succeeded but no download link was found.")

        data = self.gateway.fetch_asset(handle.location)
        logger.info("Video job %s finished (%d bytes)", handle.id, len(data))
        return data

    def _check_interrupt(
        self, handle: JobHandle, cancel_token: threading.Event | None, deadline: float | None
    ) -> None:
        if cancel_token is not None and cancel_token.is_set():
            logger.info("Video job %s cancelled", handle.id)
            raise JobCancelled(f"Video job {handle.id} was cancelled.")
        if deadline is not None and self._clock() >= deadline:
            raise JobTimeout(f"Video job {handle.id} did not finish within {self.timeout:g} seconds.")


class VideoJobRunner:
    """Owns the video view's result handle and its single outstanding job.

    A new submission cancels interest in the previous job. If that job still
    produces bytes, they are released immediately instead of displayed.
    """

    def __init__(self, poller: JobPoller, slot: AssetSlot | None = None, handle_dir: str | None = None):
        self.poller = poller
        self.slot = slot if slot is not None else AssetSlot()
        self.handle_dir = handle_dir
        self.current_job: VideoJob | None = None
        self._ticket = 0
        self._cancel: threading.Event | None = None
        self._lock = threading.Lock()

    @property
    def credentials(self) -> CredentialState:
        return self.poller.credentials

    @property
    def busy(self) -> bool:
        return self._cancel is not None

    def submit(
        self,
        prompt: str,
        aspect_ratio: str,
        starting_image: ImageAsset | None = None,
        on_status: Callable[[JobHandle], None] | None = None,
    ) -> VideoJob:
        with self._lock:
            self._ticket += 1
            ticket = self._ticket
            if self._cancel is not None:
                self._cancel.set()
            cancel = threading.Event()
            self._cancel = cancel

        job = VideoJob(prompt=prompt, aspect_ratio=aspect_ratio, starting_image=starting_image)
        self.current_job = job
        self.slot.release()
        job.status = "polling"
        try:
            data = self.poller.run(prompt, aspect_ratio, starting_image, cancel_token=cancel, on_status=on_status)
        except StudioError as exc:
            job.status = "cancelled" if isinstance(exc, JobCancelled) else "failed"
            job.error = str(exc)
            raise
        finally:
            with self._lock:
                if self._cancel is cancel:
                    self._cancel = None

        handle = AssetHandle(data, mime_type="video/mp4", directory=self.handle_dir)
        with self._lock:
            stale = ticket != self._ticket
        if stale:
            logger.info("Discarding result of superseded video job")
            handle.release()
            job.status = "cancelled"
            return job

        self.slot.replace(handle)
        job.result = handle
        job.status = "done"
        return job

    def cancel(self) -> None:
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()

    def close(self) -> None:
        """Tear down the view: stop interest in any job and free the result."""
        self.cancel()
        self.slot.release()
