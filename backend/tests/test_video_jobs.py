"""Video job poller and runner tests."""

import threading

import pytest

from creator_studio.ai.gateway_client import JobHandle
from creator_studio.errors import (
    DownloadFailed,
    GenerationFailed,
    InvalidCredential,
    JobCancelled,
    JobTimeout,
    MissingInput,
    ResultMissing,
)
from creator_studio.media.assets import AssetSlot, ImageAsset
from creator_studio.services.video_jobs import CredentialState, JobPoller, VideoJobRunner


class _FakeGateway:
    def __init__(self, handles, payload=b"mp4-bytes", submit_error=None, fetch_error=None):
        self._handles = list(handles)
        self.payload = payload
        self.submit_error = submit_error
        self.fetch_error = fetch_error
        self.submitted = []
        self.polled = []
        self.fetched = []
        self.on_fetch = None

    def submit_video_job(self, prompt, aspect_ratio, starting_image=None):
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((prompt, aspect_ratio, starting_image))
        return self._handles.pop(0)

    def poll_job(self, handle):
        self.polled.append(handle.id)
        return self._handles.pop(0)

    def fetch_asset(self, location):
        self.fetched.append(location)
        if self.on_fetch is not None:
            self.on_fetch()
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.payload


class _Clock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self):
        return self.now


def _pending(job_id="job-1"):
    return JobHandle(id=job_id, done=False, status="in_progress")


def _finished(job_id="job-1", location="https://api.example.com/v1/videos/job-1/content"):
    return JobHandle(id=job_id, done=True, status="completed", location=location)


def _poller(gateway, clock=None, credentials=None, timeout=None):
    clock = clock or _Clock()
    return JobPoller(
        gateway,
        credentials=credentials or CredentialState(selected=True),
        poll_interval=10,
        timeout=timeout,
        sleep=clock.sleep,
        clock=clock,
    )


def test_polls_until_done_with_two_sleeps():
    gateway = _FakeGateway([_pending(), _pending(), _finished()])
    clock = _Clock()

    data = _poller(gateway, clock).run("a rainy night drive", "16:9")

    assert data == b"mp4-bytes"
    assert clock.sleeps == [10, 10]
    assert gateway.polled == ["job-1", "job-1"]
    assert gateway.fetched == ["https://api.example.com/v1/videos/job-1/content"]


def test_starting_image_is_forwarded():
    gateway = _FakeGateway([_finished()])
    image = ImageAsset(raw_bytes=b"img", mime_type="image/png")

    _poller(gateway).run("zoom out", "9:16", starting_image=image)

    assert gateway.submitted == [("zoom out", "9:16", image)]


def test_done_without_location_fails_before_download():
    gateway = _FakeGateway([_pending(), _finished(location=None)])

    with pytest.raises(ResultMissing):
        _poller(gateway).run("prompt", "16:9")
    assert gateway.fetched == []


def test_failed_job_surfaces_provider_message():
    gateway = _FakeGateway([JobHandle(id="job-1", done=True, status="failed", error="content policy")])

    with pytest.raises(GenerationFailed, match="content policy"):
        _poller(gateway).run("prompt", "16:9")


def test_download_failure_carries_status():
    gateway = _FakeGateway([_finished()], fetch_error=DownloadFailed(403))

    with pytest.raises(DownloadFailed) as excinfo:
        _poller(gateway).run("prompt", "16:9")
    assert excinfo.value.status == 403


def test_entity_not_found_resets_credential():
    credentials = CredentialState(selected=True)
    gateway = _FakeGateway([], submit_error=RuntimeError('{"error": "Requested entity was not found."}'))

    with pytest.raises(InvalidCredential):
        _poller(gateway, credentials=credentials).run("prompt", "16:9")
    assert credentials.selected is False


def test_other_provider_errors_become_generation_failed():
    credentials = CredentialState(selected=True)
    gateway = _FakeGateway([], submit_error=RuntimeError("quota exceeded"))

    with pytest.raises(GenerationFailed, match="quota exceeded"):
        _poller(gateway, credentials=credentials).run("prompt", "16:9")
    assert credentials.selected is True


def test_unselected_credential_blocks_submission():
    gateway = _FakeGateway([_finished()])

    with pytest.raises(InvalidCredential):
        _poller(gateway, credentials=CredentialState(selected=False)).run("prompt", "16:9")
    assert gateway.submitted == []


@pytest.mark.parametrize("prompt,ratio", [("", "16:9"), ("   ", "16:9"), ("prompt", "4:3")])
def test_invalid_input_never_reaches_gateway(prompt, ratio):
    gateway = _FakeGateway([_finished()])

    with pytest.raises(MissingInput):
        _poller(gateway).run(prompt, ratio)
    assert gateway.submitted == []


def test_cancel_token_is_honored_between_polls():
    gateway = _FakeGateway([_pending(), _pending(), _finished()])
    cancel = threading.Event()
    clock = _Clock()

    def _sleep(seconds):
        clock.sleep(seconds)
        cancel.set()

    poller = JobPoller(gateway, poll_interval=10, sleep=_sleep, clock=clock)

    with pytest.raises(JobCancelled):
        poller.run("prompt", "16:9", cancel_token=cancel)
    assert gateway.polled == []
    assert gateway.fetched == []


def test_timeout_ceiling_stops_polling():
    gateway = _FakeGateway([_pending()] + [_pending() for _ in range(10)])
    clock = _Clock()

    with pytest.raises(JobTimeout):
        _poller(gateway, clock, timeout=25).run("prompt", "16:9")
    assert len(clock.sleeps) == 3


def test_status_callback_sees_every_handle():
    gateway = _FakeGateway([_pending(), _finished()])
    seen = []

    _poller(gateway).run("prompt", "16:9", on_status=lambda handle: seen.append(handle.status))

    assert seen == ["in_progress", "completed"]


def test_runner_installs_result_and_releases_previous(tmp_path):
    gateway = _FakeGateway([_finished("a"), _finished("b")])
    runner = VideoJobRunner(_poller(gateway), handle_dir=str(tmp_path))

    first = runner.submit("first", "16:9")
    assert first.status == "done"
    assert runner.slot.handle is first.result
    assert first.result.read_bytes() == b"mp4-bytes"

    second = runner.submit("second", "9:16")
    assert first.result.released
    assert runner.slot.handle is second.result
    assert not runner.busy

    runner.close()
    assert second.result.released


def test_runner_marks_failed_jobs(tmp_path):
    gateway = _FakeGateway([JobHandle(id="x", done=True, status="failed", error="boom")])
    runner = VideoJobRunner(_poller(gateway), handle_dir=str(tmp_path))

    with pytest.raises(GenerationFailed):
        runner.submit("prompt", "16:9")
    assert runner.current_job.status == "failed"
    assert runner.current_job.error == "boom"
    assert not runner.busy
    assert runner.slot.handle is None


def test_superseded_result_is_released_not_installed(tmp_path):
    gateway = _FakeGateway([_finished("old"), _finished("new")])
    runner = VideoJobRunner(_poller(gateway), slot=AssetSlot(), handle_dir=str(tmp_path))
    newer = {}

    def _start_newer_job():
        gateway.on_fetch = None
        newer["job"] = runner.submit("newer", "16:9")

    gateway.on_fetch = _start_newer_job

    stale = runner.submit("older", "16:9")

    assert stale.status == "cancelled"
    assert stale.result is None
    assert runner.slot.handle is newer["job"].result
    assert [str(path) for path in tmp_path.iterdir()] == [newer["job"].result.path]
