"""Tests for the OpenAI-backed gateway client."""

import base64
from types import SimpleNamespace

import pytest

from creator_studio.ai import gateway_client as gateway_client_module
from creator_studio.ai.gateway_client import GatewayClient, JobHandle
from creator_studio.errors import (
    ChatError,
    DownloadFailed,
    GatewayError,
    InvalidCredential,
)
from creator_studio.media.assets import ImageAsset


class _FakeImages:
    def __init__(self, owner):
        self._owner = owner

    def edit(self, model, image, prompt, **_kwargs):
        self._owner.calls.append(("images.edit", model, image, prompt))
        if self._owner.fail_with:
            raise RuntimeError(self._owner.fail_with)
        return SimpleNamespace(
            data=[SimpleNamespace(b64_json=base64.b64encode(b"edited").decode())],
            output_format="png",
        )


class _FakeResponses:
    def __init__(self, owner):
        self._owner = owner

    def create(self, **params):
        self._owner.calls.append(("responses.create", params))
        if self._owner.fail_with:
            raise RuntimeError(self._owner.fail_with)
        turn = sum(1 for call in self._owner.calls if call[0] == "responses.create")
        return SimpleNamespace(id=f"resp_{turn}", output_text=f"reply {turn}")


class _FakeVideos:
    def __init__(self, owner):
        self._owner = owner

    def create(self, **params):
        self._owner.calls.append(("videos.create", params))
        return SimpleNamespace(id="video_1", status="queued", error=None, progress=0)

    def retrieve(self, video_id):
        self._owner.calls.append(("videos.retrieve", video_id))
        return SimpleNamespace(id=video_id, status="completed", error=None, progress=100)


class _FakeOpenAI:
    instances = []

    def __init__(self, api_key, base_url=None):
        self.api_key = api_key
        self.base_url = "https://api.example.com/v1/"
        self.calls = []
        self.fail_with = None
        self.images = _FakeImages(self)
        self.responses = _FakeResponses(self)
        self.videos = _FakeVideos(self)
        _FakeOpenAI.instances.append(self)


@pytest.fixture
def fake_openai(monkeypatch):
    _FakeOpenAI.instances = []
    monkeypatch.setattr(gateway_client_module, "OpenAI", _FakeOpenAI)
    return _FakeOpenAI


def test_missing_credential_is_reported_before_any_call(fake_openai):
    client = GatewayClient(api_key="  ")

    assert client.has_credential is False
    with pytest.raises(InvalidCredential):
        client.edit_image(b"img", "image/png", "make it blue")
    assert fake_openai.instances == []


def test_edit_image_returns_bytes_and_mime(fake_openai):
    client = GatewayClient(api_key="sk-test", image_model="gpt-image-1")

    data, mime_type = client.edit_image(b"img", "image/jpeg", "add a hat")

    assert (data, mime_type) == (b"edited", "image/png")
    _, model, image, prompt = fake_openai.instances[0].calls[0]
    assert model == "gpt-image-1"
    assert image == ("image.jpg", b"img", "image/jpeg")
    assert prompt == "add a hat"


def test_edit_image_wraps_provider_errors(fake_openai):
    client = GatewayClient(api_key="sk-test")
    client.client.fail_with = "server exploded"

    with pytest.raises(GatewayError, match="Failed to generate image: server exploded"):
        client.edit_image(b"img", "image/png", "prompt")


def test_edit_image_detects_bad_key(fake_openai):
    client = GatewayClient(api_key="sk-test")
    client.client.fail_with = "Error code: 401 - Incorrect API key provided"

    with pytest.raises(InvalidCredential):
        client.edit_image(b"img", "image/png", "prompt")


def test_chat_turn_chains_previous_response(fake_openai):
    client = GatewayClient(api_key="sk-test", chat_model="gpt-4.1-mini")

    reply, handle = client.chat_turn(None, "hello")
    assert (reply, handle) == ("reply 1", "resp_1")

    client.chat_turn(handle, "again")
    first, second = [call[1] for call in fake_openai.instances[0].calls]
    assert "previous_response_id" not in first
    assert second == {"model": "gpt-4.1-mini", "input": "again", "previous_response_id": "resp_1"}


def test_chat_turn_failure_is_chat_error(fake_openai):
    client = GatewayClient(api_key="sk-test")
    client.client.fail_with = "rate limited"

    with pytest.raises(ChatError, match="rate limited"):
        client.chat_turn(None, "hello")


def test_video_job_submit_and_poll(fake_openai):
    client = GatewayClient(api_key="sk-test", video_model="sora-2")
    image = ImageAsset(raw_bytes=b"start", mime_type="image/png", file_name="frame.png")

    handle = client.submit_video_job("a lighthouse at dusk", "9:16", image)
    assert handle == JobHandle(id="video_1", done=False, status="queued", progress=0)

    params = fake_openai.instances[0].calls[0][1]
    assert params["size"] == "720x1280"
    assert params["model"] == "sora-2"
    assert params["input_reference"] == ("frame.png", b"start", "image/png")

    refreshed = client.poll_job(handle)
    assert refreshed.done is True
    assert refreshed.location == "https://api.example.com/v1/videos/video_1/content"


def test_failed_video_carries_error_message(fake_openai):
    client = GatewayClient(api_key="sk-test")
    video = SimpleNamespace(id="v", status="failed", error=SimpleNamespace(message="moderation blocked"))

    handle = client._to_handle(video)

    assert handle.done is True
    assert handle.location is None
    assert handle.error == "moderation blocked"


def test_fetch_asset_sends_credential(fake_openai, monkeypatch):
    seen = {}

    def _fake_get(url, headers=None, timeout=None):
        seen.update(url=url, headers=headers)
        return SimpleNamespace(ok=True, status_code=200, content=b"mp4")

    monkeypatch.setattr(gateway_client_module.requests, "get", _fake_get)
    client = GatewayClient(api_key="sk-test")

    assert client.fetch_asset("https://api.example.com/v1/videos/v/content") == b"mp4"
    assert seen["headers"] == {"Authorization": "Bearer sk-test"}


def test_fetch_asset_forwards_organization_and_project(fake_openai, monkeypatch):
    seen = {}

    def _fake_get(url, headers=None, timeout=None):
        seen.update(headers=headers)
        return SimpleNamespace(ok=True, status_code=200, content=b"mp4")

    monkeypatch.setattr(gateway_client_module.requests, "get", _fake_get)
    client = GatewayClient(api_key="sk-test")
    client.client.organization = "org-1"
    client.client.project = "proj-1"

    client.fetch_asset("https://api.example.com/v1/videos/v/content")

    assert seen["headers"] == {
        "Authorization": "Bearer sk-test",
        "OpenAI-Organization": "org-1",
        "OpenAI-Project": "proj-1",
    }


def test_fetch_asset_non_success_raises_download_failed(fake_openai, monkeypatch):
    monkeypatch.setattr(
        gateway_client_module.requests,
        "get",
        lambda url, headers=None, timeout=None: SimpleNamespace(ok=False, status_code=404, content=b""),
    )

    with pytest.raises(DownloadFailed) as excinfo:
        GatewayClient(api_key="sk-test").fetch_asset("https://api.example.com/missing")
    assert excinfo.value.status == 404
