"""Backend application factory.

Like the rest of the backend this is a lightweight "service container": it
returns a dictionary of settings and shared dependencies. Per-view objects
(editor session, chat session, video runner) are built from it by the
Streamlit layer.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from creator_studio.ai.gateway_client import (
    DEFAULT_CHAT_MODEL,
    DEFAULT_IMAGE_MODEL,
    DEFAULT_VIDEO_MODEL,
    GatewayClient,
)
from creator_studio.services.video_jobs import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    CredentialState,
    JobPoller,
    VideoJobRunner,
)
from creator_studio.storage.local_store import DEFAULT_STORE_DIR, LocalStore

# Ensure local `.env` values are available when running via Streamlit/CLI.
load_dotenv(Path(__file__).resolve().parents[2] / ".env", override=False)

DEFAULT_VIDEO_TIMEOUT_SECONDS = 1200.0


@dataclass(frozen=True)
class StudioSettings:
    api_key: str | None
    base_url: str | None
    chat_model: str
    image_model: str
    video_model: str
    store_dir: Path
    poll_interval: float
    video_timeout: float | None


def _read_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _read_float(name: str, default: float) -> float:
    raw = _read_env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def load_settings() -> StudioSettings:
    timeout = _read_float("STUDIO_VIDEO_TIMEOUT_SECONDS", DEFAULT_VIDEO_TIMEOUT_SECONDS)
    store_dir = _read_env("STUDIO_STORE_DIR")
    return StudioSettings(
        api_key=_read_env("OPENAI_API_KEY"),
        base_url=_read_env("OPENAI_BASE_URL"),
        chat_model=_read_env("STUDIO_CHAT_MODEL") or DEFAULT_CHAT_MODEL,
        image_model=_read_env("STUDIO_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
        video_model=_read_env("STUDIO_VIDEO_MODEL") or DEFAULT_VIDEO_MODEL,
        store_dir=Path(store_dir).expanduser() if store_dir else DEFAULT_STORE_DIR,
        poll_interval=_read_float("STUDIO_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS) or DEFAULT_POLL_INTERVAL_SECONDS,
        video_timeout=timeout or None,
    )


def build_video_runner(app: Dict[str, Any], api_key: str | None = None) -> VideoJobRunner:
    """Create the per-view video runner.

    ``api_key`` is a key the user selected in the video view; without one the
    configured key is used. The credential starts selected only if a key exists.
    """
    settings: StudioSettings = app["settings"]
    gateway: GatewayClient = app["gateway"]
    selected_key = (api_key or "").strip() or None
    if selected_key and selected_key != gateway.api_key:
        gateway = GatewayClient(
            api_key=selected_key,
            base_url=settings.base_url,
            chat_model=settings.chat_model,
            image_model=settings.image_model,
            video_model=settings.video_model,
        )
    poller = JobPoller(
        gateway,
        credentials=CredentialState(selected=gateway.has_credential),
        poll_interval=settings.poll_interval,
        timeout=settings.video_timeout,
    )
    return VideoJobRunner(poller)


def create_app() -> Dict[str, Any]:
    """Create the backend dependency container."""
    settings = load_settings()
    return {
        "settings": settings,
        "gateway": GatewayClient(
            api_key=settings.api_key,
            base_url=settings.base_url,
            chat_model=settings.chat_model,
            image_model=settings.image_model,
            video_model=settings.video_model,
        ),
        "store": LocalStore(settings.store_dir),
    }
