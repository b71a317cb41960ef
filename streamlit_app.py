"""Main Streamlit UI for Creator Studio.

Two workspaces share one provider:
- Image Editor: prompt-driven edits with history, plus a chat assistant.
- Video Generator: text (and optional starting image) to short video.
"""

from __future__ import annotations

import html
import logging
import os
import sys
from pathlib import Path
from typing import Any

import streamlit as st
from dotenv import load_dotenv

# Ensure backend package is importable when running `streamlit run streamlit_app.py`.
ROOT = Path(__file__).resolve().parent
BACKEND_ROOT = ROOT / "backend"
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
load_dotenv(ROOT / ".env", override=False)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SECRET_ENV_KEYS = (
    "OPENAI_API_KEY",
    "OPENAI_BASE_URL",
    "STUDIO_CHAT_MODEL",
    "STUDIO_IMAGE_MODEL",
    "STUDIO_VIDEO_MODEL",
    "STUDIO_STORE_DIR",
    "STUDIO_POLL_INTERVAL_SECONDS",
    "STUDIO_VIDEO_TIMEOUT_SECONDS",
)


def _hydrate_env_from_streamlit_secrets() -> None:
    """Load provider config from Streamlit Secrets into env when not already set."""
    try:
        secrets = dict(st.secrets)
    except Exception:
        return

    openai_block = secrets.get("openai")
    if isinstance(openai_block, dict):
        mapping = {"api_key": "OPENAI_API_KEY", "base_url": "OPENAI_BASE_URL"}
        for secret_key, env_key in mapping.items():
            value = openai_block.get(secret_key)
            if isinstance(value, str) and value.strip() and not os.getenv(env_key):
                os.environ[env_key] = value.strip()

    for key in SECRET_ENV_KEYS:
        value = secrets.get(key)
        if isinstance(value, str) and value.strip() and not os.getenv(key):
            os.environ[key] = value.strip()


_hydrate_env_from_streamlit_secrets()

from creator_studio.app import build_video_runner, create_app  # noqa: E402
from creator_studio.errors import (  # noqa: E402
    DecodeError,
    InvalidCredential,
    StudioError,
)
from creator_studio.media.assets import ImageAsset  # noqa: E402
from creator_studio.media.normalizer import SUPPORTED_OUTPUT_FORMATS  # noqa: E402
from creator_studio.services.chat import ChatSession  # noqa: E402
from creator_studio.services.image_edit import apply_edit  # noqa: E402
from creator_studio.services.video_jobs import ASPECT_RATIOS, VideoJobRunner  # noqa: E402
from creator_studio.session.editor_session import EditorSession  # noqa: E402

OUTPUT_FORMAT_LABELS = {"image/png": "PNG", "image/jpeg": "JPEG"}
ASPECT_RATIO_LABELS = {"16:9": "Landscape (16:9)", "9:16": "Portrait (9:16)"}
UPLOAD_TYPES = ["png", "jpg", "jpeg", "webp"]


@st.cache_resource
def _get_app() -> dict[str, Any]:
    return create_app()


def _rerun() -> None:
    try:
        st.rerun()
    except AttributeError:
        st.experimental_rerun()


def _init_state(app: dict[str, Any]) -> None:
    if "cs_editor" not in st.session_state:
        st.session_state["cs_editor"] = EditorSession.restore(app["store"])
    if "cs_chat" not in st.session_state:
        st.session_state["cs_chat"] = ChatSession(app["gateway"])
    if "cs_video_runner" not in st.session_state:
        st.session_state["cs_video_runner"] = build_video_runner(app)
    defaults = {
        "cs_output_format": SUPPORTED_OUTPUT_FORMATS[0],
        "cs_edit_prompt": "",
        "cs_edit_error": None,
        "cs_last_upload": None,
        "cs_upload_nonce": 0,
        "cs_video_prompt": "",
        "cs_aspect_ratio": ASPECT_RATIOS[0],
        "cs_video_error": None,
        "cs_status_line": "Ready.",
    }
    for key, value in defaults.items():
        st.session_state.setdefault(key, value)


def _inject_styles() -> None:
    st.markdown(
        """
        <style>
        .studio-title {
          font-size: 2.6rem;
          font-weight: 700;
          background: linear-gradient(90deg, #60a5fa, #2dd4bf);
          -webkit-background-clip: text;
          -webkit-text-fill-color: transparent;
          margin-bottom: 0.2rem;
        }
        .status-line { color: #94a3b8; font-size: 0.9rem; }
        .chat-user { background: #1e3a8a; color: #fff; padding: 8px 12px; border-radius: 10px; margin: 4px 0 4px 20%; }
        .chat-assistant { background: #1e293b; color: #e2e8f0; padding: 8px 12px; border-radius: 10px; margin: 4px 20% 4px 0; }
        </style>
        """,
        unsafe_allow_html=True,
    )


def _upload_key(uploaded: Any) -> str:
    file_id = getattr(uploaded, "file_id", None)
    if file_id:
        return str(file_id)
    return f"{getattr(uploaded, 'name', '')}:{getattr(uploaded, 'size', '')}"


def _asset_from_upload(uploaded: Any) -> ImageAsset:
    """Turn a Streamlit ``UploadedFile`` into an ``ImageAsset``."""
    return ImageAsset.from_upload(
        uploaded.getvalue(),
        getattr(uploaded, "type", None),
        file_name=getattr(uploaded, "name", None),
    )


def _download_name(stem: str, mime_type: str) -> str:
    extension = {"image/png": "png", "image/jpeg": "jpg", "video/mp4": "mp4"}.get(mime_type, "bin")
    return f"{stem}.{extension}"


def _history_label(index: int) -> str:
    return f"Step {index + 1}"


def _chat_message_html(role: str, text: str) -> str:
    css_class = "chat-user" if role == "user" else "chat-assistant"
    body = html.escape(text).replace("\n", "<br>")
    return f'<div class="{css_class}">{body}</div>'


def _sidebar_controls(app: dict[str, Any]) -> None:
    settings = app["settings"]
    st.sidebar.markdown("## Studio Settings")
    st.sidebar.caption(
        "API credentials are read from OPENAI_API_KEY in Streamlit Secrets or your local .env."
    )
    st.sidebar.text(f"Chat model:  {settings.chat_model}")
    st.sidebar.text(f"Image model: {settings.image_model}")
    st.sidebar.text(f"Video model: {settings.video_model}")
    st.sidebar.caption(f"Session data: {settings.store_dir}")


def _handle_upload(editor: EditorSession, uploaded: Any) -> None:
    if uploaded is None:
        return
    key = _upload_key(uploaded)
    if key == st.session_state["cs_last_upload"]:
        return
    st.session_state["cs_last_upload"] = key
    try:
        editor.load_original(_asset_from_upload(uploaded))
    except DecodeError as exc:
        st.session_state["cs_edit_error"] = str(exc)
        return
    st.session_state["cs_edit_error"] = None
    st.session_state["cs_status_line"] = f"Loaded {uploaded.name}."


def _image_tab(app: dict[str, Any]) -> None:
    gateway = app["gateway"]
    if not gateway.has_credential:
        st.error("OPENAI_API_KEY is not set. Add it to Streamlit Secrets or your .env and restart the app.")
        return

    editor: EditorSession = st.session_state["cs_editor"]
    col_input, col_output, col_chat = st.columns(3)

    with col_input:
        st.subheader("Original")
        if editor.original is None:
            uploaded = st.file_uploader("Upload an image", type=UPLOAD_TYPES, key=f"cs_upload_{st.session_state['cs_upload_nonce']}")
            _handle_upload(editor, uploaded)
            if editor.original is not None:
                _rerun()
        else:
            st.image(editor.original.raw_bytes, use_container_width=True)
            if st.button("Remove image", key="cs_remove_image", use_container_width=True):
                editor.remove_image()
                st.session_state["cs_upload_nonce"] += 1
                st.session_state["cs_last_upload"] = None
                st.session_state["cs_edit_error"] = None
                st.session_state["cs_status_line"] = "Image removed."
                _rerun()

        st.text_area(
            "Editing prompt",
            key="cs_edit_prompt",
            placeholder="e.g., Add a retro filter, make the sky purple",
            height=100,
        )
        st.radio(
            "Output format",
            list(SUPPORTED_OUTPUT_FORMATS),
            format_func=lambda value: OUTPUT_FORMAT_LABELS[value],
            key="cs_output_format",
            horizontal=True,
        )
        generate = st.button(
            "Generate",
            type="primary",
            use_container_width=True,
            disabled=editor.original is None or not st.session_state["cs_edit_prompt"].strip(),
        )

    if generate:
        with col_output:
            with st.spinner("Editing image..."):
                try:
                    apply_edit(
                        editor,
                        gateway,
                        st.session_state["cs_edit_prompt"],
                        st.session_state["cs_output_format"],
                    )
                    st.session_state["cs_edit_error"] = None
                    st.session_state["cs_status_line"] = f"Edit {len(editor.history)} generated."
                except StudioError as exc:
                    logger.error("Image edit failed: %s", exc)
                    st.session_state["cs_edit_error"] = str(exc)

    with col_output:
        st.subheader("Edited")
        if st.session_state["cs_edit_error"]:
            st.error(st.session_state["cs_edit_error"])
        edited = editor.edited_asset()
        if edited is not None:
            st.image(edited.raw_bytes, use_container_width=True)
            st.download_button(
                "Download",
                data=edited.raw_bytes,
                file_name=_download_name("edited", edited.mime_type),
                mime=edited.mime_type,
                use_container_width=True,
                key="cs_download_edit",
            )
        elif not st.session_state["cs_edit_error"]:
            st.info("Your edited image will appear here.")
        _history_panel(editor)

    with col_chat:
        _chat_panel()


def _history_panel(editor: EditorSession) -> None:
    entries = editor.history.entries
    if not entries:
        return
    head_a, head_b = st.columns([3, 1])
    head_a.markdown("#### History")
    if head_b.button("Clear", key="cs_clear_history", help="Permanently delete all editing history"):
        editor.clear_history()
        st.session_state["cs_status_line"] = "History cleared."
        _rerun()

    cols = st.columns(4)
    for index, data_url in enumerate(entries):
        col = cols[index % 4]
        col.image(ImageAsset.from_data_url(data_url).raw_bytes, caption=_history_label(index), use_container_width=True)
        if col.button("Restore", key=f"cs_revert_{index}", use_container_width=True):
            editor.revert(data_url)
            st.session_state["cs_status_line"] = f"Restored {_history_label(index).lower()}."
            _rerun()


def _chat_panel() -> None:
    chat: ChatSession = st.session_state["cs_chat"]
    st.subheader("AI Assistant")
    for message in chat.transcript:
        st.markdown(_chat_message_html(message.role, message.text), unsafe_allow_html=True)

    with st.form("cs_chat_form", clear_on_submit=True):
        text = st.text_input("Ask me anything...", key="cs_chat_input")
        sent = st.form_submit_button("Send", use_container_width=True)
    if sent and text.strip():
        with st.spinner("Thinking..."):
            chat.respond(text)
        _rerun()


def _credential_prompt(app: dict[str, Any]) -> None:
    st.markdown("### API Key Required")
    st.write("Video generation requires a valid API key. Please select a key to proceed.")
    key = st.text_input("API key", type="password", key="cs_video_api_key")
    use_col, env_col = st.columns(2)
    if use_col.button("Select API Key", type="primary", use_container_width=True, disabled=not key.strip()):
        _replace_video_runner(build_video_runner(app, api_key=key))
        _rerun()
    if app["gateway"].has_credential and env_col.button("Use configured key", use_container_width=True):
        _replace_video_runner(build_video_runner(app))
        _rerun()


def _replace_video_runner(runner: VideoJobRunner) -> None:
    previous: VideoJobRunner | None = st.session_state.get("cs_video_runner")
    if previous is not None and previous is not runner:
        previous.close()
    st.session_state["cs_video_runner"] = runner
    st.session_state["cs_video_error"] = None


def _video_tab(app: dict[str, Any]) -> None:
    runner: VideoJobRunner = st.session_state["cs_video_runner"]
    col_input, col_output = st.columns(2)

    with col_input:
        if not runner.credentials.selected:
            _credential_prompt(app)
            uploaded = None
            generate = False
        else:
            st.text_area(
                "Video prompt",
                key="cs_video_prompt",
                placeholder="e.g., A cinematic shot of a car driving on a rainy night",
                height=100,
            )
            st.radio(
                "Aspect ratio",
                list(ASPECT_RATIOS),
                format_func=lambda value: ASPECT_RATIO_LABELS[value],
                key="cs_aspect_ratio",
                horizontal=True,
            )
            uploaded = st.file_uploader("Starting image (optional)", type=UPLOAD_TYPES, key="cs_video_upload")
            if uploaded is not None:
                st.image(uploaded.getvalue(), width=192)
            generate = st.button(
                "Generate Video",
                type="primary",
                use_container_width=True,
                disabled=runner.busy or not st.session_state["cs_video_prompt"].strip(),
                help="Start the video generation process. This may take several minutes.",
            )

    with col_output:
        if generate:
            _run_video_job(runner, uploaded)
        if st.session_state["cs_video_error"]:
            st.error(f"Generation Failed: {st.session_state['cs_video_error']}")
        handle = runner.slot.handle
        if handle is not None and not handle.released:
            st.video(handle.path, loop=True, autoplay=True)
            video_cols = st.columns(2)
            video_cols[0].download_button(
                "Download Video",
                data=handle.read_bytes(),
                file_name=_download_name("generated", handle.mime_type),
                mime=handle.mime_type,
                use_container_width=True,
                key="cs_download_video",
            )
            if video_cols[1].button("Discard", key="cs_discard_video", use_container_width=True):
                runner.slot.release()
                _rerun()
        elif not st.session_state["cs_video_error"]:
            st.info("Your generated video will appear here.")


def _run_video_job(runner: VideoJobRunner, uploaded: Any) -> None:
    st.session_state["cs_video_error"] = None
    progress = st.empty()
    progress.info("Initiating video generation... this may take a few minutes.")

    def _on_status(handle: Any) -> None:
        suffix = f" ({handle.progress}%)" if handle.progress is not None else ""
        progress.info(f"Job {handle.status}{suffix}...")

    try:
        starting_image = _asset_from_upload(uploaded) if uploaded is not None else None
        runner.submit(
            st.session_state["cs_video_prompt"],
            st.session_state["cs_aspect_ratio"],
            starting_image,
            on_status=_on_status,
        )
        st.session_state["cs_status_line"] = "Video generated."
    except InvalidCredential as exc:
        st.session_state["cs_video_error"] = str(exc)
        progress.empty()
        _rerun()
    except StudioError as exc:
        st.session_state["cs_video_error"] = str(exc)
    progress.empty()


def main() -> None:
    st.set_page_config(
        page_title="Creator Studio",
        page_icon="",
        layout="wide",
        initial_sidebar_state="collapsed",
    )

    app = _get_app()
    _init_state(app)
    _inject_styles()
    _sidebar_controls(app)

    st.markdown("<div class='studio-title'>CREATOR STUDIO</div>", unsafe_allow_html=True)
    st.markdown(
        f"<div class='status-line'>Status: {html.escape(st.session_state['cs_status_line'])}</div>",
        unsafe_allow_html=True,
    )

    tab_image, tab_video = st.tabs(["Image Editor", "Video Generator"])

    with tab_image:
        _image_tab(app)

    with tab_video:
        _video_tab(app)


if __name__ == "__main__":
    main()
