"""In-memory image-edit session and its projection onto the local store."""

from __future__ import annotations

import json
import logging
from typing import Any

from creator_studio.errors import StorageCorrupt
from creator_studio.media.assets import ImageAsset, parse_data_url
from creator_studio.session.history import EditHistory
from creator_studio.storage.local_store import (
    EDIT_HISTORY_KEY,
    EDITED_IMAGE_KEY,
    ORIGINAL_IMAGE_KEY,
    LocalStore,
)

logger = logging.getLogger(__name__)


class EditorSession:
    """Original image, current edited image and edit history.

    Memory is the source of truth. Every mutation ends with ``sync()``, which
    rewrites the three store keys from the in-memory state.
    """

    def __init__(self, store: LocalStore | None = None):
        self.store = store
        self.original: ImageAsset | None = None
        self.edited: str | None = None
        self.history = EditHistory()

    @classmethod
    def restore(cls, store: LocalStore) -> "EditorSession":
        """Rebuild a session from ``store``.

        Unreadable or partial state clears the whole store and yields an
        empty session.
        """
        session = cls(store)
        try:
            original, edited, entries = _read_state(store)
        except Exception as exc:
            logger.warning("Failed to load editor state from %s, clearing store: %s", store.root, exc)
            store.clear()
            return session

        session.original = original
        session.edited = edited
        session.history = EditHistory(entries)
        if edited is not None and edited in entries:
            session.history.revert(edited)
        return session

    def load_original(self, asset: ImageAsset) -> None:
        self.original = asset
        self.edited = None
        self.history.clear()
        self.sync()

    def remove_image(self) -> None:
        self.original = None
        self.edited = None
        self.history.clear()
        self.sync()

    def record_edit(self, asset: ImageAsset) -> str:
        data_url = asset.data_url
        self.history.append(data_url)
        self.edited = data_url
        self.sync()
        return data_url

    def revert(self, data_url: str) -> None:
        self.edited = self.history.revert(data_url)
        self.sync()

    def clear_history(self) -> None:
        self.history.clear()
        self.sync()

    def edited_asset(self) -> ImageAsset | None:
        if self.edited is None:
            return None
        return ImageAsset.from_data_url(self.edited)

    def sync(self) -> None:
        if self.store is None:
            return
        if self.original is None:
            self.store.remove(ORIGINAL_IMAGE_KEY)
        else:
            self.store.save(ORIGINAL_IMAGE_KEY, json.dumps(self.original.to_record()))
        if self.edited is None:
            self.store.remove(EDITED_IMAGE_KEY)
        else:
            self.store.save(EDITED_IMAGE_KEY, self.edited)
        if len(self.history) == 0:
            self.store.remove(EDIT_HISTORY_KEY)
        else:
            self.store.save(EDIT_HISTORY_KEY, json.dumps(self.history.entries))


def _read_state(store: LocalStore) -> tuple[ImageAsset | None, str | None, list[str]]:
    raw_original = store.load(ORIGINAL_IMAGE_KEY)
    raw_edited = store.load(EDITED_IMAGE_KEY)
    raw_history = store.load(EDIT_HISTORY_KEY)

    original = ImageAsset.from_record(json.loads(raw_original)) if raw_original is not None else None
    edited = None
    if raw_edited is not None:
        parse_data_url(raw_edited)
        edited = raw_edited
    entries = _parse_history(json.loads(raw_history)) if raw_history is not None else []

    if original is None and (edited is not None or entries):
        raise StorageCorrupt("Edited image or history present without an original image.")
    return original, edited, entries


def _parse_history(value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise StorageCorrupt("Edit history must be a list of data URLs.")
    return list(value)
