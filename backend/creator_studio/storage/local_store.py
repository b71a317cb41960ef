"""Durable key/value store for the editor session, one file per key."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

ORIGINAL_IMAGE_KEY = "originalImage"
EDITED_IMAGE_KEY = "editedImage"
EDIT_HISTORY_KEY = "editHistory"

DEFAULT_STORE_DIR = Path.home() / ".creator_studio" / "store"

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_SUFFIX = ".value"


class LocalStore:
    """Synchronous, best-effort mapping from string keys to string values.

    Keys are independent: each lives in its own file and nothing links them
    transactionally. Write failures are logged, not raised.
    """

    def __init__(self, root: str | os.PathLike[str] | None = None):
        self.root = Path(root) if root is not None else DEFAULT_STORE_DIR

    def _path(self, key: str) -> Path:
        if not isinstance(key, str) or not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.root / f"{key}{_SUFFIX}"

    def save(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", dir=self.root)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            logger.warning("Could not persist %s to %s: %s", key, self.root, exc)
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def load(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when the key is absent.

        Read errors (permissions, undecodable bytes) propagate so the caller
        can decide whether the store is trustworthy.
        """
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove %s from %s: %s", key, self.root, exc)

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name[: -len(_SUFFIX)] for p in self.root.glob(f"*{_SUFFIX}"))

    def clear(self) -> None:
        for key in self.keys():
            self.remove(key)
