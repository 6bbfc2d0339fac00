from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


class JsonStateStore:
    """Durable slot holding one JSON document on disk.

    Unreadable content (I/O errors, bad encoding, broken JSON) loads as
    ``None`` so callers fall back to their defaults.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path).expanduser().resolve()

    def load(self) -> Optional[Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("State file %s could not be read: %s", self.path, exc)
            return None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning("State file %s is not valid UTF-8 (byte %d); ignoring it", self.path, exc.start)
            return None
        try:
            return json.loads(text)
        except ValueError as exc:
            logger.warning("State file %s holds malformed JSON: %s", self.path, exc)
            return None

    def save(self, payload: Any) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
        staging.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(staging, self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class MemoryStateStore:
    """In-process slot with the same contract; payloads are copied through JSON."""

    def __init__(self, payload: Optional[Any] = None) -> None:
        self._raw: Optional[str] = None
        if payload is not None:
            self.save(payload)

    def load(self) -> Optional[Any]:
        if self._raw is None:
            return None
        try:
            return json.loads(self._raw)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding unreadable in-memory state: %s", exc)
            return None

    def save(self, payload: Any) -> None:
        self._raw = json.dumps(payload, sort_keys=True)

    def clear(self) -> None:
        self._raw = None

    @property
    def raw(self) -> Optional[str]:
        return self._raw

    def save_raw(self, raw: str) -> None:
        self._raw = raw


def load_mapping(store: Any) -> Dict[str, Any]:
    """Return the stored payload when it is a JSON object, else an empty dict."""
    payload = store.load()
    return payload if isinstance(payload, dict) else {}
