"""Per-section navigation cursors with durable persistence.

Each section (home, shared, trash, recent, starred) owns an independent
cursor: the folder currently open and the breadcrumb path from the root down
to it. A cursor behaves like a stack with two mutations, ``open`` (push) and
``goto`` (truncate to a breadcrumb index, ``-1`` meaning root). The full
mapping is written to the state slot after every mutation and read back once
at construction.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable

from ..models import SECTIONS, FolderRef, NavCursor


logger = logging.getLogger(__name__)


class NavigationStore:
    def __init__(self, store: Any, sections: Iterable[str] = SECTIONS) -> None:
        self.store = store
        self.sections = tuple(sections)
        self._lock = threading.Lock()
        self._state: Dict[str, NavCursor] = self._load()

    def get(self, section: str) -> NavCursor:
        return self._state.get(section, NavCursor.root())

    def open(self, section: str, folder: FolderRef) -> NavCursor:
        with self._lock:
            current = self.get(section)
            cursor = NavCursor(current_folder=folder, path=current.path + (folder,))
            self._state[section] = cursor
            self._persist()
        logger.debug("Opened folder %s in section %s (depth=%d)", folder.id, section, len(cursor.path))
        return cursor

    def goto(self, section: str, index: int) -> NavCursor:
        with self._lock:
            current = self.get(section)
            if index == -1:
                cursor = NavCursor.root()
            elif 0 <= index < len(current.path):
                cursor = NavCursor(current_folder=current.path[index], path=current.path[: index + 1])
            else:
                logger.debug("Ignoring breadcrumb index %d for section %s (depth=%d)", index, section, len(current.path))
                return current
            self._state[section] = cursor
            self._persist()
        return cursor

    def back_to_root(self, section: str) -> NavCursor:
        return self.goto(section, -1)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        keys = list(self.sections) + [key for key in self._state if key not in self.sections]
        return {key: self.get(key).to_payload() for key in keys}

    # Persistence helpers --------------------------------------------------

    def _load(self) -> Dict[str, NavCursor]:
        state = {section: NavCursor.root() for section in self.sections}
        payload = self.store.load()
        if payload is None:
            return state
        if not isinstance(payload, dict):
            logger.warning("Discarding navigation state: expected an object, got %s", type(payload).__name__)
            return state
        loaded: Dict[str, NavCursor] = {}
        try:
            for section, cursor in payload.items():
                if not isinstance(cursor, dict):
                    raise ValueError(f"cursor for {section!r} is not an object")
                loaded[str(section)] = NavCursor.from_payload(cursor)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding navigation state: %s", exc)
            return state
        state.update(loaded)
        return state

    def _persist(self) -> None:
        try:
            self.store.save(self.snapshot())
        except OSError as exc:
            logger.warning("Could not persist navigation state: %s", exc)
