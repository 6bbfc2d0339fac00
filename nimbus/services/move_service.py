"""Destination picking for move operations with cycle prevention.

A move session browses the folder tree one level at a time and only ever
offers folders as destinations. When the item being moved is a folder, the
session first enumerates that folder's whole subtree (itself included) and
hides every folder in it, so the user can never pick a destination that would
put the folder inside itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, List, Optional

from ..errors import ApiError, MoveRejected, SessionClosed, TraversalError
from ..models import FolderRef, Listing, MoveTarget
from ..notifier import Notifier
from .base import BaseService


logger = logging.getLogger(__name__)

ListChildren = Callable[[Optional[str]], Listing]
MoveFn = Callable[[MoveTarget, Optional[str]], Any]
ErrorHook = Callable[[str, Exception], None]

# Raised by list_children for transport failures or unparseable listings.
LISTING_ERRORS = (ApiError, KeyError, TypeError, ValueError)

BROWSING = "browsing"
COMMITTED = "committed"
FAILED = "failed"
CANCELLED = "cancelled"


def collect_descendant_ids(
    folder_id: str,
    list_children: ListChildren,
    *,
    on_error: Optional[ErrorHook] = None,
    should_continue: Optional[Callable[[], bool]] = None,
) -> FrozenSet[str]:
    """Return ``folder_id`` plus the id of every folder below it.

    Children are listed one folder at a time. A folder whose listing fails is
    treated as a leaf after ``on_error`` has seen the failure; ``on_error`` may
    raise to abort the walk instead. Already visited ids are never expanded
    twice, so a back-edge in the tree cannot loop forever.
    """
    visited = {folder_id}
    pending = [folder_id]
    while pending:
        if should_continue is not None and not should_continue():
            logger.debug("Descendant walk for %s stopped with %d folders pending", folder_id, len(pending))
            break
        current = pending.pop()
        try:
            listing = list_children(current)
        except LISTING_ERRORS as exc:
            logger.warning("Descendant listing failed for folder %s: %s", current, exc)
            if on_error is not None:
                on_error(current, exc)
            continue
        for child in listing.folders:
            if child.id not in visited:
                visited.add(child.id)
                pending.append(child.id)
    return frozenset(visited)


class MoveSession:
    """One open-to-close cycle of a move dialog."""

    def __init__(
        self,
        target: MoveTarget,
        list_children: ListChildren,
        move: MoveFn,
        notifier: Notifier,
    ) -> None:
        self.target = target
        self.state = BROWSING
        self.current_folder_id: Optional[str] = None
        self.folders: List[FolderRef] = []
        self.breadcrumbs: List[FolderRef] = []
        self.excluded_ids: FrozenSet[str] = frozenset()
        self.exclusion_complete = True
        self.failed_folder_ids: List[str] = []
        self._list_children = list_children
        self._move = move
        self._notifier = notifier
        self._generation = 0

    @property
    def is_open(self) -> bool:
        return self.state == BROWSING

    def is_destination_allowed(self, folder_id: Optional[str]) -> bool:
        return folder_id is None or folder_id not in self.excluded_ids

    def compute_exclusions(self, *, abort_on_failure: bool = False) -> FrozenSet[str]:
        if not self.target.is_folder:
            self.excluded_ids = frozenset()
            return self.excluded_ids

        def _on_error(folder_id: str, exc: Exception) -> None:
            self.exclusion_complete = False
            self.failed_folder_ids.append(folder_id)
            if abort_on_failure:
                raise TraversalError(folder_id, exc) from exc

        excluded = collect_descendant_ids(
            self.target.id,
            self._list_children,
            on_error=_on_error,
            should_continue=lambda: self.is_open,
        )
        if self.is_open:
            self.excluded_ids = excluded
        return excluded

    def browse(self, folder_id: Optional[str]) -> bool:
        """Enter ``folder_id`` (``None`` for root). Returns False when nothing changed."""
        self._ensure_open()
        if not self.is_destination_allowed(folder_id):
            raise MoveRejected(f"Folder {folder_id} is inside the folder being moved")
        self._generation += 1
        generation = self._generation
        try:
            listing = self._list_children(folder_id)
        except LISTING_ERRORS as exc:
            logger.error("Could not list folder %s for move dialog: %s", folder_id, exc)
            if self._is_current(generation):
                self._notifier.notify("Could not load folders", "error")
            return False
        if not self._is_current(generation):
            logger.debug("Discarding stale listing for folder %s", folder_id)
            return False
        self._apply(folder_id, listing)
        return True

    def descend(self, folder: FolderRef) -> bool:
        if folder.id not in {shown.id for shown in self.folders}:
            raise MoveRejected(f"Folder {folder.id} is not a selectable subfolder here")
        return self.browse(folder.id)

    def commit(self) -> Any:
        self._ensure_open()
        destination = self.current_folder_id
        if not self.is_destination_allowed(destination):
            raise MoveRejected(f"Cannot move {self.target.id} into its own subtree")
        try:
            result = self._move(self.target, destination)
        except Exception:
            self._close(FAILED)
            raise
        self._close(COMMITTED)
        logger.info("Moved %s %s into %s", self.target.type.value, self.target.id, destination or "root")
        return result

    def cancel(self) -> None:
        if self.is_open:
            self._close(CANCELLED)

    def _apply(self, folder_id: Optional[str], listing: Listing) -> None:
        previous = self.folders
        self.folders = listing.without_folders(self.excluded_ids).folders
        if folder_id is None:
            self.breadcrumbs = []
        elif listing.breadcrumbs:
            self.breadcrumbs = list(listing.breadcrumbs)
        else:
            self.breadcrumbs = self._local_trail(folder_id, previous)
        self.current_folder_id = folder_id

    def _local_trail(self, folder_id: str, previous: List[FolderRef]) -> List[FolderRef]:
        # Backends that omit breadcrumbs still get a usable trail.
        for index, crumb in enumerate(self.breadcrumbs):
            if crumb.id == folder_id:
                return self.breadcrumbs[: index + 1]
        name = next((folder.name for folder in previous if folder.id == folder_id), folder_id)
        return self.breadcrumbs + [FolderRef(id=folder_id, name=name)]

    def _is_current(self, generation: int) -> bool:
        return self.is_open and generation == self._generation

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise SessionClosed(f"Move session for {self.target.id} is {self.state}")

    def _close(self, state: str) -> None:
        self.state = state
        self.excluded_ids = frozenset()
        self.folders = []
        self.breadcrumbs = []
        self._generation += 1


@dataclass
class SafeMoveResolver(BaseService):
    list_children: ListChildren
    move: MoveFn

    def open_session(self, target: MoveTarget) -> MoveSession:
        session = MoveSession(target, self.list_children, self.move, self.notifier)
        abort = self.config.move.traversal_failure == "abort"
        try:
            session.compute_exclusions(abort_on_failure=abort)
        except TraversalError:
            session.cancel()
            self.notify_error("Could not load folders")
            raise
        if not session.exclusion_complete:
            logger.warning(
                "Exclusion set for %s is partial; listings failed for %s",
                target.id,
                ", ".join(session.failed_folder_ids),
            )
        session.browse(None)
        return session

    def move_to(self, target: MoveTarget, destination_id: Optional[str]) -> Any:
        """Validate ``destination_id`` against a fresh exclusion set and move."""
        session = self.open_session(target)
        if destination_id is not None:
            if not session.is_destination_allowed(destination_id):
                session.cancel()
                raise MoveRejected(f"Cannot move {target.id} into {destination_id}")
            if not session.browse(destination_id):
                session.cancel()
                raise ApiError(f"Could not open destination folder {destination_id}")
        return session.commit()
