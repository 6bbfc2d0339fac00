"""Folder-browser operations driven by the navigation cursors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from ..clients.api_client import FileApi, FolderApi, ShareApi, move_item
from ..clients.transfer_clients import DownloadClient
from ..errors import ApiError
from ..models import FileRef, FolderRef, ItemType, Listing, MoveTarget
from .base import BaseService
from .navigation_service import NavigationStore


logger = logging.getLogger(__name__)


@dataclass
class ExplorerService(BaseService):
    navigation: NavigationStore
    folder_api: FolderApi
    file_api: FileApi
    share_api: ShareApi
    downloader: Optional[DownloadClient] = None

    def load_contents(self, section: str) -> Listing:
        cursor = self.navigation.get(section)
        try:
            listing = self._load(section, cursor.current_folder)
        except ApiError as exc:
            logger.error("Loading %s contents failed: %s", section, exc)
            self.notify_error("Could not load contents")
            raise
        return listing

    def _load(self, section: str, folder: Optional[FolderRef]) -> Listing:
        if section == "shared":
            if folder is not None and folder.shared:
                return _shared_listing(self.share_api.shared_folder_contents(folder.id))
            return _shared_root_listing(self.share_api.shared_with_me())
        if section == "recent":
            return Listing(files=self.file_api.recent().files)
        if section == "starred":
            if folder is not None:
                return self.folder_api.list_children(folder.id, starred_only=True)
            return Listing(folders=self.folder_api.starred(), files=self.file_api.starred().files)
        if section == "trash":
            if folder is not None:
                return self.folder_api.list_children(folder.id)
            return Listing(folders=self.folder_api.trash(), files=self.file_api.trash().files)
        return self.folder_api.list_children(folder.id if folder else None)

    def create_folder(self, section: str, name: str, *, color: Optional[str] = None) -> Dict[str, Any]:
        parent_id = self.navigation.get(section).folder_id
        try:
            folder = self.folder_api.create(name, parent_id, color=color)
        except ApiError as exc:
            self.notify_error(exc.message or "Could not create folder")
            raise
        self.notify_success("Folder created")
        return folder

    def trash_item(self, item_id: str, item_type: ItemType) -> bool:
        return self._delete(item_id, item_type, permanent=False)

    def permanent_delete(self, item_id: str, item_type: ItemType) -> bool:
        return self._delete(item_id, item_type, permanent=True)

    def _delete(self, item_id: str, item_type: ItemType, *, permanent: bool) -> bool:
        noun = "Folder" if item_type is ItemType.FOLDER else "File"
        try:
            if item_type is ItemType.FOLDER:
                self.folder_api.delete(item_id, permanent=permanent)
            else:
                self.file_api.delete(item_id, permanent=permanent)
        except ApiError as exc:
            logger.error("Deleting %s %s failed: %s", noun.lower(), item_id, exc)
            self.notify_error(f"{noun} could not be deleted")
            return False
        self.notify_success(f"{noun} permanently deleted" if permanent else f"{noun} moved to trash")
        return True

    def toggle_star(self, item_id: str, item_type: ItemType, name: str = "") -> Optional[bool]:
        try:
            if item_type is ItemType.FOLDER:
                starred = self.folder_api.toggle_star(item_id)
            else:
                starred = self.file_api.toggle_star(item_id)
        except ApiError as exc:
            logger.error("Star toggle for %s failed: %s", item_id, exc)
            self.notify_error("Operation failed")
            return None
        label = name or item_id
        self.notify_success(f"{label} added to starred" if starred else f"{label} removed from starred")
        return starred

    def restore_item(self, item_id: str, item_type: ItemType) -> bool:
        try:
            if item_type is ItemType.FOLDER:
                self.folder_api.restore(item_id)
            else:
                self.file_api.restore(item_id)
        except ApiError as exc:
            logger.error("Restore of %s failed: %s", item_id, exc)
            self.notify_error("Restore failed")
            return False
        self.notify_success("Item restored")
        return True

    def move_item(self, target: MoveTarget, destination_id: Optional[str]) -> Any:
        try:
            result = move_item(self.folder_api, self.file_api, target, destination_id)
        except ApiError as exc:
            logger.error("Moving %s into %s failed: %s", target.id, destination_id, exc)
            self.notify_error(f"Move failed: {exc.message}")
            raise
        self.notify_success("Item moved")
        return result

    def download(self, file: FileRef, destination_dir: Path | str) -> Optional[Path]:
        if self.downloader is None:
            raise RuntimeError("No download client configured")
        try:
            path = self.downloader.download(file, destination_dir)
        except (ApiError, OSError) as exc:
            logger.error("Download of %s failed: %s", file.id, exc)
            self.notify_error("File could not be downloaded")
            return None
        self.notify_success("Downloading file...")
        return path


def _unwrap_shared(entry: Mapping[str, Any]) -> Dict[str, Any]:
    resource = dict(entry.get("resource") or {})
    if entry.get("access_type"):
        resource["access_type"] = entry["access_type"]
    return resource


def _shared_root_listing(entries: List[Mapping[str, Any]]) -> Listing:
    folders = [
        FolderRef.from_payload(_unwrap_shared(entry), shared=True)
        for entry in entries or []
        if entry.get("resource_type") == "folder"
    ]
    files = [
        FileRef.from_payload(_unwrap_shared(entry), shared=True)
        for entry in entries or []
        if entry.get("resource_type") == "file"
    ]
    return Listing(folders=folders, files=files)


def _shared_listing(payload: Optional[Mapping[str, Any]]) -> Listing:
    if not payload:
        return Listing()
    return Listing(
        folders=[FolderRef.from_payload(_unwrap_shared(entry), shared=True) for entry in payload.get("folders") or []],
        files=[FileRef.from_payload(_unwrap_shared(entry), shared=True) for entry in payload.get("files") or []],
    )
