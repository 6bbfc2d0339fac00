"""In-memory folder tree backing the sandbox backend."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional


DEFAULT_USER = "sandbox-user"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AccessEntry:
    user_id: str
    access_type: str
    granted_by: str
    granted_at: datetime = field(default_factory=_now)


@dataclass
class FolderRecord:
    id: str
    user_id: str
    name: str
    parent_id: Optional[str]
    color: str = ""
    is_starred: bool = False
    deleted_at: Optional[datetime] = None
    access_list: List[AccessEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class FileRecord:
    id: str
    user_id: str
    filename: str
    size: int
    content_type: str
    object_path: str
    folder_id: Optional[str]
    is_starred: bool = False
    deleted_at: Optional[datetime] = None
    access_list: List[AccessEntry] = field(default_factory=list)
    public_link: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class SandboxStore:
    """Tree of folders and files with the server-side rules of the backend."""

    users: Dict[str, Dict[str, str]] = field(default_factory=dict)
    _folders: Dict[str, FolderRecord] = field(default_factory=dict)
    _files: Dict[str, FileRecord] = field(default_factory=dict)
    _objects: Dict[str, bytes] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.users.setdefault(DEFAULT_USER, {"id": DEFAULT_USER, "email": "sandbox@nimbus.local", "name": "Sandbox"})

    # Folders ---------------------------------------------------------------

    def create_folder(self, name: str, parent_id: Optional[str] = None, *, user_id: str = DEFAULT_USER, color: str = "") -> FolderRecord:
        if parent_id is not None:
            self.get_folder(parent_id)
        folder = FolderRecord(id=uuid.uuid4().hex, user_id=user_id, name=name, parent_id=parent_id, color=color)
        self._folders[folder.id] = folder
        return folder

    def get_folder(self, folder_id: str) -> FolderRecord:
        folder = self._folders.get(folder_id)
        if folder is None:
            raise KeyError(f"Folder not found: {folder_id}")
        return folder

    def get_file(self, file_id: str) -> FileRecord:
        entry = self._files.get(file_id)
        if entry is None:
            raise KeyError(f"File not found: {file_id}")
        return entry

    def subfolders(self, parent_id: Optional[str], *, user_id: Optional[str] = None, deleted: bool = False) -> List[FolderRecord]:
        found = [
            f for f in self._folders.values()
            if f.parent_id == parent_id and (f.deleted_at is not None) == deleted
            and (user_id is None or f.user_id == user_id)
        ]
        return sorted(found, key=lambda f: f.name.lower())

    def folder_files(self, folder_id: Optional[str], *, user_id: Optional[str] = None, deleted: bool = False) -> List[FileRecord]:
        found = [
            f for f in self._files.values()
            if f.folder_id == folder_id and (f.deleted_at is not None) == deleted
            and (user_id is None or f.user_id == user_id)
        ]
        return sorted(found, key=lambda f: f.filename.lower())

    def breadcrumbs(self, folder_id: str) -> List[FolderRecord]:
        trail: List[FolderRecord] = []
        seen = set()
        current: Optional[str] = folder_id
        while current is not None and current not in seen:
            seen.add(current)
            folder = self.get_folder(current)
            trail.append(folder)
            current = folder.parent_id
        return list(reversed(trail))

    def is_descendant(self, folder_id: str, ancestor_id: str) -> bool:
        return any(crumb.id == ancestor_id for crumb in self.breadcrumbs(folder_id))

    def move_folder(self, folder_id: str, target_id: Optional[str]) -> FolderRecord:
        folder = self.get_folder(folder_id)
        if target_id is not None:
            if target_id == folder_id:
                raise ValueError("A folder cannot be moved into itself")
            self.get_folder(target_id)
            if self.is_descendant(target_id, folder_id):
                raise ValueError("A folder cannot be moved into its own subfolder")
        folder.parent_id = target_id
        folder.updated_at = _now()
        return folder

    def update_folder(self, folder_id: str, *, name: Optional[str] = None, color: Optional[str] = None) -> FolderRecord:
        folder = self.get_folder(folder_id)
        if name:
            folder.name = name
        if color is not None:
            folder.color = color
        folder.updated_at = _now()
        return folder

    def delete_folder(self, folder_id: str, *, permanent: bool = False) -> None:
        folder = self.get_folder(folder_id)
        for child in [f for f in self._folders.values() if f.parent_id == folder_id]:
            self.delete_folder(child.id, permanent=permanent)
        for entry in [f for f in self._files.values() if f.folder_id == folder_id]:
            self.delete_file(entry.id, permanent=permanent)
        if permanent:
            self._folders.pop(folder.id, None)
        elif folder.deleted_at is None:
            folder.deleted_at = _now()

    def restore_folder(self, folder_id: str) -> FolderRecord:
        folder = self.get_folder(folder_id)
        folder.deleted_at = None
        for child in [f for f in self._folders.values() if f.parent_id == folder_id]:
            self.restore_folder(child.id)
        for entry in [f for f in self._files.values() if f.folder_id == folder_id]:
            entry.deleted_at = None
        # A restored folder whose parent is still trashed goes back to the root.
        if folder.parent_id is not None and self.get_folder(folder.parent_id).deleted_at is not None:
            folder.parent_id = None
        return folder

    def toggle_folder_star(self, folder_id: str) -> bool:
        folder = self.get_folder(folder_id)
        folder.is_starred = not folder.is_starred
        return folder.is_starred

    # Files -----------------------------------------------------------------

    def issue_object_path(self, filename: str, *, user_id: str = DEFAULT_USER) -> str:
        return f"users/{user_id}/{uuid.uuid4().hex}-{filename}"

    def put_object(self, object_path: str, data: bytes) -> None:
        self._objects[object_path] = data

    def get_object(self, object_path: str) -> bytes:
        if object_path not in self._objects:
            raise KeyError(f"Object not found: {object_path}")
        return self._objects[object_path]

    def create_file(
        self,
        filename: str,
        size: int,
        content_type: str,
        object_path: str,
        folder_id: Optional[str] = None,
        *,
        user_id: str = DEFAULT_USER,
    ) -> FileRecord:
        if folder_id is not None:
            self.get_folder(folder_id)
        if object_path not in self._objects:
            raise ValueError(f"No uploaded object at {object_path}")
        entry = FileRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            filename=filename,
            size=size,
            content_type=content_type,
            object_path=object_path,
            folder_id=folder_id,
        )
        self._files[entry.id] = entry
        return entry

    def move_file(self, file_id: str, target_id: Optional[str]) -> FileRecord:
        entry = self.get_file(file_id)
        if target_id is not None:
            self.get_folder(target_id)
        entry.folder_id = target_id
        entry.updated_at = _now()
        return entry

    def delete_file(self, file_id: str, *, permanent: bool = False) -> None:
        entry = self.get_file(file_id)
        if permanent:
            self._files.pop(file_id, None)
            self._objects.pop(entry.object_path, None)
        elif entry.deleted_at is None:
            entry.deleted_at = _now()

    def restore_file(self, file_id: str) -> FileRecord:
        entry = self.get_file(file_id)
        entry.deleted_at = None
        if entry.folder_id is not None and self.get_folder(entry.folder_id).deleted_at is not None:
            entry.folder_id = None
        return entry

    def toggle_file_star(self, file_id: str) -> bool:
        entry = self.get_file(file_id)
        entry.is_starred = not entry.is_starred
        return entry.is_starred

    def recent_files(self, *, user_id: str = DEFAULT_USER, limit: int = 25) -> List[FileRecord]:
        live = [f for f in self._files.values() if f.deleted_at is None and f.user_id == user_id]
        live.sort(key=lambda f: f.updated_at, reverse=True)
        return live[:limit]

    def starred(self, *, user_id: str = DEFAULT_USER):
        folders = [f for f in self._folders.values() if f.is_starred and f.deleted_at is None and f.user_id == user_id]
        files = [f for f in self._files.values() if f.is_starred and f.deleted_at is None and f.user_id == user_id]
        return folders, files

    def trashed(self, *, user_id: str = DEFAULT_USER):
        # Only the top of each trashed subtree is listed at the trash root.
        folders = [
            f for f in self._folders.values()
            if f.deleted_at is not None and f.user_id == user_id
            and (f.parent_id is None or self._folders[f.parent_id].deleted_at is None)
        ]
        files = [
            f for f in self._files.values()
            if f.deleted_at is not None and f.user_id == user_id
            and (f.folder_id is None or self._folders[f.folder_id].deleted_at is None)
        ]
        return folders, files

    def storage_usage(self, *, user_id: str = DEFAULT_USER) -> int:
        return sum(f.size for f in self._files.values() if f.user_id == user_id)

    # Sharing ---------------------------------------------------------------

    def resource(self, resource_id: str):
        if resource_id in self._folders:
            return "folder", self._folders[resource_id]
        if resource_id in self._files:
            return "file", self._files[resource_id]
        raise KeyError(f"Resource not found: {resource_id}")

    def set_access(self, resource_id: str, user_id: str, access_type: str, *, granted_by: str = DEFAULT_USER) -> AccessEntry:
        if access_type not in ("read", "write"):
            raise ValueError(f"Unknown permission: {access_type}")
        _, record = self.resource(resource_id)
        for entry in record.access_list:
            if entry.user_id == user_id:
                entry.access_type = access_type
                return entry
        entry = AccessEntry(user_id=user_id, access_type=access_type, granted_by=granted_by)
        record.access_list.append(entry)
        return entry

    def remove_access(self, resource_id: str, user_id: str) -> bool:
        _, record = self.resource(resource_id)
        before = len(record.access_list)
        record.access_list = [entry for entry in record.access_list if entry.user_id != user_id]
        return len(record.access_list) != before

    def shared_with(self, user_id: str):
        folders = [f for f in self._folders.values() if f.deleted_at is None and _has_access(f, user_id)]
        files = [f for f in self._files.values() if f.deleted_at is None and _has_access(f, user_id)]
        return folders, files

    def search_users(self, query: str) -> List[Dict[str, str]]:
        needle = query.lower()
        return [u for u in self.users.values() if needle in u.get("email", "").lower() or needle in u.get("name", "").lower()]


def _has_access(record, user_id: str) -> bool:
    return any(entry.user_id == user_id for entry in record.access_list)
