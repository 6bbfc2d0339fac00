"""Data models shared across the client services."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple


SECTIONS: Tuple[str, ...] = ("home", "shared", "trash", "recent", "starred")

ACCESS_LEVELS: Tuple[str, ...] = ("read", "write")


class ItemType(str, Enum):
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True)
class FolderRef:
    id: str
    name: str
    shared: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, shared: bool = False) -> "FolderRef":
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name", "")),
            shared=bool(payload.get("shared", shared)),
        )

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.shared:
            data["shared"] = True
        return data


@dataclass(frozen=True)
class NavCursor:
    current_folder: Optional[FolderRef] = None
    path: Tuple[FolderRef, ...] = ()

    @classmethod
    def root(cls) -> "NavCursor":
        return cls()

    @property
    def is_root(self) -> bool:
        return self.current_folder is None

    @property
    def folder_id(self) -> Optional[str]:
        return self.current_folder.id if self.current_folder else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "NavCursor":
        current = payload.get("current_folder")
        path = payload.get("path", [])
        if not isinstance(path, list):
            raise ValueError("path must be a list")
        folders = tuple(FolderRef.from_payload(item) for item in path)
        current_ref = FolderRef.from_payload(current) if current is not None else None
        if (current_ref is None) != (len(folders) == 0):
            raise ValueError("current_folder and path disagree")
        if current_ref is not None and folders[-1] != current_ref:
            raise ValueError("path does not end with current_folder")
        return cls(current_folder=current_ref, path=folders)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "current_folder": self.current_folder.to_payload() if self.current_folder else None,
            "path": [folder.to_payload() for folder in self.path],
        }


@dataclass(frozen=True)
class MoveTarget:
    id: str
    type: ItemType
    name: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.type is ItemType.FOLDER


@dataclass
class FileRef:
    id: str
    filename: str
    size: int = 0
    content_type: str = ""
    folder_id: Optional[str] = None
    is_starred: bool = False
    shared: bool = False
    access_type: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, shared: bool = False) -> "FileRef":
        return cls(
            id=str(payload["id"]),
            filename=str(payload.get("filename", "")),
            size=int(payload.get("size") or 0),
            content_type=str(payload.get("content_type") or ""),
            folder_id=payload.get("folder_id"),
            is_starred=bool(payload.get("is_starred", False)),
            shared=shared,
            access_type=payload.get("access_type"),
        )


@dataclass
class Listing:
    folders: List[FolderRef] = field(default_factory=list)
    files: List[FileRef] = field(default_factory=list)
    breadcrumbs: List[FolderRef] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]], *, folders_key: str = "folders") -> "Listing":
        if not payload:
            return cls()
        folders = payload.get(folders_key)
        if folders is None and folders_key == "folders":
            folders = payload.get("subfolders")
        return cls(
            folders=[FolderRef.from_payload(item) for item in folders or []],
            files=[FileRef.from_payload(item) for item in payload.get("files") or []],
            breadcrumbs=[FolderRef.from_payload(item) for item in payload.get("breadcrumbs") or []],
        )

    def without_folders(self, excluded: FrozenSet[str]) -> "Listing":
        return replace(self, folders=[folder for folder in self.folders if folder.id not in excluded])


@dataclass
class UploadTicket:
    presigned_url: str
    object_path: str
    filename: str
    expires_in: int = 3600


@dataclass
class ShareEntry:
    user_id: str
    access_type: str
    email: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ShareEntry":
        user = payload.get("user") or {}
        return cls(
            user_id=str(payload.get("user_id") or user.get("id", "")),
            access_type=str(payload.get("access_type", "read")),
            email=payload.get("email") or user.get("email"),
            name=payload.get("name") or user.get("name"),
        )
