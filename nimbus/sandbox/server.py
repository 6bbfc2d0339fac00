"""FastAPI sandbox that speaks the Nimbus REST dialect.

The sandbox keeps everything in memory and issues "presigned" URLs that point
back at its own ``/objects`` routes, so the full upload flow (upload URL,
direct PUT, metadata record) can run locally without an object store.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel, Field

from .store import DEFAULT_USER, FileRecord, FolderRecord, SandboxStore


logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

store = SandboxStore()

app = FastAPI(title="Nimbus Sandbox API", version="0.1.0")

_cors_origins = [origin.strip() for origin in os.environ.get("NIMBUS_SANDBOX_CORS_ORIGINS", "*").split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins or ["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter(prefix=API_PREFIX)


async def get_current_user(request: Request) -> str:
    """The sandbox treats the bearer token itself as the user id."""
    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return DEFAULT_USER


class FolderCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    folder_id: Optional[str] = None
    color: Optional[str] = None


class FolderUpdateRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class MoveRequest(BaseModel):
    folder_id: Optional[str] = None


class FileCreateRequest(BaseModel):
    filename: str
    size: int = Field(ge=0)
    content_type: str
    minio_path: str
    folder_id: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    content: str


class AccessUpdateRequest(BaseModel):
    user_id: str
    permission: str = Field(default="read")


def _serialize_folder(folder: FolderRecord) -> dict[str, Any]:
    return {
        "id": folder.id,
        "name": folder.name,
        "color": folder.color,
        "folder_id": folder.parent_id,
        "is_starred": folder.is_starred,
        "item_count": len(store.subfolders(folder.id)) + len(store.folder_files(folder.id)),
        "deleted_at": folder.deleted_at.isoformat() if folder.deleted_at else None,
        "created_at": folder.created_at.isoformat(),
        "updated_at": folder.updated_at.isoformat(),
    }


def _serialize_file(entry: FileRecord) -> dict[str, Any]:
    return {
        "id": entry.id,
        "user_id": entry.user_id,
        "filename": entry.filename,
        "size": entry.size,
        "content_type": entry.content_type,
        "minio_path": entry.object_path,
        "folder_id": entry.folder_id,
        "is_starred": entry.is_starred,
        "public_link": entry.public_link,
        "deleted_at": entry.deleted_at.isoformat() if entry.deleted_at else None,
        "created_at": entry.created_at.isoformat(),
        "updated_at": entry.updated_at.isoformat(),
    }


def _object_url(request: Request, object_path: str) -> str:
    return f"{str(request.base_url).rstrip('/')}/objects/{object_path}"


# Folders ------------------------------------------------------------------


@router.get("/folders/root")
async def root_contents(user_id: str = Depends(get_current_user)):
    return {
        "folders": [_serialize_folder(f) for f in store.subfolders(None, user_id=user_id)],
        "files": [_serialize_file(f) for f in store.folder_files(None, user_id=user_id)],
    }


@router.get("/folders/starred")
async def starred_folders(user_id: str = Depends(get_current_user)):
    folders, _ = store.starred(user_id=user_id)
    return {"folders": [_serialize_folder(f) for f in folders]}


@router.get("/folders/trash")
async def trashed_folders(user_id: str = Depends(get_current_user)):
    folders, _ = store.trashed(user_id=user_id)
    return {"folders": [_serialize_folder(f) for f in folders]}


@router.get("/folders/storage")
async def storage_usage(user_id: str = Depends(get_current_user)):
    total = store.storage_usage(user_id=user_id)
    gigabytes = total / (1024 ** 3)
    usage = f"{gigabytes:.1f} GB" if gigabytes >= 1.0 else f"{total / (1024 ** 2):.0f} MB"
    return {"total_size": total, "usage": usage, "usage_gb": gigabytes}


@router.post("/folders/")
async def create_folder(payload: FolderCreateRequest, user_id: str = Depends(get_current_user)):
    try:
        folder = store.create_folder(payload.name, payload.folder_id, user_id=user_id, color=payload.color or "")
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"folder": _serialize_folder(folder)}


@router.get("/folders/{folder_id}")
async def folder_contents(folder_id: str, starred_only: bool = False):
    try:
        folder = store.get_folder(folder_id)
        trail = store.breadcrumbs(folder_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    deleted = folder.deleted_at is not None
    folders = store.subfolders(folder_id, deleted=deleted)
    files = store.folder_files(folder_id, deleted=deleted)
    if starred_only:
        folders = [f for f in folders if f.is_starred]
        files = [f for f in files if f.is_starred]
    return {
        "folder": _serialize_folder(folder),
        "folders": [_serialize_folder(f) for f in folders],
        "files": [_serialize_file(f) for f in files],
        "breadcrumbs": [{"id": crumb.id, "name": crumb.name} for crumb in trail],
        "count": len(folders) + len(files),
    }


@router.put("/folders/{folder_id}")
async def update_folder(folder_id: str, payload: FolderUpdateRequest):
    try:
        folder = store.update_folder(folder_id, name=payload.name, color=payload.color)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"folder": _serialize_folder(folder)}


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, permanent: bool = False):
    try:
        store.delete_folder(folder_id, permanent=permanent)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": True, "permanent": permanent}


@router.post("/folders/{folder_id}/star")
async def star_folder(folder_id: str):
    try:
        return {"is_starred": store.toggle_folder_star(folder_id)}
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/folders/{folder_id}/restore")
async def restore_folder(folder_id: str):
    try:
        folder = store.restore_folder(folder_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"folder": _serialize_folder(folder)}


@router.post("/folders/{folder_id}/move")
async def move_folder(folder_id: str, payload: MoveRequest):
    try:
        folder = store.move_folder(folder_id, payload.folder_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Moved folder %s into %s", folder_id, payload.folder_id or "root")
    return {"folder": _serialize_folder(folder)}


# Files ----------------------------------------------------------------------


@router.get("/files/upload-url")
async def upload_url(request: Request, filename: str, content_type: str, user_id: str = Depends(get_current_user)):
    if not filename or not content_type:
        raise HTTPException(status_code=400, detail="filename and content_type are required")
    object_path = store.issue_object_path(filename, user_id=user_id)
    return {
        "presigned_url": _object_url(request, object_path),
        "filename": filename,
        "minio_path": object_path,
        "expires_in": 3600,
    }


@router.post("/files/")
async def create_file(payload: FileCreateRequest, user_id: str = Depends(get_current_user)):
    try:
        entry = store.create_file(
            payload.filename,
            payload.size,
            payload.content_type,
            payload.minio_path,
            payload.folder_id,
            user_id=user_id,
        )
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"file": _serialize_file(entry)}


@router.get("/files/")
async def list_files(user_id: str = Depends(get_current_user)):
    return {"files": [_serialize_file(f) for f in store.recent_files(user_id=user_id, limit=10_000)]}


@router.get("/files/recent")
async def recent_files(user_id: str = Depends(get_current_user)):
    return {"files": [_serialize_file(f) for f in store.recent_files(user_id=user_id)]}


@router.get("/files/starred")
async def starred_files(user_id: str = Depends(get_current_user)):
    _, files = store.starred(user_id=user_id)
    return {"files": [_serialize_file(f) for f in files]}


@router.get("/files/trash")
async def trashed_files(user_id: str = Depends(get_current_user)):
    _, files = store.trashed(user_id=user_id)
    return {"files": [_serialize_file(f) for f in files]}


@router.get("/files/download-url")
async def download_url(request: Request, file_id: str):
    try:
        entry = store.get_file(file_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"presigned_url": _object_url(request, entry.object_path), "expires_in": 3600}


@router.get("/files/preview-url")
async def preview_url(request: Request, file_id: str):
    return await download_url(request, file_id)


@router.get("/files/content", response_class=PlainTextResponse)
async def file_content(file_id: str):
    try:
        entry = store.get_file(file_id)
        data = store.get_object(entry.object_path)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return PlainTextResponse(data.decode("utf-8", errors="replace"))


@router.put("/files/{file_id}/content")
async def update_content(file_id: str, payload: ContentUpdateRequest):
    try:
        entry = store.get_file(file_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    data = payload.content.encode("utf-8")
    store.put_object(entry.object_path, data)
    entry.size = len(data)
    return {"file": _serialize_file(entry)}


@router.delete("/files/{file_id}")
async def delete_file(file_id: str, permanent: bool = False):
    try:
        store.delete_file(file_id, permanent=permanent)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"deleted": True, "permanent": permanent}


@router.post("/files/{file_id}/star")
async def star_file(file_id: str):
    try:
        return {"is_starred": store.toggle_file_star(file_id)}
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/files/{file_id}/restore")
async def restore_file(file_id: str):
    try:
        entry = store.restore_file(file_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"file": _serialize_file(entry)}


@router.post("/files/{file_id}/move")
async def move_file(file_id: str, payload: MoveRequest):
    try:
        entry = store.move_file(file_id, payload.folder_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"file": _serialize_file(entry)}


# Sharing --------------------------------------------------------------------


@router.get("/shares/resource/{resource_id}")
async def resource_shares(resource_id: str):
    try:
        _, record = store.resource(resource_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    access_list = []
    for entry in record.access_list:
        user = store.users.get(entry.user_id, {})
        access_list.append(
            {
                "user_id": entry.user_id,
                "access_type": entry.access_type,
                "email": user.get("email"),
                "name": user.get("name"),
            }
        )
    return {"access_list": access_list, "public_link": getattr(record, "public_link", None)}


@router.get("/shares/shared-with-me")
async def shared_with_me(user_id: str = Depends(get_current_user)):
    folders, files = store.shared_with(user_id)
    items = []
    for folder in folders:
        items.append({"resource_type": "folder", "resource": _serialize_folder(folder), "access_type": _access_of(folder, user_id), "owner": folder.user_id})
    for entry in files:
        items.append({"resource_type": "file", "resource": _serialize_file(entry), "access_type": _access_of(entry, user_id), "owner": entry.user_id})
    return items


@router.get("/shares/shared-folder/{folder_id}")
async def shared_folder_contents(folder_id: str, user_id: str = Depends(get_current_user)):
    try:
        folder = store.get_folder(folder_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    access = _inherited_access(folder, user_id)
    if access is None:
        raise HTTPException(status_code=403, detail="No access to this folder")
    return {
        "folders": [{"resource": _serialize_folder(f), "access_type": access} for f in store.subfolders(folder_id)],
        "files": [{"resource": _serialize_file(f), "access_type": access} for f in store.folder_files(folder_id)],
    }


@router.put("/shares/access/{resource_id}")
async def update_access(resource_id: str, payload: AccessUpdateRequest, user_id: str = Depends(get_current_user)):
    try:
        entry = store.set_access(resource_id, payload.user_id, payload.permission, granted_by=user_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"user_id": entry.user_id, "access_type": entry.access_type}


@router.delete("/shares/access/{resource_id}/{target_user}")
async def remove_access(resource_id: str, target_user: str):
    try:
        removed = store.remove_access(resource_id, target_user)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"removed": removed}


@router.get("/users/search")
async def search_users(q: str = ""):
    return {"users": store.search_users(q) if q else []}


def _access_of(record, user_id: str) -> str:
    for entry in record.access_list:
        if entry.user_id == user_id:
            return entry.access_type
    return "read"


def _inherited_access(folder: FolderRecord, user_id: str) -> Optional[str]:
    if folder.user_id == user_id:
        return "write"
    for crumb in reversed(store.breadcrumbs(folder.id)):
        for entry in crumb.access_list:
            if entry.user_id == user_id:
                return entry.access_type
    return None


app.include_router(router)


# Object store stand-in --------------------------------------------------------


@app.put("/objects/{object_path:path}")
async def put_object(object_path: str, request: Request):
    store.put_object(object_path, await request.body())
    return Response(status_code=200)


@app.get("/objects/{object_path:path}")
async def get_object(object_path: str):
    try:
        data = store.get_object(object_path)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(content=data, media_type="application/octet-stream")
