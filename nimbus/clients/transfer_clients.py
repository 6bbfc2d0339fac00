"""Presigned-URL transfers between local files and the object store."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from ..errors import ApiError, UploadError
from ..models import FileRef
from .api_client import FileApi


logger = logging.getLogger(__name__)


@dataclass
class UploadClient:
    files: FileApi
    object_store: Any
    max_upload_bytes: int = 100 * 1024 * 1024
    default_content_type: str = "application/octet-stream"
    timeout: float = 300.0

    def upload(
        self,
        file_path: Path | str,
        folder_id: Optional[str] = None,
        *,
        content_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.is_file():
            raise UploadError(f"No such file: {path}")
        size = path.stat().st_size
        if size > self.max_upload_bytes:
            raise UploadError(f"{path.name} is larger than {self.max_upload_bytes} bytes")
        mime = content_type or mimetypes.guess_type(path.name)[0] or self.default_content_type

        ticket = self.files.upload_url(path.name, mime)
        with path.open("rb") as handle:
            self._put_object(ticket.presigned_url, handle, mime)
        record = self.files.create(
            filename=path.name,
            size=size,
            content_type=mime,
            object_path=ticket.object_path,
            folder_id=folder_id,
        )
        logger.info("Uploaded %s (%d bytes) to %s", path.name, size, ticket.object_path)
        return record

    def _put_object(self, url: str, body: Any, content_type: str) -> None:
        try:
            response = self.object_store.put(
                url,
                data=body,
                headers={"Content-Type": content_type},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ApiError(f"Upload failed: {exc}", endpoint=url) from exc
        if response.status_code not in (200, 201, 204):
            raise ApiError(f"Upload failed: {response.status_code}", status=response.status_code, endpoint=url)


@dataclass
class DownloadClient:
    files: FileApi
    object_store: Any
    chunk_size: int = 64 * 1024
    timeout: float = 300.0

    def download(self, file: FileRef, destination_dir: Path | str) -> Path:
        url = self.files.download_url(file.id)
        target = Path(destination_dir) / (file.filename or file.id)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            response = self.object_store.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ApiError(f"Failed to download file: {exc}", endpoint=url) from exc
        tmp_path = target.with_suffix(target.suffix + ".part")
        try:
            if response.status_code != 200:
                raise ApiError("Failed to download file", status=response.status_code, endpoint=url)
            with tmp_path.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if chunk:
                        handle.write(chunk)
            tmp_path.replace(target)
        except requests.RequestException as exc:
            logger.error("Download of %s interrupted: %s", file.id, exc)
            raise ApiError(f"Download interrupted: {exc}", endpoint=url) from exc
        finally:
            tmp_path.unlink(missing_ok=True)
            close = getattr(response, "close", None)
            if close is not None:
                close()
        logger.info("Downloaded %s to %s", file.id, target)
        return target
