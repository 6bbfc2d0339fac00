"""REST client for the Nimbus backend.

``NimbusApiClient`` is an explicit value: it is built once (see
:class:`nimbus.runtime.NimbusRuntime`) and handed to every service that talks
to the backend. The bearer token lives on the instance and is mirrored to an
optional state slot so a later process can pick the session up again.

The facades below map one method to one backend endpoint and return decoded
JSON or parsed models; they never notify the user. Converting failures to
notifications is the calling service's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import requests

from ..errors import ApiError
from ..models import FolderRef, ItemType, Listing, MoveTarget, ShareEntry, UploadTicket
from ..state_store import load_mapping


logger = logging.getLogger(__name__)


class NimbusApiClient:
    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 10.0,
        http_client: Optional[Any] = None,
        token_store: Optional[Any] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http_client = http_client if http_client is not None else requests.Session()
        self.token_store = token_store
        if token is None and token_store is not None:
            token = load_mapping(token_store).get("token")
        self.token: Optional[str] = token

    def set_token(self, token: Optional[str]) -> None:
        self.token = token
        if self.token_store is None:
            return
        if token:
            self.token_store.save({"token": token})
        else:
            self.token_store.clear()

    def auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        response = self._send(method, endpoint, params=params, json=json, headers=headers)
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError("Malformed JSON response", status=response.status_code, endpoint=endpoint) from exc

    def get(self, endpoint: str, *, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, data: Optional[Any] = None) -> Any:
        return self.request("POST", endpoint, json=data if data is not None else {})

    def put(self, endpoint: str, data: Optional[Any] = None) -> Any:
        return self.request("PUT", endpoint, json=data if data is not None else {})

    def delete(self, endpoint: str, *, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self.request("DELETE", endpoint, params=params)

    def get_text(self, endpoint: str, *, params: Optional[Mapping[str, Any]] = None) -> str:
        response = self._send("GET", endpoint, params=params, headers={"Accept": "text/plain"})
        return response.text

    def _send(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        merged = self.auth_headers()
        if headers:
            merged.update(headers)
        try:
            response = self.http_client.request(
                method,
                self._url(endpoint),
                params=dict(params) if params else None,
                json=json,
                headers=merged,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("API request %s %s failed: %s", method, endpoint, exc)
            raise ApiError(f"Network error: {exc}", endpoint=endpoint) from exc
        if response.status_code >= 400:
            message = _error_message(response)
            logger.error("API request %s %s returned %s: %s", method, endpoint, response.status_code, message)
            raise ApiError(message, status=response.status_code, endpoint=endpoint)
        return response


def _error_message(response: Any) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("error", "detail", "message"):
            if payload.get(key):
                return str(payload[key])
    return f"HTTP error! status: {response.status_code}"


def _listing(payload: Any, endpoint: str) -> Listing:
    try:
        return Listing.from_payload(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.error("Malformed listing from %s: %r", endpoint, exc)
        raise ApiError(f"Malformed listing: {exc!r}", endpoint=endpoint) from exc


def _quote(value: str) -> str:
    return quote(str(value), safe="")


@dataclass
class FolderApi:
    client: NimbusApiClient

    def list_children(self, folder_id: Optional[str], *, starred_only: bool = False) -> Listing:
        if folder_id is None:
            return _listing(self.client.get("/folders/root"), "/folders/root")
        params = {"starred_only": "true"} if starred_only else None
        endpoint = f"/folders/{_quote(folder_id)}"
        return _listing(self.client.get(endpoint, params=params), endpoint)

    def create(self, name: str, parent_id: Optional[str] = None, *, color: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": name, "folder_id": parent_id}
        if color:
            payload["color"] = color
        response = self.client.post("/folders/", payload)
        folder = response.get("folder") if isinstance(response, dict) else None
        if not folder:
            raise ApiError("Unexpected create-folder response", endpoint="/folders/")
        return folder

    def update(self, folder_id: str, updates: Mapping[str, Any]) -> Any:
        return self.client.put(f"/folders/{_quote(folder_id)}", dict(updates))

    def delete(self, folder_id: str, *, permanent: bool = False) -> Any:
        params = {"permanent": "true"} if permanent else None
        return self.client.delete(f"/folders/{_quote(folder_id)}", params=params)

    def starred(self) -> List[FolderRef]:
        return _listing(self.client.get("/folders/starred"), "/folders/starred").folders

    def trash(self) -> List[FolderRef]:
        return _listing(self.client.get("/folders/trash"), "/folders/trash").folders

    def toggle_star(self, folder_id: str) -> bool:
        return bool(self.client.post(f"/folders/{_quote(folder_id)}/star").get("is_starred"))

    def restore(self, folder_id: str) -> Any:
        return self.client.post(f"/folders/{_quote(folder_id)}/restore")

    def move(self, folder_id: str, destination_id: Optional[str]) -> Any:
        return self.client.post(f"/folders/{_quote(folder_id)}/move", {"folder_id": destination_id})

    def storage_usage(self) -> Dict[str, Any]:
        return self.client.get("/folders/storage")


@dataclass
class FileApi:
    client: NimbusApiClient

    def upload_url(self, filename: str, content_type: str) -> UploadTicket:
        payload = self.client.get("/files/upload-url", params={"filename": filename, "content_type": content_type})
        if not payload.get("presigned_url"):
            raise ApiError("Upload URL missing from response", endpoint="/files/upload-url")
        return UploadTicket(
            presigned_url=payload["presigned_url"],
            object_path=payload.get("minio_path", ""),
            filename=payload.get("filename", filename),
            expires_in=int(payload.get("expires_in", 3600)),
        )

    def create(
        self,
        *,
        filename: str,
        size: int,
        content_type: str,
        object_path: str,
        folder_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        return self.client.post(
            "/files/",
            {
                "filename": filename,
                "size": size,
                "content_type": content_type,
                "minio_path": object_path,
                "folder_id": folder_id,
            },
        )

    def download_url(self, file_id: str) -> str:
        payload = self.client.get("/files/download-url", params={"file_id": file_id})
        if not payload.get("presigned_url"):
            raise ApiError("Failed to get download URL", endpoint="/files/download-url")
        return payload["presigned_url"]

    def preview_url(self, file_id: Optional[str] = None, filename: Optional[str] = None) -> str:
        params = {"file_id": file_id} if file_id else {"filename": filename}
        payload = self.client.get("/files/preview-url", params=params)
        return payload.get("presigned_url", "")

    def list(self) -> Any:
        return self.client.get("/files/")

    def delete(self, file_id: str, *, permanent: bool = False) -> Any:
        params = {"permanent": "true"} if permanent else None
        return self.client.delete(f"/files/{_quote(file_id)}", params=params)

    def recent(self) -> Listing:
        return _listing(self.client.get("/files/recent"), "/files/recent")

    def starred(self) -> Listing:
        return _listing(self.client.get("/files/starred"), "/files/starred")

    def trash(self) -> Listing:
        return _listing(self.client.get("/files/trash"), "/files/trash")

    def toggle_star(self, file_id: str) -> bool:
        return bool(self.client.post(f"/files/{_quote(file_id)}/star").get("is_starred"))

    def restore(self, file_id: str) -> Any:
        return self.client.post(f"/files/{_quote(file_id)}/restore")

    def move(self, file_id: str, destination_id: Optional[str]) -> Any:
        return self.client.post(f"/files/{_quote(file_id)}/move", {"folder_id": destination_id})

    def editor_config(self, file_id: str, mode: str = "edit") -> Dict[str, Any]:
        return self.client.get("/files/onlyoffice-config", params={"file_id": file_id, "mode": mode})

    def content(self, file_id: str) -> str:
        return self.client.get_text("/files/content", params={"file_id": file_id})

    def update_content(self, file_id: str, content: str) -> Any:
        return self.client.put(f"/files/{_quote(file_id)}/content", {"content": content})

    def process(self, file_id: str) -> Any:
        return self.client.post(f"/files/{_quote(file_id)}/process")


@dataclass
class ShareApi:
    client: NimbusApiClient

    def resource_shares(self, resource_id: str) -> Dict[str, Any]:
        return self.client.get(f"/shares/resource/{_quote(resource_id)}")

    def shared_with_me(self) -> List[Dict[str, Any]]:
        return self.client.get("/shares/shared-with-me") or []

    def shared_folder_contents(self, folder_id: str) -> Dict[str, Any]:
        return self.client.get(f"/shares/shared-folder/{_quote(folder_id)}")

    def update_access(self, resource_id: str, user_id: str, permission: str) -> Any:
        return self.client.put(
            f"/shares/access/{_quote(resource_id)}",
            {"user_id": user_id, "permission": permission},
        )

    def remove_access(self, resource_id: str, user_id: str) -> Any:
        return self.client.delete(f"/shares/access/{_quote(resource_id)}/{_quote(user_id)}")

    def resolve_public_link(self, public_link: str) -> Dict[str, Any]:
        return self.client.get(f"/shares/public/{_quote(public_link)}")

    @staticmethod
    def parse_access_list(payload: Mapping[str, Any]) -> List[ShareEntry]:
        entries = payload.get("access_list") or payload.get("shares") or []
        return [ShareEntry.from_payload(entry) for entry in entries]


@dataclass
class UserApi:
    client: NimbusApiClient

    def search(self, query: str) -> List[Dict[str, Any]]:
        payload = self.client.get("/users/search", params={"q": query})
        if isinstance(payload, dict):
            return payload.get("users", [])
        return payload or []


@dataclass
class AuthApi:
    client: NimbusApiClient

    def login_url(self) -> str:
        return f"{self.client.base_url}/auth/google"

    def profile(self) -> Dict[str, Any]:
        return self.client.get("/user/profile")

    def logout(self) -> None:
        try:
            self.client.post("/auth/logout")
        finally:
            self.client.set_token(None)


@dataclass
class AiApi:
    client: NimbusApiClient

    def query(self, file_id: str, question: str) -> Dict[str, Any]:
        return self.client.post("/ai/query", {"file_id": file_id, "question": question})

    def conversation(self, file_id: str) -> Dict[str, Any]:
        return self.client.get("/ai/conversation", params={"file_id": file_id})

    def clear_conversation(self, file_id: str) -> Any:
        return self.client.delete("/ai/conversation", params={"file_id": file_id})


def move_item(folders: FolderApi, files: FileApi, target: MoveTarget, destination_id: Optional[str]) -> Any:
    if target.type is ItemType.FOLDER:
        return folders.move(target.id, destination_id)
    return files.move(target.id, destination_id)
