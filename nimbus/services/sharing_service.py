"""Access-list management for files and folders."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..clients.api_client import ShareApi, UserApi
from ..errors import ApiError
from ..models import ACCESS_LEVELS, ShareEntry
from .base import BaseService


logger = logging.getLogger(__name__)


@dataclass
class SharingService(BaseService):
    share_api: ShareApi
    user_api: UserApi

    def list_access(self, resource_id: str) -> List[ShareEntry]:
        payload = self.share_api.resource_shares(resource_id)
        return ShareApi.parse_access_list(payload or {})

    def public_link(self, resource_id: str) -> Optional[str]:
        payload = self.share_api.resource_shares(resource_id) or {}
        return payload.get("public_link") or None

    def access_for(self, resource_id: str, user_id: str) -> str:
        for entry in self.list_access(resource_id):
            if entry.user_id == user_id:
                return entry.access_type
        return "read"

    def find_users(self, query: str):
        if not query.strip():
            return []
        return self.user_api.search(query.strip())

    def add_user(self, resource_id: str, user_id: str, *, email: Optional[str] = None) -> bool:
        return self._update(resource_id, user_id, "read", f"Shared with {email or user_id}", "Sharing failed")

    def set_permission(self, resource_id: str, user_id: str, level: str) -> bool:
        if level not in ACCESS_LEVELS:
            raise ValueError(f"Unknown access level: {level!r}")
        return self._update(resource_id, user_id, level, "Permission updated", "Permission could not be updated")

    def remove_user(self, resource_id: str, user_id: str) -> bool:
        try:
            self.share_api.remove_access(resource_id, user_id)
        except ApiError as exc:
            logger.error("Removing %s from %s failed: %s", user_id, resource_id, exc)
            self.notify_error("Access could not be removed")
            return False
        self.notify_success("Access removed")
        return True

    def _update(self, resource_id: str, user_id: str, level: str, ok: str, failed: str) -> bool:
        try:
            self.share_api.update_access(resource_id, user_id, level)
        except ApiError as exc:
            logger.error("Granting %s on %s to %s failed: %s", level, resource_id, user_id, exc)
            self.notify_error(failed)
            return False
        self.notify_success(ok)
        return True
