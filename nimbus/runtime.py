"""Runtime wiring for the Nimbus client core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import requests

from .clients.api_client import AiApi, AuthApi, FileApi, FolderApi, NimbusApiClient, ShareApi, UserApi
from .clients.transfer_clients import DownloadClient, UploadClient
from .config import NimbusConfig
from .notifier import LoggingNotifier, Notifier
from .services.explorer_service import ExplorerService
from .services.move_service import SafeMoveResolver
from .services.navigation_service import NavigationStore
from .services.sharing_service import SharingService
from .state_store import JsonStateStore


@dataclass
class NimbusRuntime:
    config: NimbusConfig
    notifier: Notifier
    api: NimbusApiClient
    folder_api: FolderApi
    file_api: FileApi
    share_api: ShareApi
    user_api: UserApi
    auth_api: AuthApi
    ai_api: AiApi
    navigation: NavigationStore
    explorer: ExplorerService
    move_resolver: SafeMoveResolver
    sharing: SharingService
    uploader: UploadClient
    downloader: DownloadClient

    @classmethod
    def bootstrap(
        cls,
        config: Optional[NimbusConfig] = None,
        *,
        notifier: Optional[Notifier] = None,
        http_client: Optional[Any] = None,
        object_store: Optional[Any] = None,
        nav_store: Optional[Any] = None,
        token_store: Optional[Any] = None,
    ) -> "NimbusRuntime":
        cfg = config or NimbusConfig.from_env()
        sink = notifier or LoggingNotifier()
        http = http_client if http_client is not None else requests.Session()
        # Presigned URLs carry their own credentials; keep the bearer token off them.
        store_http = object_store if object_store is not None else requests.Session()

        api = NimbusApiClient(
            cfg.api.base_url,
            timeout=cfg.api.timeout_seconds,
            http_client=http,
            token_store=token_store if token_store is not None else JsonStateStore(cfg.state.token_path),
        )
        folder_api = FolderApi(api)
        file_api = FileApi(api)
        share_api = ShareApi(api)
        user_api = UserApi(api)

        navigation = NavigationStore(nav_store if nav_store is not None else JsonStateStore(cfg.state.nav_state_path))
        uploader = UploadClient(
            file_api,
            store_http,
            max_upload_bytes=cfg.upload.max_upload_bytes,
            default_content_type=cfg.upload.default_content_type,
        )
        downloader = DownloadClient(file_api, store_http, chunk_size=cfg.upload.download_chunk_bytes)
        explorer = ExplorerService(
            config=cfg,
            notifier=sink,
            navigation=navigation,
            folder_api=folder_api,
            file_api=file_api,
            share_api=share_api,
            downloader=downloader,
        )
        move_resolver = SafeMoveResolver(
            config=cfg,
            notifier=sink,
            list_children=folder_api.list_children,
            move=explorer.move_item,
        )
        sharing = SharingService(config=cfg, notifier=sink, share_api=share_api, user_api=user_api)

        return cls(
            config=cfg,
            notifier=sink,
            api=api,
            folder_api=folder_api,
            file_api=file_api,
            share_api=share_api,
            user_api=user_api,
            auth_api=AuthApi(api),
            ai_api=AiApi(api),
            navigation=navigation,
            explorer=explorer,
            move_resolver=move_resolver,
            sharing=sharing,
            uploader=uploader,
            downloader=downloader,
        )
