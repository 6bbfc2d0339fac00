from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from nimbus.config import NimbusConfig
from nimbus.errors import ApiError
from nimbus.models import FileRef, ItemType, MoveTarget
from nimbus.notifier import RecordingNotifier
from nimbus.runtime import NimbusRuntime
from nimbus.sandbox import server as sandbox_server
from nimbus.sandbox.store import SandboxStore
from nimbus.state_store import MemoryStateStore


class _StreamedResponse:
    def __init__(self, response):
        self.status_code = response.status_code
        self._content = response.content

    def iter_content(self, chunk_size):
        for start in range(0, len(self._content), chunk_size):
            yield self._content[start:start + chunk_size]


class _ObjectStore:
    """Routes presigned-URL traffic through the sandbox's /objects endpoints."""

    def __init__(self, client):
        self.client = client

    def put(self, url, data, headers, timeout):
        return self.client.put(url, content=data.read(), headers=headers)

    def get(self, url, stream, timeout):
        return _StreamedResponse(self.client.get(url))


@pytest.fixture
def store():
    sandbox_server.store = SandboxStore()
    return sandbox_server.store


@pytest.fixture
def runtime(store):
    client = TestClient(sandbox_server.app)
    cfg = NimbusConfig.default()
    cfg.api.base_url = "http://testserver/api/v1"
    cfg.upload.download_chunk_bytes = 4
    return NimbusRuntime.bootstrap(
        cfg,
        notifier=RecordingNotifier(),
        http_client=client,
        object_store=_ObjectStore(client),
        nav_store=MemoryStateStore(),
        token_store=MemoryStateStore(),
    )


def _abc_tree(store):
    a = store.create_folder("A")
    b = store.create_folder("B", a.id)
    c = store.create_folder("C", b.id)
    d = store.create_folder("D")
    return a, b, c, d


def test_move_dialog_hides_subtree_and_commits_into_sibling(runtime, store):
    a, b, c, d = _abc_tree(store)
    session = runtime.move_resolver.open_session(MoveTarget(id=a.id, type=ItemType.FOLDER, name="A"))
    assert session.excluded_ids == frozenset({a.id, b.id, c.id})
    assert [f.name for f in session.folders] == ["D"]

    session.descend(session.folders[0])
    assert [crumb.name for crumb in session.breadcrumbs] == ["D"]
    session.commit()

    assert store.get_folder(a.id).parent_id == d.id
    assert runtime.notifier.messages("success") == ["Item moved"]


def test_server_rejects_cycle_even_without_dialog(runtime, store):
    a, _, c, _ = _abc_tree(store)
    with pytest.raises(ApiError) as excinfo:
        runtime.explorer.move_item(MoveTarget(id=a.id, type=ItemType.FOLDER), c.id)
    assert excinfo.value.status == 400
    assert runtime.notifier.messages("error") == ["Move failed: A folder cannot be moved into its own subfolder"]
    assert store.get_folder(a.id).parent_id is None


def test_navigation_drives_home_listing(runtime, store):
    a, b, _, _ = _abc_tree(store)
    root = runtime.explorer.load_contents("home")
    assert [f.name for f in root.folders] == ["A", "D"]

    runtime.navigation.open("home", root.folders[0])
    inner = runtime.explorer.load_contents("home")
    assert [f.id for f in inner.folders] == [b.id]
    assert [crumb.id for crumb in inner.breadcrumbs] == [a.id]


def test_upload_then_download_round_trip(runtime, store, tmp_path):
    _, _, _, d = _abc_tree(store)
    source = tmp_path / "notes.txt"
    source.write_bytes(b"nimbus sandbox payload")
    runtime.navigation.open("home", runtime.explorer.load_contents("home").folders[1])

    record = runtime.uploader.upload(source, runtime.navigation.get("home").folder_id)
    created = record["file"]
    assert created["folder_id"] == d.id
    assert created["content_type"] == "text/plain"
    assert [f.filename for f in runtime.explorer.load_contents("home").files] == ["notes.txt"]

    saved = runtime.explorer.download(FileRef(id=created["id"], filename="copy.txt"), tmp_path / "dl")
    assert saved.read_bytes() == b"nimbus sandbox payload"
    assert runtime.file_api.content(created["id"]) == "nimbus sandbox payload"


def test_file_record_requires_uploaded_object(runtime):
    with pytest.raises(ApiError) as excinfo:
        runtime.file_api.create(filename="x.txt", size=1, content_type="text/plain", object_path="users/none/x.txt")
    assert excinfo.value.status == 400


def test_shared_section_lists_grants_and_shared_folder_contents(runtime, store):
    team = store.create_folder("Team")
    store.create_folder("Inner", team.id)
    store.users["bob"] = {"id": "bob", "email": "bob@example.com", "name": "Bob"}
    runtime.sharing.add_user(team.id, "bob", email="bob@example.com")

    runtime.api.set_token("bob")
    shared = runtime.explorer.load_contents("shared")
    assert [(f.name, f.shared) for f in shared.folders] == [("Team", True)]

    runtime.navigation.open("shared", shared.folders[0])
    inner = runtime.explorer.load_contents("shared")
    assert [f.name for f in inner.folders] == ["Inner"]

    runtime.api.set_token(None)
    assert runtime.sharing.access_for(team.id, "bob") == "read"
    assert runtime.sharing.find_users("bob")[0]["id"] == "bob"


def test_trash_and_restore_through_services(runtime, store):
    a, b, _, _ = _abc_tree(store)
    assert runtime.explorer.trash_item(a.id, ItemType.FOLDER) is True
    trash = runtime.explorer.load_contents("trash")
    assert [f.id for f in trash.folders] == [a.id]
    assert [f.name for f in runtime.explorer.load_contents("home").folders] == ["D"]

    assert runtime.explorer.restore_item(a.id, ItemType.FOLDER) is True
    assert store.get_folder(b.id).deleted_at is None
