from __future__ import annotations

import pytest

from nimbus.config import MoveConfig, NimbusConfig
from nimbus.errors import ApiError, MoveRejected, SessionClosed, TraversalError
from nimbus.models import FolderRef, ItemType, Listing, MoveTarget
from nimbus.notifier import RecordingNotifier
from nimbus.services.move_service import MoveSession, SafeMoveResolver, collect_descendant_ids


class _FakeTree:
    """Folder listing collaborator backed by a parent -> children map."""

    def __init__(self, children, names=None):
        self.children = children
        self.names = names or {}
        self.calls = []
        self.failing = set()
        self.moves = []
        self.on_list = None

    def list_children(self, folder_id):
        self.calls.append(folder_id)
        if self.on_list is not None:
            self.on_list(folder_id)
        if folder_id in self.failing:
            raise ApiError("boom", status=500)
        folders = [FolderRef(id=child, name=self.names.get(child, child)) for child in self.children.get(folder_id, [])]
        return Listing(folders=folders)

    def move(self, target, destination):
        self.moves.append((target.id, destination))
        return {"ok": True}


def _abc_tree():
    # root -> A -> B -> C, plus root -> D
    return _FakeTree({None: ["A", "D"], "A": ["B"], "B": ["C"], "C": [], "D": []})


def _resolver(tree, *, policy="skip", notifier=None):
    cfg = NimbusConfig.default()
    cfg.move = MoveConfig(traversal_failure=policy)
    return SafeMoveResolver(
        config=cfg,
        notifier=notifier or RecordingNotifier(),
        list_children=tree.list_children,
        move=tree.move,
    )


def _binary_tree(depth):
    children = {None: ["n"]}

    def grow(node, level):
        if level == depth:
            children[node] = []
            return
        kids = [f"{node}0", f"{node}1"]
        children[node] = kids
        for kid in kids:
            grow(kid, level + 1)

    grow("n", 0)
    return _FakeTree(children)


def test_descendant_walk_covers_full_binary_tree():
    tree = _binary_tree(3)
    excluded = collect_descendant_ids("n", tree.list_children)
    assert len(excluded) == 15
    assert "n" in excluded and "n111" in excluded
    # one listing per node, strictly serial
    assert sorted(tree.calls) == sorted(excluded)


def test_descendant_walk_survives_back_edges():
    tree = _FakeTree({"A": ["B"], "B": ["A", "C"], "C": ["B"]})
    assert collect_descendant_ids("A", tree.list_children) == frozenset({"A", "B", "C"})
    assert len(tree.calls) == 3


def test_failed_sub_listing_is_treated_as_leaf():
    tree = _abc_tree()
    tree.failing.add("B")
    failures = []
    excluded = collect_descendant_ids("A", tree.list_children, on_error=lambda fid, exc: failures.append(fid))
    assert excluded == frozenset({"A", "B"})
    assert failures == ["B"]


def test_folder_cannot_be_offered_as_its_own_destination():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    assert session.excluded_ids == frozenset({"A", "B", "C"})
    assert [f.id for f in session.folders] == ["D"]
    assert session.current_folder_id is None
    with pytest.raises(MoveRejected):
        session.browse("A")
    with pytest.raises(MoveRejected):
        session.descend(FolderRef(id="A", name="A"))


def test_moving_inner_folder_hides_its_subtree_but_not_its_parent():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="B", type=ItemType.FOLDER))
    assert session.excluded_ids == frozenset({"B", "C"})
    assert {f.id for f in session.folders} == {"A", "D"}
    assert session.descend(FolderRef(id="A", name="A"))
    assert session.folders == []
    assert not session.is_destination_allowed("B")
    assert not session.is_destination_allowed("C")


def test_subtree_never_appears_while_moving_top_folder():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    seen = {f.id for f in session.folders}
    for folder in list(session.folders):
        session.descend(folder)
        seen.update(f.id for f in session.folders)
    assert seen.isdisjoint({"A", "B", "C"})
    with pytest.raises(MoveRejected):
        session.browse("C")


def test_file_moves_have_no_exclusions():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="file-1", type=ItemType.FILE))
    assert session.excluded_ids == frozenset()
    assert tree.calls == [None]
    assert {f.id for f in session.folders} == {"A", "D"}
    session.descend(FolderRef(id="A", name="A"))
    session.descend(FolderRef(id="B", name="B"))
    session.commit()
    assert tree.moves == [("file-1", "B")]


def test_commit_targets_current_browse_folder_and_closes():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="B", type=ItemType.FOLDER))
    session.descend(FolderRef(id="D", name="D"))
    assert session.commit() == {"ok": True}
    assert tree.moves == [("B", "D")]
    assert session.state == "committed"
    assert session.excluded_ids == frozenset()
    with pytest.raises(SessionClosed):
        session.browse(None)


def test_commit_at_root_moves_to_root():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="C", type=ItemType.FOLDER))
    session.commit()
    assert tree.moves == [("C", None)]


def test_cancel_discards_state_without_moving():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    session.cancel()
    assert session.state == "cancelled"
    assert session.folders == [] and session.excluded_ids == frozenset()
    assert tree.moves == []
    with pytest.raises(SessionClosed):
        session.commit()


def test_failed_move_closes_session_and_propagates():
    tree = _abc_tree()

    def failing_move(target, destination):
        raise ApiError("denied", status=403)

    cfg = NimbusConfig.default()
    resolver = SafeMoveResolver(config=cfg, notifier=RecordingNotifier(), list_children=tree.list_children, move=failing_move)
    session = resolver.open_session(MoveTarget(id="D", type=ItemType.FOLDER))
    with pytest.raises(ApiError):
        session.commit()
    assert session.state == "failed"


def test_browse_failure_notifies_and_keeps_last_good_state():
    tree = _abc_tree()
    notifier = RecordingNotifier()
    session = _resolver(tree, notifier=notifier).open_session(MoveTarget(id="file-1", type=ItemType.FILE))
    tree.failing.add("A")
    assert session.browse("A") is False
    assert session.current_folder_id is None
    assert {f.id for f in session.folders} == {"A", "D"}
    assert notifier.messages("error") == ["Could not load folders"]


def test_skip_policy_marks_partial_exclusion_silently():
    tree = _abc_tree()
    tree.failing.add("B")
    notifier = RecordingNotifier()
    session = _resolver(tree, notifier=notifier).open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    assert session.exclusion_complete is False
    assert session.failed_folder_ids == ["B"]
    assert session.excluded_ids == frozenset({"A", "B"})
    assert notifier.notifications == []


def test_abort_policy_refuses_to_open_session():
    tree = _abc_tree()
    tree.failing.add("B")
    notifier = RecordingNotifier()
    with pytest.raises(TraversalError) as excinfo:
        _resolver(tree, policy="abort", notifier=notifier).open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    assert excinfo.value.folder_id == "B"
    assert notifier.messages("error") == ["Could not load folders"]


def test_unknown_traversal_policy_is_rejected():
    with pytest.raises(ValueError):
        MoveConfig(traversal_failure="retry")


def test_stale_listing_is_discarded():
    tree = _abc_tree()
    session = _resolver(tree).open_session(MoveTarget(id="file-1", type=ItemType.FILE))

    def supersede(folder_id):
        # A second click lands while the first listing is still in flight.
        if folder_id == "D":
            tree.on_list = None
            session.browse("A")

    tree.on_list = supersede
    assert session.browse("D") is False
    assert session.current_folder_id == "A"
    assert [f.id for f in session.folders] == ["B"]


def test_cancelling_mid_walk_stops_further_listings():
    tree = _binary_tree(3)
    resolver = _resolver(tree)
    sessions = []
    original = resolver.list_children

    def cancelling(folder_id):
        listing = original(folder_id)
        if len(tree.calls) == 2 and sessions:
            sessions[0].cancel()
        return listing

    session = MoveSession(MoveTarget(id="n", type=ItemType.FOLDER), cancelling, tree.move, RecordingNotifier())
    sessions.append(session)
    session.compute_exclusions()
    assert len(tree.calls) == 2
    assert session.excluded_ids == frozenset()


def test_breadcrumbs_come_from_listing_or_local_trail():
    tree = _abc_tree()
    crumbs = [FolderRef(id="A", name="Alpha")]

    def list_with_crumbs(folder_id):
        listing = tree.list_children(folder_id)
        if folder_id == "A":
            listing.breadcrumbs = list(crumbs)
        return listing

    resolver = SafeMoveResolver(
        config=NimbusConfig.default(),
        notifier=RecordingNotifier(),
        list_children=list_with_crumbs,
        move=tree.move,
    )
    session = resolver.open_session(MoveTarget(id="file-1", type=ItemType.FILE))
    session.descend(FolderRef(id="A", name="A"))
    assert session.breadcrumbs == crumbs
    session.descend(FolderRef(id="B", name="B"))
    assert [c.id for c in session.breadcrumbs] == ["A", "B"]
    session.browse("A")
    assert session.breadcrumbs == crumbs
    session.browse(None)
    assert session.breadcrumbs == []


def test_move_to_validates_destination_against_subtree():
    tree = _abc_tree()
    resolver = _resolver(tree)
    with pytest.raises(MoveRejected):
        resolver.move_to(MoveTarget(id="A", type=ItemType.FOLDER), "C")
    with pytest.raises(MoveRejected):
        resolver.move_to(MoveTarget(id="A", type=ItemType.FOLDER), "A")
    resolver.move_to(MoveTarget(id="A", type=ItemType.FOLDER), "D")
    assert tree.moves == [("A", "D")]


def _with_raw_listing(tree, raw):
    # Serve some folders from raw payloads, the way a backend response would arrive.
    def list_children(folder_id):
        if folder_id in raw:
            tree.calls.append(folder_id)
            return Listing.from_payload(raw[folder_id])
        return tree.list_children(folder_id)

    return list_children


def test_malformed_child_listing_is_treated_as_leaf():
    tree = _abc_tree()
    list_children = _with_raw_listing(tree, {"B": {"folders": [{"name": "no-id"}]}})
    resolver = SafeMoveResolver(
        config=NimbusConfig.default(),
        notifier=RecordingNotifier(),
        list_children=list_children,
        move=tree.move,
    )
    session = resolver.open_session(MoveTarget(id="A", type=ItemType.FOLDER))
    assert session.excluded_ids == frozenset({"A", "B"})
    assert session.exclusion_complete is False
    assert session.failed_folder_ids == ["B"]
    assert [f.id for f in session.folders] == ["D"]


def test_malformed_listing_while_browsing_keeps_last_good_state():
    tree = _abc_tree()
    notifier = RecordingNotifier()
    list_children = _with_raw_listing(tree, {"A": {"folders": "not-a-list-of-folders"}})
    resolver = SafeMoveResolver(
        config=NimbusConfig.default(),
        notifier=notifier,
        list_children=list_children,
        move=tree.move,
    )
    session = resolver.open_session(MoveTarget(id="file-1", type=ItemType.FILE))
    assert session.descend(FolderRef(id="A", name="A")) is False
    assert session.current_folder_id is None
    assert {f.id for f in session.folders} == {"A", "D"}
    assert notifier.messages("error") == ["Could not load folders"]
