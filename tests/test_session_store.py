import pytest

from retouch.exceptions import InvalidRequest, MissingArtifact
from retouch.infrastructure.storage.session_store import (
    KNOWN_EXTENSIONS,
    new_artifact_id,
    new_version_id,
)


@pytest.mark.parametrize("ext", KNOWN_EXTENSIONS)
def test_resolve_finds_artifact_whatever_its_extension(store, ext):
    aid = new_artifact_id()
    store.store("sess-1", aid, ext, b"pixels")

    found = store.resolve("sess-1", aid)
    assert found is not None
    assert found.ext == ext
    assert found.read() == b"pixels"
    # asking for the wrong extension still finds it
    assert store.resolve("sess-1", aid, ".png" if ext != ".png" else ".jpg").path == found.path


def test_resolve_unknown_extension_by_prefix_scan(store):
    aid = new_artifact_id()
    store.store("s", aid, ".dng", b"raw")
    found = store.resolve("s", aid)
    assert found is not None and found.ext == ".dng"


def test_resolve_unknown_id_returns_none(store):
    store.store("s", new_artifact_id(), ".jpg", b"x")
    assert store.resolve("s", new_artifact_id()) is None
    assert store.resolve("missing-session", new_artifact_id()) is None
    assert store.resolve("s", "../etc/passwd") is None
    assert store.resolve("", "abc") is None


def test_resolve_ignores_versions_and_thumbnails(store):
    aid = new_artifact_id()
    store.store("s", new_version_id(aid), ".png", b"v1")
    store.store_thumbnail("s", aid, b"thumb")
    assert store.resolve("s", aid) is None


def test_store_leaves_no_partial_files(store):
    aid = new_artifact_id()
    store.store("s", aid, ".jpg", b"a" * 1024)
    store.store("s", aid, ".jpg", b"b" * 10)
    assert store.list_files("s") == [f"{aid}.jpg"]
    assert store.read("s", aid).read() == b"b" * 10


def test_read_missing_raises_missing_artifact(store):
    with pytest.raises(MissingArtifact):
        store.read("s", new_artifact_id())


def test_delete_cascades_to_thumbnail_and_versions(store):
    aid = new_artifact_id()
    other = new_artifact_id()
    version = new_version_id(aid)
    store.store("s", aid, ".heic", b"orig")
    store.store_thumbnail("s", aid, b"t")
    store.store("s", version, ".png", b"v")
    store.store_thumbnail("s", version, b"vt")
    store.store("s", other, ".jpg", b"keep")

    removed = store.delete("s", aid)

    assert sorted(removed) == sorted([
        f"{aid}.heic", f"{aid}_thumb.jpg", f"{version}.png", f"{version}_thumb.jpg",
    ])
    assert store.list_files("s") == [f"{other}.jpg"]


def test_delete_is_idempotent(store):
    aid = new_artifact_id()
    store.store("s", aid, ".jpg", b"x")
    assert store.delete("s", aid)
    assert store.delete("s", aid) == []
    assert store.delete("never-created", aid) == []


def test_artifact_ids_are_fixed_length_hex():
    ids = {new_artifact_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) == 32 and int(i, 16) >= 0 for i in ids)


def test_distinct_session_tokens_never_share_a_directory(store):
    aid = new_artifact_id()
    store.store("user-1", aid, ".jpg", b"x")
    assert store.session_dir("user-1") != store.session_dir("user1")
    assert store.resolve("user1", aid) is None

    for token in ("user_1", "user.1", "../../ab/c", "..", "a b", "user1\n"):
        with pytest.raises(InvalidRequest):
            store.session_dir(token)
        assert store.resolve(token, aid) is None
        assert store.delete(token, aid) == []
    assert store.resolve("user-1", aid) is not None


def test_delete_session_removes_namespace(store):
    aid = new_artifact_id()
    store.store("gone", aid, ".jpg", b"x")
    store.delete_session("gone")
    assert store.resolve("gone", aid) is None
    assert store.list_files("gone") == []
