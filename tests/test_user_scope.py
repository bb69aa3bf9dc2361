"""Tests for UserScope — per-user isolation, template provisioning, quotas."""

from __future__ import annotations

import asyncio
import errno
import os

import pytest

from arcfs.fs.memory import MemoryHostFileSystem
from arcfs.fs.storage_root import StorageRoot
from arcfs.fs.types import (
    HostErrorKind,
    HostIOFailure,
    InvalidPathEncoding,
    NotEnoughStorage,
    PathBreaksOut,
)
from arcfs.fs.user_scope import UserScope

TEMPLATE_BYTES = len(b"hello user") + len(b"# docs\n")


class FlakyHost(MemoryHostFileSystem):
    """Fails every file copy with EIO while ``fail`` is set."""

    def __init__(self, *dirs: str) -> None:
        super().__init__(*dirs)
        self.fail = True

    def copy_file(self, src: str, dest: str) -> None:
        if self.fail:
            raise OSError(errno.EIO, os.strerror(errno.EIO), dest)
        super().copy_file(src, dest)


PATH_FIELDS = ("path", "old_path", "new_path", "source", "target")


def _exposed_paths(result) -> list[str]:
    """Message and every path-valued field of a result."""
    texts = [result.message]
    texts += [getattr(result, f) for f in PATH_FIELDS if getattr(result, f, None)]
    texts += getattr(result, "files", None) or []
    texts += getattr(result, "directories", None) or []
    info = getattr(result, "info", None)
    if info is not None:
        texts += [info.path, info.name]
    return texts


def _memory_template_host(cls: type[MemoryHostFileSystem] = MemoryHostFileSystem):
    host = cls("/data", "/template/docs")
    host.write_bytes("/template/welcome.txt", b"hello user")
    host.write_bytes("/template/docs/readme.md", b"# docs\n")
    return host


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    @pytest.mark.parametrize(
        "user_id",
        [
            pytest.param(-1, id="negative"),
            pytest.param(True, id="bool"),
            pytest.param("7", id="str"),
            pytest.param(1.5, id="float"),
            pytest.param(None, id="none"),
        ],
    )
    def test_invalid_user_id(self, storage, user_id):
        with pytest.raises(ValueError):
            UserScope(storage, user_id)

    def test_properties(self, storage):
        scope = UserScope(storage, 7)
        assert scope.user_id == 7
        assert scope.base_path == "7"
        assert scope.storage is storage
        assert "user_id=7" in repr(scope)

    def test_construction_touches_nothing(self, storage, data_dir):
        UserScope(storage, 7)
        assert list(data_dir.iterdir()) == []


# ---------------------------------------------------------------------------
# Scoping
# ---------------------------------------------------------------------------


class TestScoping:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            pytest.param(".", "7", id="root"),
            pytest.param("", "7", id="empty"),
            pytest.param("a.txt", "7/a.txt", id="file"),
            pytest.param("/a/b", "7/a/b", id="leading-slash"),
            pytest.param("a/../b", "7/b", id="dotdot-inside"),
        ],
    )
    def test_scoped(self, storage, path, expected):
        assert UserScope(storage, 7).scoped(path) == expected

    async def test_escape_refused_without_creating_user_dir(self, storage, data_dir):
        scope = UserScope(storage, 7)
        result = await scope.read_file("../../etc/passwd")
        assert isinstance(result.error, PathBreaksOut)
        assert result.error.status_code == 400
        assert list(data_dir.iterdir()) == []

    async def test_cannot_reach_other_user(self, storage):
        alice, bob = UserScope(storage, 1), UserScope(storage, 2)
        await alice.write_file("secret.txt", b"alice only")

        direct = await bob.read_file("secret.txt")
        assert isinstance(direct.error, HostIOFailure)
        assert direct.error.kind is HostErrorKind.NOT_FOUND

        traversal = await bob.read_file("../1/secret.txt")
        assert isinstance(traversal.error, PathBreaksOut)

        moved = await alice.move_item("secret.txt", "../2/secret.txt")
        assert isinstance(moved.error, PathBreaksOut)

        copied = await bob.copy_item("../1/secret.txt", "mine.txt")
        assert isinstance(copied.error, PathBreaksOut)

    async def test_user_root_is_protected(self, storage):
        scope = UserScope(storage, 7)
        await scope.write_file("keep.txt", b"x")
        assert isinstance((await scope.remove_item(".")).error, PathBreaksOut)
        assert isinstance((await scope.write_file(".", b"x")).error, PathBreaksOut)
        assert isinstance((await scope.move_item(".", "elsewhere")).error, PathBreaksOut)
        assert (await scope.read_file("keep.txt")).content == b"x"

    async def test_invalid_encoding(self, storage):
        result = await UserScope(storage, 7).write_file(b"\xc3\x28", b"x")
        assert isinstance(result.error, InvalidPathEncoding)


# ---------------------------------------------------------------------------
# De-scoping
# ---------------------------------------------------------------------------


class TestDescoping:
    async def test_list_dir_paths_are_user_relative(self, any_storage):
        scope = UserScope(any_storage, 7)
        await scope.create_dir("sub")
        await scope.write_file("a.txt", b"a")
        await scope.write_file("sub/b.txt", b"b")

        root = await scope.list_dir(".")
        assert root.path == "."
        assert root.files == ["a.txt"]
        assert root.directories == ["sub"]

        sub = await scope.list_dir("sub")
        assert sub.path == "sub"
        assert sub.files == ["sub/b.txt"]

    async def test_tree_paths_are_user_relative(self, any_storage):
        scope = UserScope(any_storage, 7)
        await scope.create_dir("x/y", parents=True)
        await scope.write_file("x/y/deep.txt", b"d")
        await scope.write_file("top.txt", b"t")
        result = await scope.get_dir_tree()
        assert result.files == ["top.txt", "x/y/deep.txt"]

    async def test_nothing_leaks_host_root_or_user_id(self, storage):
        scope = UserScope(storage, 4242)
        results = [
            await scope.create_dir("d"),
            await scope.write_file("d/f.txt", b"data"),
            await scope.read_file("d/f.txt"),
            await scope.copy_item("d/f.txt", "d/g.txt"),
            await scope.move_item("d/g.txt", "d/h.txt"),
            await scope.list_dir("d"),
            await scope.get_dir_tree("d"),
            await scope.get_mime("d/f.txt"),
            await scope.get_item_size("d"),
            await scope.get_item_time_info("d/f.txt"),
            await scope.get_info("d/f.txt"),
            await scope.remove_item("d/h.txt"),
        ]
        for result in results:
            assert result.success is True, result.message
            for text in _exposed_paths(result):
                assert storage.root not in text
                assert "4242" not in text

    async def test_result_fields(self, any_storage):
        scope = UserScope(any_storage, 7)
        write = await scope.write_file("notes.txt", b"# hi")
        assert write.path == "notes.txt"
        assert write.created is True

        info = (await scope.get_info("notes.txt")).info
        assert info.path == "notes.txt"
        assert info.name == "notes.txt"
        assert info.size_bytes == 4
        assert info.mime_type == "text/plain"

        root_info = (await scope.get_info(".")).info
        assert root_info.path == "."
        assert root_info.is_directory is True

        moved = await scope.move_item("notes.txt", "n.txt")
        assert (moved.old_path, moved.new_path) == ("notes.txt", "n.txt")

    async def test_errors_pass_through(self, any_storage):
        scope = UserScope(any_storage, 7)
        result = await scope.read_file("missing.txt")
        assert result.success is False
        assert result.error.kind is HostErrorKind.NOT_FOUND

    async def test_whitespace_names_are_distinct(self, any_storage):
        scope = UserScope(any_storage, 7)
        await scope.write_file("a.txt", b"original")
        padded = await scope.write_file("a.txt ", b"padded")
        assert padded.path == "a.txt "
        assert padded.created is True
        assert (await scope.read_file("a.txt")).content == b"original"
        assert (await scope.read_file("a.txt ")).content == b"padded"

    async def test_listed_whitespace_name_round_trips(self, any_storage):
        scope = UserScope(any_storage, 7)
        await scope.write_file(" notes.txt", b"leading space")

        listing = await scope.list_dir(".")
        assert listing.files == [" notes.txt"]
        name = listing.files[0]
        assert (await scope.read_file(name)).content == b"leading space"
        assert (await scope.get_item_size(name)).size_bytes == 13

        assert (await scope.remove_item(name)).success is True
        assert (await scope.get_dir_tree()).files == []


# ---------------------------------------------------------------------------
# User directory provisioning
# ---------------------------------------------------------------------------


class TestProvisioning:
    async def test_no_template_creates_empty_dir(self, storage, data_dir):
        result = await UserScope(storage, 7).list_dir(".")
        assert result.success is True
        assert result.files == []
        assert result.directories == []
        assert (data_dir / "7").is_dir()

    async def test_template_deployed_on_first_access(self, data_dir, template_dir):
        storage = StorageRoot(data_dir, template_path=template_dir)
        scope = UserScope(storage, 7)

        listing = await scope.list_dir(".")
        assert listing.files == ["welcome.txt"]
        assert listing.directories == ["docs"]
        assert (await scope.read_file("welcome.txt")).content == b"hello user"
        assert (await scope.read_file("docs/readme.md")).content == b"# docs\n"

    async def test_template_not_redeployed(self, data_dir, template_dir):
        storage = StorageRoot(data_dir, template_path=template_dir)
        scope = UserScope(storage, 7)
        await scope.remove_item("welcome.txt")
        await scope.list_dir(".")
        assert (await scope.read_file("welcome.txt")).success is False

    async def test_existing_user_dir_left_alone(self, data_dir, template_dir):
        (data_dir / "7").mkdir()
        (data_dir / "7" / "mine.txt").write_bytes(b"mine")
        storage = StorageRoot(data_dir, template_path=template_dir)

        listing = await UserScope(storage, 7).list_dir(".")
        assert listing.files == ["mine.txt"]
        assert listing.directories == []

    async def test_template_in_memory(self):
        host = _memory_template_host()
        storage = StorageRoot("/data", template_path="/template", host=host)
        tree = await UserScope(storage, 3).get_dir_tree()
        assert tree.files == ["docs/readme.md", "welcome.txt"]

    async def test_concurrent_first_access(self, data_dir, template_dir):
        storage = StorageRoot(data_dir, template_path=template_dir)
        results = await asyncio.gather(
            *(UserScope(storage, 7).list_dir(".") for _ in range(5))
        )
        assert all(r.success for r in results)
        assert sorted(p.name for p in data_dir.iterdir()) == ["7"]
        assert (data_dir / "7" / "welcome.txt").read_bytes() == b"hello user"

    async def test_failed_deployment_leaves_nothing_and_retries(self):
        host = _memory_template_host(FlakyHost)
        storage = StorageRoot("/data", template_path="/template", host=host)
        scope = UserScope(storage, 7)

        failed = await scope.list_dir(".")
        assert failed.success is False
        assert isinstance(failed.error, HostIOFailure)
        assert not host.exists("/data/7")
        assert host.scan_dir("/data") == []

        host.fail = False
        retried = await scope.list_dir(".")
        assert retried.success is True
        assert retried.files == ["welcome.txt"]

    async def test_template_larger_than_global_capacity(self, data_dir, template_dir):
        storage = StorageRoot(data_dir, template_path=template_dir, total_size=5)
        result = await UserScope(storage, 7).list_dir(".")
        assert isinstance(result.error, NotEnoughStorage)
        assert list(data_dir.iterdir()) == []


# ---------------------------------------------------------------------------
# Quotas
# ---------------------------------------------------------------------------


class TestUserQuota:
    async def test_writes_up_to_capacity(self, data_dir):
        storage = StorageRoot(data_dir, userspace_size=100)
        scope = UserScope(storage, 7)

        assert (await scope.write_file("a.bin", b"a" * 60)).success
        over = await scope.write_file("b.bin", b"b" * 50)
        assert isinstance(over.error, NotEnoughStorage)
        assert over.error.available == 40
        assert over.error.status_code == 413
        assert not (data_dir / "7" / "b.bin").exists()
        assert (await scope.write_file("c.bin", b"c" * 40)).success

    async def test_template_counts_toward_quota(self, data_dir, template_dir):
        storage = StorageRoot(data_dir, template_path=template_dir, userspace_size=100)
        scope = UserScope(storage, 7)

        fits = await scope.write_file("fill.bin", b"x" * (100 - TEMPLATE_BYTES))
        assert fits.success is True
        extra = await scope.write_file("one.bin", b"x")
        assert isinstance(extra.error, NotEnoughStorage)

    async def test_users_are_metered_separately(self, data_dir):
        storage = StorageRoot(data_dir, userspace_size=100)
        alice, bob = UserScope(storage, 1), UserScope(storage, 2)
        assert (await alice.write_file("a.bin", b"a" * 90)).success
        assert (await bob.write_file("b.bin", b"b" * 90)).success

    async def test_global_capacity_still_applies(self, data_dir):
        storage = StorageRoot(data_dir, total_size=100, userspace_size=80)
        alice, bob = UserScope(storage, 1), UserScope(storage, 2)
        assert (await alice.write_file("a.bin", b"a" * 70)).success
        result = await bob.write_file("b.bin", b"b" * 40)
        assert isinstance(result.error, NotEnoughStorage)
        assert result.error.available == 30

    async def test_copy_counts_toward_quota(self, data_dir):
        storage = StorageRoot(data_dir, userspace_size=100)
        scope = UserScope(storage, 7)
        await scope.create_dir("d")
        await scope.write_file("d/a.bin", b"a" * 60)

        result = await scope.copy_item("d", "d2")
        assert isinstance(result.error, NotEnoughStorage)
        assert not (data_dir / "7" / "d2").exists()

    async def test_concurrent_writes_cannot_jointly_exceed(self, data_dir):
        storage = StorageRoot(data_dir, userspace_size=100)
        scope = UserScope(storage, 7)
        results = await asyncio.gather(
            scope.write_file("a.bin", b"a" * 60),
            UserScope(storage, 7).write_file("b.bin", b"b" * 60),
        )
        assert sum(r.success for r in results) == 1
        assert (await scope.get_item_size(".")).size_bytes == 60

    async def test_quota_report(self, data_dir):
        storage = StorageRoot(data_dir, userspace_size=100)
        scope = UserScope(storage, 7)
        await scope.write_file("a.bin", b"a" * 30)

        quota = await scope.quota()
        assert quota.success is True
        assert quota.used == 30
        assert quota.capacity == 100
        assert quota.free == 70

    async def test_quota_report_unlimited(self, storage):
        quota = await UserScope(storage, 7).quota()
        assert quota.used == 0
        assert quota.capacity is None
        assert quota.free is None
