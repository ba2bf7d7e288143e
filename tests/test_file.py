"""Tests for the File handle, mostly against the in-memory backend."""

from __future__ import annotations

import threading

import pytest

from omnifs import (
    AlreadyExists,
    Canceled,
    DoesNotExist,
    Event,
    File,
    InvalidPath,
    IsNotDirectory,
    Permissions,
    Registry,
    Unsupported,
    content_hash_bytes,
    identical_contents,
)
from omnifs.backends import MemoryBackend


@pytest.fixture()
def root(registry: Registry, mem: MemoryBackend) -> File:
    return registry.file(mem.prefix + "/")


class TestIdentity:
    def test_empty_uri_rejected(self, registry: Registry) -> None:
        with pytest.raises(InvalidPath):
            File("", registry)

    def test_immutable(self, root: File) -> None:
        with pytest.raises(AttributeError):
            root._uri = "x"  # type: ignore[misc]

    def test_equality_uses_uri(self, registry: Registry, mem: MemoryBackend) -> None:
        a = registry.file(mem.prefix + "/a")
        assert a == registry.file(mem.prefix + "/a")
        assert a != registry.file(mem.prefix + "//a")
        assert len({a, registry.file(mem.prefix + "/a")}) == 1

    def test_same_file(self, registry: Registry, mem: MemoryBackend) -> None:
        a = registry.file(mem.prefix + "/x/../a")
        assert a.same_file(mem.prefix + "/a")
        assert not a.same_file(mem.prefix + "/b")

    def test_str_and_repr(self, root: File) -> None:
        assert str(root) == root.uri
        assert repr(root) == f"File({root.uri!r})"


class TestDecomposition:
    def test_parts(self, root: File, mem: MemoryBackend) -> None:
        f = root / "dir" / "report.tar.gz"
        assert f.uri == mem.prefix + "/dir/report.tar.gz"
        assert f.scheme == "mem"
        assert f.backend is mem
        assert f.local_path == "/dir/report.tar.gz"
        assert f.path == "/dir/report.tar.gz"
        assert f.name == "report.tar.gz"
        assert f.ext == ".gz"
        assert f.trim_ext().name == "report.tar"
        assert f.dir.uri == mem.prefix + "/dir"

    def test_ext_lower(self, root: File) -> None:
        assert (root / "A.TXT").ext_lower == ".txt"

    def test_root_is_its_own_parent(self, root: File) -> None:
        directory, name = root.dir_and_name()
        assert name == ""
        assert directory.path == "/"

    def test_child_of_root(self, root: File) -> None:
        directory, name = (root / "a").dir_and_name()
        assert name == "a"
        assert directory.path == "/"

    def test_url_cleans(self, registry: Registry, mem: MemoryBackend) -> None:
        f = registry.file(mem.prefix + "/a//b/../c")
        assert f.url == mem.prefix + "/a/c"

    def test_join_without_parts(self, root: File) -> None:
        assert root.join() is root

    @pytest.mark.parametrize("separator", ["/", "\\"])
    def test_join_split_parts_of_clean_handle(self, registry: Registry, separator: str) -> None:
        backend = MemoryBackend(separator, registry=registry)
        f = registry.file(backend.prefix + backend.join_clean_path("a", "b", "c.txt"))
        root = registry.file(backend.prefix + separator)
        assert root.join(*backend.split_path(f.path)) == f
        assert f.join(".") == f
        assert f.dir.join(f.name) == f

    def test_escaped_names(self, root: File, mem: MemoryBackend) -> None:
        f = root / "100%25.txt"
        assert f.uri == mem.prefix + "/100%25.txt"
        assert f.name == "100%.txt"
        assert f.dir.join("100%25.txt") == f

    def test_backslash_separator(self, registry: Registry) -> None:
        backend = MemoryBackend("\\", registry=registry)
        f = registry.file(backend.prefix, "a", "b.txt")
        assert f.path == "\\a\\b.txt"
        assert f.path_with_slashes == "/a/b.txt"
        assert f.name == "b.txt"

    def test_abs_path(self, root: File) -> None:
        f = root / "a"
        assert f.has_abs_path()
        assert f.with_abs_path() is f

    def test_volume_name(self, registry: Registry) -> None:
        backend = MemoryBackend(id="vol", volume="C", registry=registry)
        assert registry.file(backend.prefix + "/a").volume_name() == "C"


class TestMetadata:
    def test_info_missing_never_raises(self, root: File) -> None:
        info = (root / "missing.txt").info()
        assert not info.exists
        assert info.name == "missing.txt"

    def test_stat_missing_raises(self, root: File) -> None:
        with pytest.raises(DoesNotExist):
            (root / "missing.txt").stat()

    def test_file_info(self, root: File) -> None:
        f = root / "a.txt"
        f.write_all(b"hello")
        info = f.stat()
        assert info.exists
        assert info.is_regular
        assert not info.is_dir
        assert info.size == 5
        assert info.uri == f.uri
        assert f.size() == 5
        assert f.permissions() == Permissions.DEFAULT_FILE

    def test_info_with_content_hash(self, root: File) -> None:
        f = root / "a.txt"
        f.write_all(b"hello")
        assert f.info_with_content_hash().content_hash == content_hash_bytes(b"hello")
        assert root.info_with_content_hash().content_hash is None

    def test_check_exists(self, root: File) -> None:
        with pytest.raises(DoesNotExist):
            (root / "nope").check_exists()
        root.check_exists()

    def test_check_is_dir(self, root: File) -> None:
        f = root / "a.txt"
        f.write_all(b"")
        with pytest.raises(IsNotDirectory):
            f.check_is_dir()
        root.check_is_dir()

    def test_is_empty(self, root: File) -> None:
        assert (root / "missing").is_empty()
        assert root.is_empty()
        f = root / "a.txt"
        f.write_all(b"")
        assert f.is_empty()
        assert not root.is_empty()
        f.write_all(b"x")
        assert not f.is_empty()

    def test_is_hidden(self, root: File) -> None:
        assert (root / ".env").is_hidden()
        assert not (root / "env").is_hidden()

    def test_symbolic_link_false(self, root: File) -> None:
        assert not root.is_symbolic_link()


class TestListing:
    @pytest.fixture()
    def tree(self, root: File) -> File:
        for name in ("b.txt", "a.csv", "sub/c.txt", "sub/deeper/d.txt", "sub/deeper/e.log"):
            (root / name).dir.make_all_dirs()
            (root / name).write_all(name.encode())
        return root

    def test_list_dir_sorted(self, tree: File) -> None:
        assert [f.name for f in tree.list_dir_sorted()] == ["a.csv", "b.txt", "sub"]

    def test_list_dir_patterns(self, tree: File) -> None:
        assert [f.name for f in tree.list_dir("*.txt", "*.csv")] == ["a.csv", "b.txt"]

    def test_list_dir_recursive_files_only(self, tree: File) -> None:
        names = sorted(f.path for f in tree.list_dir_recursive())
        assert names == ["/a.csv", "/b.txt", "/sub/c.txt", "/sub/deeper/d.txt", "/sub/deeper/e.log"]

    def test_list_dir_recursive_patterns_apply_to_files(self, tree: File) -> None:
        names = sorted(f.name for f in tree.list_dir_recursive("*.txt"))
        assert names == ["b.txt", "c.txt", "d.txt"]

    def test_list_dir_max(self, tree: File) -> None:
        assert len(tree.list_dir_max(2)) == 2
        assert tree.list_dir_max(0) == []
        assert len(tree.list_dir_max(-1)) == 3
        assert [f.name for f in tree.list_dir_max(5, "*.txt")] == ["b.txt"]

    def test_list_dir_missing(self, root: File) -> None:
        with pytest.raises(DoesNotExist):
            list((root / "missing").list_dir())

    def test_list_dir_of_file(self, tree: File) -> None:
        with pytest.raises(IsNotDirectory):
            list((tree / "b.txt").list_dir())

    def test_listed_names_with_percent_escapes_reopen(self, root: File, mem: MemoryBackend) -> None:
        mem.write_all("/x%2541.txt", b"data")
        [child] = root.list_dir()
        assert child.name == "x%41.txt"
        assert child.read_all() == b"data"
        [info] = root.list_dir_info_recursive()
        assert root.registry.file(info.uri).read_all() == b"data"

    def test_list_dir_canceled(self, tree: File) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Canceled):
            list(tree.list_dir(cancel=cancel))


class TestData:
    def test_write_and_read(self, root: File) -> None:
        f = root / "a.txt"
        f.write_all_string("héllo")
        assert f.read_all_string() == "héllo"
        data, digest = f.read_all_content_hash()
        assert data == "héllo".encode()
        assert digest == content_hash_bytes(data)

    def test_write_into_missing_dir(self, root: File) -> None:
        with pytest.raises(DoesNotExist):
            (root / "missing" / "a.txt").write_all(b"x")

    def test_append(self, root: File) -> None:
        f = root / "log.txt"
        f.append_string("a")
        f.append(b"b")
        assert f.read_all() == b"ab"

    def test_streams(self, root: File) -> None:
        f = root / "a.bin"
        with f.open_writer() as w:
            w.write(b"12345")
        with f.open_append_writer() as w:
            w.write(b"67")
        with f.open_reader() as r:
            assert r.read() == b"1234567"
        with f.open_read_writer() as rw:
            assert rw.read(2) == b"12"
            rw.write(b"XY")
        assert f.read_all() == b"12XY567"


class TestLifecycle:
    def test_touch(self, root: File) -> None:
        f = root / "t"
        f.touch()
        assert f.exists()
        assert f.size() == 0

    def test_make_dir_existing_dir_is_fine(self, root: File) -> None:
        d = root / "d"
        d.make_dir()
        d.make_dir()
        assert d.is_dir()

    def test_make_dir_over_file(self, root: File) -> None:
        f = root / "f"
        f.write_all(b"")
        with pytest.raises(AlreadyExists):
            f.make_dir()

    def test_make_all_dirs(self, root: File) -> None:
        d = root / "a" / "b" / "c"
        d.make_all_dirs()
        assert d.is_dir()
        assert (root / "a" / "b").is_dir()

    def test_truncate(self, root: File) -> None:
        f = root / "t"
        f.write_all(b"abcdef")
        f.truncate(3)
        assert f.read_all() == b"abc"
        f.truncate(5)
        assert f.read_all() == b"abc\x00\x00"

    def test_rename(self, root: File) -> None:
        f = root / "old.txt"
        f.write_all(b"x")
        renamed = f.rename("new.txt")
        assert renamed.name == "new.txt"
        assert renamed.read_all() == b"x"
        assert not f.exists()

    def test_rename_with_separator(self, root: File) -> None:
        f = root / "old.txt"
        f.write_all(b"x")
        with pytest.raises(InvalidPath):
            f.rename("a/b")

    def test_copy_file(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        copy = src.copy_to(root / "b.txt")
        assert copy.read_all() == b"data"
        assert src.exists()

    def test_copy_into_directory(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        (root / "d").make_dir()
        copy = src.copy_to(root / "d")
        assert copy.path == "/d/a.txt"
        assert copy.read_all() == b"data"

    def test_copy_tree_across_backends(self, registry: Registry, root: File) -> None:
        other = MemoryBackend(registry=registry)
        (root / "src" / "sub").make_all_dirs()
        (root / "src" / "a.txt").write_all(b"a")
        (root / "src" / "sub" / "b.txt").write_all(b"b")
        target = registry.file(other.prefix + "/")
        copy = (root / "src").copy_to(target)
        assert copy.path == "/src"
        assert (copy / "a.txt").read_all() == b"a"
        assert (copy / "sub" / "b.txt").read_all() == b"b"

    def test_copy_canceled(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Canceled):
            src.copy_to(root / "b.txt", cancel=cancel)

    def test_copy_into_own_subtree(self, root: File) -> None:
        (root / "src").make_dir()
        (root / "src" / "a.txt").write_all(b"a")
        with pytest.raises(InvalidPath):
            (root / "src").copy_to(root / "src" / "inner")
        assert [f.name for f in (root / "src").list_dir_sorted()] == ["a.txt"]

    def test_copy_directory_onto_its_parent(self, root: File) -> None:
        (root / "src").make_dir()
        with pytest.raises(InvalidPath):
            (root / "src").copy_to(root)

    def test_copy_file_onto_itself(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        with pytest.raises(InvalidPath):
            src.copy_to(root / "x" / ".." / "a.txt")
        assert src.read_all() == b"data"

    def test_copy_next_to_source_with_common_name_prefix(self, root: File) -> None:
        (root / "src").make_dir()
        (root / "src" / "a.txt").write_all(b"a")
        copy = (root / "src").copy_to(root / "src2")
        assert (copy / "a.txt").read_all() == b"a"

    def test_move_same_backend(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        moved = src.move_to(root / "b.txt")
        assert moved.read_all() == b"data"
        assert not src.exists()

    def test_move_into_directory(self, root: File) -> None:
        src = root / "a.txt"
        src.write_all(b"data")
        (root / "d").make_dir()
        moved = src.move_to(root / "d")
        assert moved.path == "/d/a.txt"

    def test_move_across_backends(self, registry: Registry, root: File) -> None:
        other = MemoryBackend(registry=registry)
        src = root / "a.txt"
        src.write_all(b"data")
        moved = src.move_to(registry.file(other.prefix + "/a.txt"))
        assert moved.read_all() == b"data"
        assert not src.exists()

    def test_remove_recursive(self, root: File) -> None:
        (root / "d" / "e").make_all_dirs()
        (root / "d" / "e" / "f.txt").write_all(b"")
        (root / "d").remove_recursive()
        assert not (root / "d").exists()

    def test_remove_recursive_missing_is_fine(self, root: File) -> None:
        (root / "nope").remove_recursive()

    def test_remove_dir_contents(self, root: File) -> None:
        (root / "a.txt").write_all(b"")
        (root / "b.log").write_all(b"")
        root.remove_dir_contents("*.txt")
        assert [f.name for f in root.list_dir()] == ["b.log"]

    def test_remove_dir_contents_recursive(self, root: File) -> None:
        (root / "d" / "e").make_all_dirs()
        (root / "d" / "e" / "f").write_all(b"")
        (root / "x").write_all(b"")
        root.remove_dir_contents_recursive()
        assert root.is_empty()


class TestPermissionsAndWatch:
    def test_set_permissions(self, root: File) -> None:
        f = root / "a"
        f.write_all(b"")
        f.set_permissions(Permissions.USER_READ_WRITE)
        assert f.permissions() == Permissions.USER_READ_WRITE

    def test_user_group_unsupported(self, root: File) -> None:
        with pytest.raises(Unsupported) as exc_info:
            root.user()
        assert exc_info.value.capability == "user_group"

    def test_watch(self, root: File) -> None:
        events: list[tuple[str, Event]] = []
        stop = root.watch(lambda uri, event: events.append((uri, event)))
        f = root / "a.txt"
        f.write_all(b"1")
        f.write_all(b"2")
        f.remove()
        stop()
        (root / "b.txt").write_all(b"")
        assert events == [(f.uri, Event.CREATE), (f.uri, Event.WRITE), (f.uri, Event.REMOVE)]


class TestIdenticalContents:
    def test_identical(self, root: File) -> None:
        a, b = root / "a", root / "b"
        a.write_all(b"same")
        b.write_all(b"same")
        assert identical_contents(a, b)

    def test_different_size(self, root: File) -> None:
        a, b = root / "a", root / "b"
        a.write_all(b"same")
        b.write_all(b"other")
        assert not identical_contents(a, b)

    def test_same_size_different_content(self, root: File) -> None:
        a, b = root / "a", root / "b"
        a.write_all(b"aaaa")
        b.write_all(b"bbbb")
        assert not identical_contents(a, b)

    def test_fewer_than_two(self, root: File) -> None:
        assert identical_contents()
        assert identical_contents(root / "missing")

    def test_missing_raises(self, root: File) -> None:
        (root / "a").write_all(b"")
        with pytest.raises(DoesNotExist):
            identical_contents(root / "a", root / "missing")
