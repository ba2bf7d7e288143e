"""Tests for prefix based dispatch and reference counted registration."""

from __future__ import annotations

import threading

import pytest

from omnifs import BackendConfig, File, Registry, RegistryConfig
from omnifs.backends import LocalBackend, MemoryBackend


class TestResolve:
    def test_longest_prefix_wins(self, registry: Registry) -> None:
        outer = MemoryBackend(id="data", registry=registry)
        inner = MemoryBackend(id="data", volume="archive", registry=registry)
        assert registry.resolve("mem://data/archive/x.txt") == (inner, "/x.txt")
        assert registry.resolve("mem://data/x.txt") == (outer, "/x.txt")

    def test_unmatched_falls_back_to_local(self, registry: Registry) -> None:
        backend, path = registry.resolve("/tmp/x.txt")
        assert backend is registry.local
        assert path == "/tmp/x.txt"

    def test_file_prefix_stripped(self, registry: Registry) -> None:
        backend, path = registry.resolve("file:///tmp/x.txt")
        assert backend is registry.local
        assert path == "/tmp/x.txt"

    def test_unknown_scheme_kept_verbatim(self, registry: Registry) -> None:
        backend, path = registry.resolve("ftp://host/x")
        assert isinstance(backend, LocalBackend)
        assert path == "ftp://host/x"

    def test_custom_local(self) -> None:
        local = MemoryBackend(id="local")
        with Registry(local=local) as reg:
            assert reg.resolve("/a") == (local, "/a")


class TestRegistration:
    def test_register_counts(self, registry: Registry) -> None:
        backend = MemoryBackend()
        assert registry.register(backend) == 1
        assert registry.register(backend) == 2
        assert registry.refcount(backend) == 2
        assert backend in registry
        assert backend.prefix in registry

    def test_conflicting_prefix(self, registry: Registry) -> None:
        MemoryBackend(id="same", registry=registry)
        with pytest.raises(ValueError, match="already registered"):
            MemoryBackend(id="same", registry=registry)

    def test_unregister_closes_at_zero(self, registry: Registry) -> None:
        backend = MemoryBackend(files={"/a.txt": b"a"})
        registry.register(backend)
        registry.register(backend)
        assert registry.unregister(backend) == 1
        assert backend.exists("/a.txt")
        assert registry.unregister(backend) == 0
        assert backend not in registry
        assert not backend.exists("/a.txt")

    def test_unregister_unknown(self, registry: Registry) -> None:
        assert registry.unregister(MemoryBackend()) == 0

    def test_evict_does_not_close(self, registry: Registry) -> None:
        backend = MemoryBackend(files={"/a.txt": b"a"})
        registry.register(backend)
        assert registry.evict(backend)
        assert not registry.evict(backend)
        assert backend.exists("/a.txt")
        assert registry.refcount(backend) == 0

    def test_closing_backend_unregisters_it(self, registry: Registry) -> None:
        backend = MemoryBackend(registry=registry)
        backend.close()
        assert backend not in registry
        assert registry.resolve(backend.prefix + "/x")[0] is registry.local

    def test_lookup(self, registry: Registry) -> None:
        backend = MemoryBackend(id="x", registry=registry)
        assert registry.lookup("mem://x") is backend
        assert registry.lookup("mem://y") is None

    def test_backends_sorted_by_prefix(self, registry: Registry) -> None:
        b = MemoryBackend(id="b", registry=registry)
        a = MemoryBackend(id="a", registry=registry)
        assert registry.backends() == [a, b]
        assert len(registry) == 2

    def test_close_closes_everything(self) -> None:
        reg = Registry()
        backend = MemoryBackend(files={"/a": b"1"}, registry=reg)
        reg.close()
        assert len(reg) == 0
        assert not backend.exists("/a")

    def test_concurrent_register(self, registry: Registry) -> None:
        backend = MemoryBackend()
        threads = [threading.Thread(target=registry.register, args=(backend,)) for _ in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert registry.refcount(backend) == 20


class TestFromConfig:
    def test_creates_named_backends(self) -> None:
        config = RegistryConfig(backends={"scratch": BackendConfig(type="memory", options={"id": "scratch"})})
        with Registry.from_config(config) as reg:
            backend = reg.get_backend("scratch")
            assert isinstance(backend, MemoryBackend)
            assert reg.lookup("mem://scratch") is backend

    def test_unknown_type(self) -> None:
        config = RegistryConfig(backends={"x": BackendConfig(type="nope")})
        with pytest.raises(ValueError, match="Unknown backend type 'nope'"):
            Registry.from_config(config)

    def test_invalid_options(self) -> None:
        config = RegistryConfig(backends={"x": BackendConfig(type="memory", options={"bogus": 1})})
        with pytest.raises(ValueError, match="Invalid options"):
            Registry.from_config(config)

    def test_unknown_name(self, registry: Registry) -> None:
        with pytest.raises(KeyError, match="missing"):
            registry.get_backend("missing")


class TestFileFactory:
    def test_single_part(self, registry: Registry, mem: MemoryBackend) -> None:
        f = registry.file(mem.prefix + "/a.txt")
        assert isinstance(f, File)
        assert f.backend is mem

    def test_joined_parts(self, registry: Registry, mem: MemoryBackend) -> None:
        f = registry.file(mem.prefix, "dir", "a.txt")
        assert f.uri == mem.prefix + "/dir/a.txt"
