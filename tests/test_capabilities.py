"""Tests for Capability and CapabilitySet."""

from __future__ import annotations

import pytest

from omnifs._capabilities import Capability, CapabilitySet
from omnifs._errors import Unsupported


class TestCapabilityEnum:
    def test_members(self) -> None:
        expected = {
            "COPY",
            "MOVE",
            "RENAME",
            "TOUCH",
            "TRUNCATE",
            "APPEND",
            "APPEND_WRITER",
            "PERMISSIONS",
            "USER_GROUP",
            "WATCH",
            "VOLUME_NAME",
            "MAKE_ALL_DIRS",
        }
        assert {c.name for c in Capability} == expected

    def test_values_are_lowercase_names(self) -> None:
        for cap in Capability:
            assert cap.value == cap.name.lower()


class TestCapabilitySet:
    def test_construction(self) -> None:
        cs = CapabilitySet({Capability.COPY, Capability.MOVE})
        assert len(cs) == 2

    def test_empty(self) -> None:
        cs = CapabilitySet()
        assert len(cs) == 0
        assert not cs.supports(Capability.COPY)

    def test_all(self) -> None:
        cs = CapabilitySet.all()
        assert set(cs) == set(Capability)

    def test_supports_and_contains(self) -> None:
        cs = CapabilitySet({Capability.WATCH})
        assert cs.supports(Capability.WATCH)
        assert Capability.WATCH in cs
        assert Capability.TOUCH not in cs

    def test_require_passes(self) -> None:
        CapabilitySet({Capability.TOUCH}).require(Capability.TOUCH)

    def test_require_raises(self) -> None:
        with pytest.raises(Unsupported) as exc_info:
            CapabilitySet().require(Capability.RENAME, backend="s3", path="s3://b/x")
        assert exc_info.value.capability == "rename"
        assert exc_info.value.backend == "s3"
        assert exc_info.value.path == "s3://b/x"

    def test_without(self) -> None:
        cs = CapabilitySet.all().without(Capability.WATCH, Capability.USER_GROUP)
        assert Capability.WATCH not in cs
        assert Capability.USER_GROUP not in cs
        assert len(cs) == len(Capability) - 2

    def test_equality_and_hash(self) -> None:
        a = CapabilitySet({Capability.COPY})
        b = CapabilitySet([Capability.COPY])
        assert a == b
        assert hash(a) == hash(b)
        assert a != CapabilitySet()

    def test_immutable(self) -> None:
        cs = CapabilitySet()
        with pytest.raises(AttributeError):
            cs._caps = frozenset()  # type: ignore[misc]
        with pytest.raises(AttributeError):
            del cs._caps

    def test_repr_sorted(self) -> None:
        cs = CapabilitySet({Capability.WATCH, Capability.COPY})
        assert repr(cs) == "CapabilitySet({COPY, WATCH})"
