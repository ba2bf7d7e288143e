"""Tests for cancellation signals."""

from __future__ import annotations

import threading

import pytest

from omnifs._cancel import cancel_after, check_canceled
from omnifs._errors import Canceled


class TestCheckCanceled:
    def test_none_never_cancels(self) -> None:
        check_canceled(None)

    def test_unset_event(self) -> None:
        check_canceled(threading.Event())

    def test_set_event_raises(self) -> None:
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(Canceled) as exc_info:
            check_canceled(cancel, path="mem://1/a")
        assert exc_info.value.path == "mem://1/a"


class TestCancelAfter:
    def test_sets_after_deadline(self) -> None:
        cancel = cancel_after(0.01)
        assert cancel.wait(timeout=5)

    def test_not_set_before_deadline(self) -> None:
        assert not cancel_after(60).is_set()
