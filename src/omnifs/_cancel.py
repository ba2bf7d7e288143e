"""Cancellation signals for long-running operations.

A cancellation signal is a plain :class:`threading.Event`. Operations that
loop over blocks, directory entries or remote calls check it before each
step and raise :class:`~omnifs.Canceled` once it is set.
"""

from __future__ import annotations

import threading

from omnifs._errors import Canceled


def check_canceled(cancel: threading.Event | None, *, path: str | None = None) -> None:
    """Raise :class:`Canceled` if ``cancel`` is set.

    :param cancel: The signal to check, ``None`` means "never canceled".
    :param path: The URI reported in the error.
    :raises Canceled: If the signal is set.
    """
    if cancel is not None and cancel.is_set():
        raise Canceled("Operation canceled", path=path)


def cancel_after(seconds: float) -> threading.Event:
    """Return an event that sets itself once ``seconds`` have elapsed.

    The timer thread is a daemon, so a pending deadline never keeps the
    interpreter alive.
    """
    event = threading.Event()
    timer = threading.Timer(seconds, event.set)
    timer.daemon = True
    timer.start()
    return event
