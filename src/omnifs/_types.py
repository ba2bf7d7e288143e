"""Type aliases used throughout omnifs."""

from __future__ import annotations

import os  # noqa: TC003
from collections.abc import Callable
from typing import Union

from omnifs._models import Event  # noqa: TC001

PathLike = Union[str, "os.PathLike[str]"]  # noqa: UP007
EventCallback = Callable[[str, Event], None]
CancelWatch = Callable[[], None]
