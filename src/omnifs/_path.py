"""Path algebra shared by every backend and the File handle.

All functions are pure and take the separator (and, where it matters, the
length of the volume prefix) as arguments. Backends disagree on both, so
nothing here assumes ``/``.
"""

from __future__ import annotations

import fnmatch
import re
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import unquote

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")


class ParsedURI(NamedTuple):
    """A file URI split into ``scheme``, ``authority`` and ``path``.

    Bare local paths have an empty scheme and authority.
    """

    scheme: str
    authority: str
    path: str

    @property
    def prefix(self) -> str:
        """``scheme://authority``, or an empty string for a bare path."""
        if not self.scheme:
            return ""
        return f"{self.scheme}://{self.authority}"


def parse_uri(uri: str) -> ParsedURI:
    """Split ``uri`` into its scheme, authority and path components."""
    scheme, sep, rest = uri.partition("://")
    if not sep or not _SCHEME.match(scheme):
        return ParsedURI("", "", uri)
    slash = rest.find("/")
    if slash == -1:
        return ParsedURI(scheme, rest, "")
    return ParsedURI(scheme, rest[:slash], rest[slash:])


def clean_path(path: str, separator: str = "/") -> str:
    """Lexically clean ``path``.

    Repeated separators collapse, ``.`` elements vanish and ``..`` removes
    the preceding element. A rooted path never climbs above its root.
    An empty result is ``"."``.
    """
    if not path:
        return "."
    rooted = path.startswith(separator)
    out: list[str] = []
    for part in path.split(separator):
        if part in ("", "."):
            continue
        if part == "..":
            if out and out[-1] != "..":
                out.pop()
            elif not rooted:
                out.append("..")
            continue
        out.append(part)
    cleaned = separator.join(out)
    if rooted:
        return separator + cleaned
    return cleaned or "."


def join_clean_path(parts: Iterable[str], prefix: str, separator: str) -> str:
    """Join ``parts`` into a clean absolute path without ``prefix``.

    The prefix is stripped from the first part, the result is
    percent-unescaped and always starts with ``separator``.
    """
    parts = list(parts)
    if parts and prefix:
        parts[0] = parts[0].removeprefix(prefix)
    joined = unquote(separator.join(p for p in parts if p))
    if not joined.startswith(separator):
        joined = separator + joined
    return clean_path(joined, separator)


def escape_path(path: str) -> str:
    """Escape ``%`` so that :func:`join_clean_path` maps the result back to ``path``."""
    return path.replace("%", "%25")


def split_path(path: str, prefix: str, separator: str) -> list[str]:
    """Return the ``separator`` delimited elements of ``path``.

    The root path yields an empty list.
    """
    if prefix:
        path = path.removeprefix(prefix)
    path = path.removeprefix(separator).removesuffix(separator)
    if not path:
        return []
    return path.split(separator)


def dir_and_name(path: str, volume_len: int, separator: str) -> tuple[str, str]:
    """Return the parent directory of ``path`` and the name of its last element.

    ``Path.parent`` and ``os.path.split`` both misbehave on a trailing
    separator, hence the dedicated helper:

    - the root (a bare separator) has an empty name,
    - a path without any separator has ``"."`` as its directory,
    - the root of a volume (``C:\\``) has an empty name,
    - a child of the root keeps the root, separator included, as directory.
    """
    if not path:
        return "", ""
    path = path.removesuffix(separator)
    if not path:
        return separator, ""
    if 0 < volume_len and len(path) <= volume_len:
        return path + separator, ""
    pos = path.rfind(separator)
    if pos == -1:
        return ".", path
    if pos < volume_len:
        return path, ""
    if pos == volume_len:
        return path[: pos + 1], path[pos + 1 :]
    return path[:pos], path[pos + 1 :]


def match_any_pattern(name: str, patterns: Sequence[str]) -> bool:
    """Return ``True`` if ``name`` matches any glob pattern, or if there are none."""
    if not patterns:
        return True
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def ext(path: str, separator: str = "/") -> str:
    """Extension of the last path element including the dot, or ``""``.

    Example: ``ext("dir.d/file.tar.gz") == ".gz"`` and ``ext("dir.d/file") == ""``.
    """
    name = path.rsplit(separator, 1)[-1]
    dot = name.rfind(".")
    if dot <= 0:
        return ""
    return name[dot:]


def trim_ext(path: str, separator: str = "/") -> str:
    """``path`` with the extension of its last element removed."""
    suffix = ext(path, separator)
    if not suffix:
        return path
    return path[: -len(suffix)]


def child_path(parent: str, name: str, separator: str) -> str:
    """Append a single element to an already clean ``parent`` path."""
    if parent.endswith(separator):
        return parent + name
    return parent + separator + name
