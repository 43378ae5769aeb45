"""Backend path normalization."""

import posixpath

ROOT = "."


def normalize(path: str) -> str:
    """Normalize a key or path to the backend-relative form.

    Collapses duplicate separators and ``.`` segments, resolves ``..``
    against the root so a path never climbs above it, strips any leading
    separator, and maps the empty path to ``"."`` (the current directory).
    The result never starts with ``/`` and ``normalize(normalize(p)) ==
    normalize(p)``.
    """
    cleaned = posixpath.normpath("/" + (path or "")).lstrip("/")
    return cleaned or ROOT


def is_root(path: str) -> bool:
    return normalize(path) == ROOT


def parent_of(path: str) -> str:
    """Return the normalized parent directory of ``path`` (``"."`` at the top level)."""
    return normalize(posixpath.dirname(normalize(path)))


def base_name(path: str) -> str:
    return posixpath.basename(normalize(path))


def ancestors(path: str) -> list[str]:
    """Accumulated directory prefixes of ``path``, left to right.

    >>> ancestors("a/b/c")
    ['a', 'a/b', 'a/b/c']
    """
    normalized = normalize(path)
    if normalized == ROOT:
        return []
    result = []
    current = ""
    for part in normalized.split("/"):
        if not part:
            continue
        current = f"{current}/{part}" if current else part
        result.append(current)
    return result
