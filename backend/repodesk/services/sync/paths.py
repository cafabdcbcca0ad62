"""Repository-relative path normalization."""

from repodesk.exceptions import InvalidPathError


def normalize_path(path: str | None, allow_root: bool = False) -> str:
    """
    Normalize a user supplied path to POSIX form relative to the repository root.

    Backslashes become '/', leading slashes and '.' / empty segments are dropped.
    Any '..' segment is rejected rather than resolved.

    Args:
        path: Raw path from the caller
        allow_root: Accept an empty result (the repository root)

    Raises:
        InvalidPathError: empty path (unless allow_root), '..' segment or NUL byte
    """
    raw = path or ""
    if "\x00" in raw:
        raise InvalidPathError(raw)

    segments = []
    for segment in raw.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise InvalidPathError(raw)
        segments.append(segment)

    normalized = "/".join(segments)
    if not normalized and not allow_root:
        raise InvalidPathError(raw)
    return normalized


def file_name(path: str) -> str:
    """Last segment of a normalized path."""
    return path.rsplit("/", 1)[-1]
