"""
Directory views derived from catalog paths.

Directories are never stored; they are implied by path prefixes.
Everything here is pure and never calls the remote API.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List


class EntryKind(str, Enum):
    DIR = "dir"
    FILE = "file"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    kind: EntryKind

    def to_dict(self) -> dict:
        return {"name": self.name, "path": self.path, "kind": self.kind.value}


def list_entries(paths: Iterable[str], parent: str = "") -> List[DirectoryEntry]:
    """
    Immediate children of parent among the given file paths.

    A child whose remainder still contains '/' is a directory. Entries are
    de-duplicated by full path and sorted directories first, then by name.
    """
    prefix = f"{parent}/" if parent else ""
    entries = {}

    for path in paths:
        if not path.startswith(prefix) or path == prefix:
            continue
        remainder = path[len(prefix):]
        head, sep, _ = remainder.partition("/")
        if not head:
            continue
        kind = EntryKind.DIR if sep else EntryKind.FILE
        full_path = prefix + head
        # A path cannot be both; a directory wins over a stale file row
        if full_path in entries and entries[full_path].kind == EntryKind.DIR:
            continue
        entries[full_path] = DirectoryEntry(name=head, path=full_path, kind=kind)

    return sorted(entries.values(), key=lambda e: (e.kind != EntryKind.DIR, e.name))


def render_flat_tree(paths: Iterable[str]) -> str:
    """One path per line, sorted; 'Repository is empty' when there are none."""
    ordered = sorted(paths)
    if not ordered:
        return "Repository is empty"
    return "\n".join(ordered)
