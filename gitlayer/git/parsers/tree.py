"""Parse ``git ls-tree -l`` output."""

from __future__ import annotations

from gitlayer.git.models import TreeEntry
from gitlayer.git.parsers.common import split_lines


def parse(data: str, ref: str) -> list[TreeEntry]:
    """Parse ``<mode> <type> <sha> <size>\\t<path>`` lines."""
    entries: list[TreeEntry] = []
    if not data:
        return entries

    for line in split_lines(data):
        meta, sep, path = line.partition("\t")
        if not sep:
            continue
        fields = meta.split()
        if len(fields) < 4:
            continue
        mode, type_, sha, size = fields[:4]
        entries.append(
            TreeEntry(
                commit=ref,
                path=path,
                sha=sha,
                size=int(size) if size.isdigit() else None,
                type=type_,  # type: ignore[arg-type]
                mode=mode,
            )
        )

    return entries
