"""Search query parsing for commit searches.

A query is a list of ``operator:value`` tokens. Operators have a long and a
short form:

    message: / =:   commit message (the default for bare words)
    author:  / @:   author name or email
    commit:  / #:   commit sha
    file:    / ?:   path or glob
    change:  / ~:   added or removed text (``-G``)

Quoted values keep their quotes; the caller decides what a quote means for
each git option.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from gitlayer.git import revision

OPERATORS = {
    "=:": "message:",
    "message:": "message:",
    "@:": "author:",
    "author:": "author:",
    "#:": "commit:",
    "commit:": "commit:",
    "?:": "file:",
    "file:": "file:",
    "~:": "change:",
    "change:": "change:",
}

_TOKEN_RE = re.compile(
    r"(?:(?P<op>=:|message:|@:|author:|#:|commit:|\?:|file:|~:|change:)\s?(?P<value>\".+?\"|\S+))"
    r"|(?P<text>\".+?\"|\S+)"
)

DOUBLE_QUOTE_RE = re.compile(r'"')


@dataclass(frozen=True)
class SearchPattern:
    """A commit search request."""

    pattern: str
    match_all: bool = False
    match_case: bool = False
    match_regex: bool = True


def parse_search_operations(pattern: str) -> dict[str, list[str]]:
    """Group the values of ``pattern`` by their long-form operator.

    Insertion order follows the first appearance of each operator. A bare
    token that looks like a full sha is treated as ``commit:``; every other
    bare token is a ``message:`` value.

    Example:
        >>> parse_search_operations('fix @:alice ?:src/*.py')
        {'message:': ['fix'], 'author:': ['alice'], 'file:': ['src/*.py']}
    """
    operations: dict[str, list[str]] = {}

    for match in _TOKEN_RE.finditer(pattern):
        op = match.group("op")
        if op is not None:
            value = match.group("value")
            key = OPERATORS[op]
        else:
            value = match.group("text")
            key = "commit:" if revision.is_sha(value) else "message:"

        if not value:
            continue
        values = operations.setdefault(key, [])
        if value not in values:
            values.append(value)

    return operations


def strip_quotes(value: str) -> str:
    return DOUBLE_QUOTE_RE.sub("", value)


def word_boundaries(value: str) -> str:
    """Turn quotes into regex word boundaries (``"fix"`` -> ``\\bfix\\b``)."""
    return DOUBLE_QUOTE_RE.sub(r"\\b", value)


def build_search_args(
    search: SearchPattern,
    similarity_threshold: Optional[int] = None,
) -> tuple[list[str], bool]:
    """Translate a search into ``git log``/``git show`` arguments.

    Returns:
        ``(args, use_show)``. ``args`` ends with ``--`` followed by any
        ``file:`` values. ``use_show`` is True for ``commit:`` searches.
    """
    operations = parse_search_operations(search.pattern)
    renames = f"-M{'' if similarity_threshold is None else f'{similarity_threshold}%'}"

    args: dict[str, None] = {}
    files: list[str] = []
    use_show = False

    commits = operations.get("commit:")
    if commits is not None:
        use_show = True
        args["-m"] = None
        args[renames] = None
        for value in commits:
            args[strip_quotes(value)] = None
    else:
        args[renames] = None
        args["--all"] = None
        args["--full-history"] = None
        args["--extended-regexp" if search.match_regex else "--fixed-strings"] = None
        if search.match_regex and not search.match_case:
            args["--regexp-ignore-case"] = None

        for op, values in operations.items():
            if op == "message:":
                args["-m"] = None
                if search.match_all:
                    args["--all-match"] = None
                for value in values:
                    args[f"--grep={word_boundaries(value)}"] = None
            elif op == "author:":
                args["-m"] = None
                for value in values:
                    args[f"--author={word_boundaries(value)}"] = None
            elif op == "change:":
                for value in values:
                    args[f"-G{value}"] = None
            elif op == "file:":
                files.extend(strip_quotes(value) for value in values)

    return [*args, "--", *files], use_show
