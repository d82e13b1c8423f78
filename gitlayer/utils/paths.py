"""Path normalization shared by the command builder and the registries."""

from __future__ import annotations

import posixpath
import re
from typing import Optional

_SLASHES_RE = re.compile(r"[\\/]+")


def normalize_path(path: str, *, strip_trailing: bool = True) -> str:
    """Use forward slashes and collapse repeats.

    A trailing slash is removed (except for ``/`` itself). Windows drive
    letters are lower-cased so ``C:/x`` and ``c:/x`` compare equal.
    """
    if not path:
        return path

    normalized = _SLASHES_RE.sub("/", path)
    if strip_trailing and len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized.rstrip("/") or "/"
    if len(normalized) >= 2 and normalized[1] == ":":
        normalized = normalized[0].lower() + normalized[1:]
    return normalized


def split_path(file_name: str, repo_path: Optional[str], extract: bool = True) -> tuple[str, str]:
    """Split ``file_name`` into (relative file, repository root).

    With a ``repo_path``, a file under it becomes relative to it (case
    insensitive match). Without one, the file's directory is used as the
    root when ``extract`` is True.
    """
    if repo_path:
        file_name = normalize_path(file_name)
        repo_path = normalize_path(repo_path)

        prefix = repo_path if repo_path.endswith("/") else f"{repo_path}/"
        if file_name.lower().startswith(prefix.lower()):
            file_name = file_name[len(prefix):]
        return file_name, repo_path

    normalized = normalize_path(file_name)
    if extract:
        return posixpath.basename(normalized), posixpath.dirname(normalized)
    return normalized, ""


def is_folder_glob(path: str) -> bool:
    return posixpath.basename(normalize_path(path)) == "*"


def to_folder_glob(path: str) -> str:
    return posixpath.join(normalize_path(path), "*")


def is_descendant(path: str, base: str) -> bool:
    """True if ``path`` is ``base`` or inside it."""
    path = normalize_path(path)
    base = normalize_path(base)
    if path == base:
        return True
    prefix = base if base.endswith("/") else f"{base}/"
    return path.startswith(prefix)


def relative_to(path: str, base: str) -> str:
    path = normalize_path(path)
    base = normalize_path(base)
    if path == base:
        return ""
    prefix = base if base.endswith("/") else f"{base}/"
    return path[len(prefix):] if path.startswith(prefix) else path
