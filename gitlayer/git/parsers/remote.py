"""Parse ``git remote -v`` output."""

from __future__ import annotations

import re
from typing import Callable, Optional

from gitlayer.git.models import Remote
from gitlayer.git.parsers.common import split_lines

ProviderFactory = Callable[[str, str], object]

_REMOTE_RE = re.compile(r"^(\S+)\s+(\S+)\s+\((fetch|push)\)$")
_URL_RE = re.compile(
    r"^(?:(?P<scheme>[a-z][a-z0-9+.-]*):/{1,3})?"  # scheme
    r"(?:[^@/]+@)?"  # user
    r"(?P<host>[^:/]+?)"  # host
    r"(?::(?P<port>\d+))?"  # port
    r"[:/](?P<path>.+?)/?$",
    re.IGNORECASE,
)


def parse_url(url: str) -> tuple[str, str, str]:
    """Split a remote url into (scheme, domain, path).

    Handles ``https://host/owner/repo.git``, ``ssh://git@host:22/owner/repo``
    and scp-like ``git@host:owner/repo.git``. The ``.git`` suffix is dropped
    from the path. Local paths come back with an empty domain.
    """
    match = _URL_RE.match(url)
    if match is None or (match.group("scheme") is None and "@" not in url and ":" not in url):
        return "", "", url

    scheme = f"{match.group('scheme')}://" if match.group("scheme") else ""
    if scheme == "file://":
        return scheme, "", url[len(scheme):]

    domain = match.group("host")
    if match.group("port") and scheme not in ("ssh://", ""):
        domain = f"{domain}:{match.group('port')}"

    path = match.group("path")
    if path.endswith(".git"):
        path = path[:-4]
    return scheme, domain, path


def parse(
    data: str,
    repo_path: str,
    provider_factory: Optional[ProviderFactory] = None,
) -> list[Remote]:
    """Group the fetch/push lines of each remote into one :class:`Remote`.

    Args:
        data: Raw stdout.
        repo_path: Repository the remotes belong to.
        provider_factory: Resolves ``(domain, path)`` to a remote provider.
    """
    remotes: dict[str, Remote] = {}
    if not data:
        return []

    for line in split_lines(data):
        match = _REMOTE_RE.match(line.strip())
        if match is None:
            continue
        name, url, kind = match.groups()

        existing = remotes.get(name)
        if existing is not None:
            if kind not in existing.types:
                remotes[name] = Remote(
                    repo_path=existing.repo_path,
                    name=existing.name,
                    url=existing.url,
                    scheme=existing.scheme,
                    domain=existing.domain,
                    path=existing.path,
                    types=existing.types + (kind,),  # type: ignore[operator]
                    provider=existing.provider,
                )
            continue

        scheme, domain, path = parse_url(url)
        provider = provider_factory(domain, path) if provider_factory and domain else None
        remotes[name] = Remote(
            repo_path=repo_path,
            name=name,
            url=url,
            scheme=scheme,
            domain=domain,
            path=path,
            types=(kind,),  # type: ignore[arg-type]
            provider=provider,  # type: ignore[arg-type]
        )

    return list(remotes.values())
