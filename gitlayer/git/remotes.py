"""Remote hosting providers.

A :class:`RemoteProvider` knows how to build web urls for a remote. A
:class:`RichRemoteProvider` can also answer pull request queries through a
:class:`PullRequestApi`; the HTTP clients implementing that protocol live
outside this package and are registered with the factory per provider id.
"""

from __future__ import annotations

import logging
import re
from abc import ABC
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional, Protocol, Sequence

from gitlayer.config.settings import RemoteConfig

logger = logging.getLogger(__name__)

PullRequestState = Literal["open", "closed", "merged"]


@dataclass(frozen=True)
class PullRequest:
    provider: str
    id: str
    title: str
    url: str
    state: PullRequestState
    date: Optional[datetime] = None


class PullRequestApi(Protocol):
    """What a hosting service client must provide."""

    async def is_connected(self) -> bool: ...

    async def get_pull_request_for_branch(
        self,
        path: str,
        branch: str,
        include: Optional[Sequence[PullRequestState]] = None,
        limit: Optional[int] = None,
    ) -> Optional[PullRequest]: ...

    async def get_pull_request_for_commit(self, path: str, ref: str) -> Optional[PullRequest]: ...


class RemoteProvider:
    """A hosting service a remote points at."""

    id = "custom"
    name = "Custom"

    def __init__(self, domain: str, path: str, protocol: str = "https", custom: bool = False):
        self.domain = domain
        self.path = path
        self.protocol = protocol
        self.custom = custom

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.domain}/{self.path})"

    @property
    def base_url(self) -> str:
        return f"{self.protocol}://{self.domain}/{self.path}"

    def has_api(self) -> bool:
        return False

    def commit_url(self, sha: str) -> str:
        return f"{self.base_url}/commit/{sha}"

    def branch_url(self, branch: str) -> str:
        return f"{self.base_url}/tree/{branch}"


class RichRemoteProvider(RemoteProvider, ABC):
    """A provider whose service can be queried for pull requests."""

    def __init__(
        self,
        domain: str,
        path: str,
        protocol: str = "https",
        custom: bool = False,
        api: Optional[PullRequestApi] = None,
    ):
        super().__init__(domain, path, protocol, custom)
        self.api = api
        # Last known connection state; None until checked
        self.maybe_connected: Optional[bool] = None

    def has_api(self) -> bool:
        return True

    async def is_connected(self) -> bool:
        if self.api is None:
            self.maybe_connected = False
            return False
        self.maybe_connected = await self.api.is_connected()
        return self.maybe_connected

    async def get_pull_request_for_branch(
        self,
        branch: str,
        include: Optional[Sequence[PullRequestState]] = None,
        limit: Optional[int] = None,
    ) -> Optional[PullRequest]:
        if self.api is None:
            return None
        return await self.api.get_pull_request_for_branch(self.path, branch, include, limit)

    async def get_pull_request_for_commit(self, ref: str) -> Optional[PullRequest]:
        if self.api is None:
            return None
        return await self.api.get_pull_request_for_commit(self.path, ref)


class GitHubRemote(RichRemoteProvider):
    id = "github"
    name = "GitHub"


class GitLabRemote(RichRemoteProvider):
    id = "gitlab"
    name = "GitLab"

    def commit_url(self, sha: str) -> str:
        return f"{self.base_url}/-/commit/{sha}"

    def branch_url(self, branch: str) -> str:
        return f"{self.base_url}/-/tree/{branch}"


class BitbucketRemote(RemoteProvider):
    id = "bitbucket"
    name = "Bitbucket"

    def commit_url(self, sha: str) -> str:
        return f"{self.base_url}/commits/{sha}"

    def branch_url(self, branch: str) -> str:
        return f"{self.base_url}/branch/{branch}"


class GiteaRemote(RemoteProvider):
    id = "gitea"
    name = "Gitea"

    def branch_url(self, branch: str) -> str:
        return f"{self.base_url}/src/branch/{branch}"


_BUILTIN: list[tuple[re.Pattern[str], type[RemoteProvider]]] = [
    (re.compile(r"^github\.com$", re.IGNORECASE), GitHubRemote),
    (re.compile(r"^gitlab\.com$", re.IGNORECASE), GitLabRemote),
    (re.compile(r"^bitbucket\.org$", re.IGNORECASE), BitbucketRemote),
    (re.compile(r"\bgithub\b", re.IGNORECASE), GitHubRemote),
    (re.compile(r"\bgitlab\b", re.IGNORECASE), GitLabRemote),
]

_CUSTOM_TYPES: dict[str, type[RemoteProvider]] = {
    "GitHub": GitHubRemote,
    "GitLab": GitLabRemote,
    "Bitbucket": BitbucketRemote,
    "BitbucketServer": BitbucketRemote,
    "Gitea": GiteaRemote,
    "Gerrit": RemoteProvider,
    "Custom": RemoteProvider,
}


class RemoteProviderFactory:
    """Resolves ``(domain, path)`` to a provider.

    Configured custom domains are checked before the built-in hosts.
    """

    def __init__(
        self,
        custom: Sequence[RemoteConfig] = (),
        apis: Optional[dict[str, PullRequestApi]] = None,
    ):
        self.custom = list(custom)
        self.apis = dict(apis or {})

    def _create(self, cls: type[RemoteProvider], domain: str, path: str, custom: bool) -> RemoteProvider:
        if issubclass(cls, RichRemoteProvider):
            return cls(domain, path, custom=custom, api=self.apis.get(cls.id))
        return cls(domain, path, custom=custom)

    def __call__(self, domain: str, path: str) -> Optional[RemoteProvider]:
        for config in self.custom:
            if config.domain and config.domain.lower() == domain.lower():
                return self._create(_CUSTOM_TYPES[config.type], domain, path, custom=True)
            if config.regex and re.search(config.regex, f"{domain}/{path}", re.IGNORECASE):
                return self._create(_CUSTOM_TYPES[config.type], domain, path, custom=True)

        for pattern, cls in _BUILTIN:
            if pattern.search(domain):
                return self._create(cls, domain, path, custom=False)

        logger.debug(f"No remote provider for {domain}")
        return None
