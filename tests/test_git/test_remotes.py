"""Tests for remote hosting providers."""

from unittest.mock import AsyncMock

from gitlayer.config.settings import RemoteConfig
from gitlayer.git.remotes import (
    BitbucketRemote,
    GiteaRemote,
    GitHubRemote,
    GitLabRemote,
    PullRequest,
    RemoteProvider,
    RemoteProviderFactory,
    RichRemoteProvider,
)


class TestRemoteProviderFactory:
    """Tests for provider resolution."""

    def test_builtin_hosts(self):
        """Test the well-known hosts."""
        factory = RemoteProviderFactory()
        assert isinstance(factory("github.com", "acme/app"), GitHubRemote)
        assert isinstance(factory("GitLab.com", "acme/app"), GitLabRemote)
        assert isinstance(factory("bitbucket.org", "acme/app"), BitbucketRemote)

    def test_enterprise_hosts(self):
        """Test that hosts naming a provider are recognized."""
        factory = RemoteProviderFactory()
        assert isinstance(factory("github.acme.corp", "team/app"), GitHubRemote)
        assert isinstance(factory("gitlab.internal", "team/app"), GitLabRemote)

    def test_unknown_host(self):
        """Test that an unknown host has no provider."""
        assert RemoteProviderFactory()("git.example.com", "team/app") is None

    def test_custom_domain_first(self):
        """Test that configured domains win over built-in matching."""
        factory = RemoteProviderFactory([RemoteConfig(domain="github.acme.corp", type="Gitea")])
        provider = factory("github.acme.corp", "team/app")
        assert isinstance(provider, GiteaRemote)
        assert provider.custom is True

    def test_custom_regex(self):
        """Test matching a custom remote by regex."""
        factory = RemoteProviderFactory([RemoteConfig(regex=r"^code\.acme\.io/team/", type="GitLab")])
        assert isinstance(factory("code.acme.io", "team/app"), GitLabRemote)
        assert factory("code.acme.io", "other/app") is None

    def test_api_attached(self):
        """Test that registered APIs are handed to rich providers."""
        api = AsyncMock()
        provider = RemoteProviderFactory(apis={"github": api})("github.com", "acme/app")
        assert provider.api is api


class TestRemoteProvider:
    """Tests for provider urls."""

    def test_urls(self):
        """Test commit and branch urls per provider."""
        assert GitHubRemote("github.com", "acme/app").commit_url("abc") == "https://github.com/acme/app/commit/abc"
        assert GitLabRemote("gitlab.com", "acme/app").branch_url("main") == "https://gitlab.com/acme/app/-/tree/main"
        assert BitbucketRemote("bitbucket.org", "a/b").commit_url("abc") == "https://bitbucket.org/a/b/commits/abc"
        assert GiteaRemote("gitea.io", "a/b").branch_url("dev") == "https://gitea.io/a/b/src/branch/dev"

    def test_has_api(self):
        """Test which providers are rich."""
        assert GitHubRemote("github.com", "a/b").has_api()
        assert not RemoteProvider("example.com", "a/b").has_api()
        assert not isinstance(BitbucketRemote("bitbucket.org", "a/b"), RichRemoteProvider)


class TestRichRemoteProvider:
    """Tests for pull request queries."""

    async def test_without_api(self):
        """Test that a provider without a client is disconnected."""
        provider = GitHubRemote("github.com", "acme/app")
        assert await provider.is_connected() is False
        assert provider.maybe_connected is False
        assert await provider.get_pull_request_for_branch("main") is None
        assert await provider.get_pull_request_for_commit("abc") is None

    async def test_with_api(self):
        """Test that queries go to the client with the repository path."""
        pr = PullRequest(provider="github", id="7", title="Fix", url="https://github.com/acme/app/pull/7", state="open")
        api = AsyncMock()
        api.is_connected.return_value = True
        api.get_pull_request_for_branch.return_value = pr
        provider = GitHubRemote("github.com", "acme/app", api=api)

        assert await provider.is_connected() is True
        assert provider.maybe_connected is True
        assert await provider.get_pull_request_for_branch("topic", include=["open"]) is pr
        api.get_pull_request_for_branch.assert_awaited_once_with("acme/app", "topic", ["open"], None)
