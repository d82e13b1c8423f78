"""Configuration settings models using Pydantic."""

from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitConfig(BaseModel):
    """Where to find the git executable."""

    # One path or a list of candidates, tried in order before PATH
    path: Optional[Union[str, list[str]]] = None

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: Optional[Union[str, list[str]]]) -> Optional[Union[str, list[str]]]:
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, list):
            v = [p.strip() for p in v if p and p.strip()]
            return v or None
        return v


class CachingConfig(BaseModel):
    """Configuration for result caching."""

    enabled: bool = True


class BlameAdvancedConfig(BaseModel):
    """Extra arguments appended to every blame invocation."""

    custom_arguments: Optional[list[str]] = None


class AdvancedConfig(BaseModel):
    """Tunables for the git layer."""

    caching: CachingConfig = Field(default_factory=CachingConfig)
    blame: BlameAdvancedConfig = Field(default_factory=BlameAdvancedConfig)
    commit_ordering: Optional[Literal["date", "author-date", "topo"]] = None
    file_history_follows_renames: bool = True
    file_history_show_all_branches: bool = False
    max_list_items: int = Field(default=200, ge=0)
    max_search_items: int = Field(default=200, ge=0)
    repository_search_depth: int = Field(default=1, ge=0)
    similarity_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    abbreviated_sha_length: int = Field(default=7, ge=4, le=40)
    # Glob patterns skipped while searching a folder for nested repositories
    search_exclude: list[str] = Field(default_factory=lambda: ["**/node_modules", "**/.venv"])


class BlameConfig(BaseModel):
    """Configuration for blame behavior."""

    ignore_whitespace: bool = False


class RemoteConfig(BaseModel):
    """Maps a custom hosting domain to a known provider type."""

    domain: Optional[str] = None
    regex: Optional[str] = None
    type: Literal["Bitbucket", "BitbucketServer", "Custom", "Gerrit", "GitHub", "GitLab", "Gitea"] = "Custom"
    name: Optional[str] = None


class SessionConfig(BaseModel):
    """Collaborative session support."""

    # When enabled, paths that miss in the registry are retried under the guest namespace
    guest: bool = False
    guest_prefix: str = "/~0"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="GITLAYER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    git: GitConfig = Field(default_factory=GitConfig)
    advanced: AdvancedConfig = Field(default_factory=AdvancedConfig)
    blame: BlameConfig = Field(default_factory=BlameConfig)
    remotes: list[RemoteConfig] = Field(default_factory=list)
    session: SessionConfig = Field(default_factory=SessionConfig)
    log_file: Optional[str] = None

    @property
    def caching_enabled(self) -> bool:
        return self.advanced.caching.enabled

    @property
    def resolved_log_file(self) -> Optional[Path]:
        """Get the resolved log file path with ~ expanded."""
        if not self.log_file:
            return None
        return Path(self.log_file).expanduser()
