"""Immutable description of a single git command invocation."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from gitlayer.git.shell import Encoding


class ErrorHandling(str, Enum):
    """What the executor does when the process fails."""

    DEFAULT = "default"  # benign diagnostics become "", others propagate
    IGNORE = "ignore"  # every failure becomes ""
    THROW = "throw"  # every failure propagates


@dataclass(frozen=True)
class CommandInvocation:
    """Everything needed to run one git command.

    ``args`` excludes the ``-c`` prefix configs; those are added by the
    executor at run time so the dedup signature stays readable.
    """

    args: tuple[str, ...]
    cwd: Optional[str] = None
    stdin: Optional[Union[str, bytes]] = None
    encoding: Encoding = "utf8"
    errors: ErrorHandling = ErrorHandling.DEFAULT
    correlation_key: Optional[str] = None
    configs: tuple[str, ...] = ()
    env: tuple[tuple[str, str], ...] = ()
    # Run locally even when the guest namespace would otherwise apply
    local: bool = False
    # Marks invocations whose failure should be tried against the root tree sha
    root_fallback_ref: Optional[str] = field(default=None, compare=False)

    @property
    def command(self) -> str:
        return f"[{self.cwd or ''}] git {' '.join(self.args)}"

    @property
    def signature(self) -> str:
        """Dedup identity: correlation key, cwd and joined args.

        ``stdin``, ``env``, ``configs`` and ``encoding`` are not part of it:
        concurrent calls differing only in those share one process and its
        result. Callers that must not share pass a ``correlation_key``.
        """
        prefix = f"{self.correlation_key}:" if self.correlation_key is not None else ""
        return f"{prefix}{self.command}"

    def with_args(self, *args: str) -> "CommandInvocation":
        return replace(self, args=tuple(args))

    def with_errors(self, errors: ErrorHandling) -> "CommandInvocation":
        return replace(self, errors=errors)


def invocation(
    *args: Optional[str],
    cwd: Optional[str] = None,
    stdin: Optional[Union[str, bytes]] = None,
    encoding: Encoding = "utf8",
    errors: ErrorHandling = ErrorHandling.DEFAULT,
    correlation_key: Optional[str] = None,
    configs: tuple[str, ...] = (),
    env: Optional[dict[str, str]] = None,
    local: bool = False,
    root_fallback_ref: Optional[str] = None,
) -> CommandInvocation:
    """Build a :class:`CommandInvocation`, dropping ``None`` args."""
    return CommandInvocation(
        args=tuple(a for a in args if a is not None),
        cwd=cwd,
        stdin=stdin,
        encoding=encoding,
        errors=errors,
        correlation_key=correlation_key,
        configs=configs,
        env=tuple(sorted((env or {}).items())),
        local=local,
        root_fallback_ref=root_fallback_ref,
    )
