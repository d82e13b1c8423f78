"""Async process execution for git commands."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import sys
from pathlib import Path
from typing import Literal, Mapping, Optional, Union

from gitlayer.errors import RunError

logger = logging.getLogger(__name__)

Encoding = Literal["utf8", "buffer"]

IS_WINDOWS = sys.platform == "win32"


class ProcessRunner:
    """Spawns one process per call and collects its output.

    No retries happen here; callers decide what a failure means.
    """

    async def run(
        self,
        executable: str,
        args: list[str],
        encoding: Encoding = "utf8",
        *,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        stdin: Optional[Union[str, bytes]] = None,
    ) -> Union[str, bytes]:
        """Run ``executable`` with ``args``.

        Args:
            executable: Path (or bare name) of the program to run.
            args: Arguments, already fully built.
            encoding: ``"utf8"`` to decode stdout, ``"buffer"`` for raw bytes.
            cwd: Working directory for the process.
            env: Complete environment for the process.
            stdin: Payload written to the process's stdin before it is closed.

        Returns:
            The process's stdout.

        Raises:
            RunError: If the process can't be started or exits non-zero.
        """
        command = f"{executable} {' '.join(args)}"
        stdin_bytes = stdin.encode("utf-8") if isinstance(stdin, str) else stdin

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *args,
                cwd=cwd or None,
                env=dict(env) if env is not None else None,
                stdin=asyncio.subprocess.PIPE if stdin_bytes is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # ENOENT, ENOTDIR, EACCES, ...
            os_code = errno.errorcode.get(e.errno or 0, "ESPAWN")
            raise RunError(
                f"spawn {executable} {os_code}: {e.strerror or e}",
                command=command,
                os_code=os_code,
            ) from e

        # communicate() writes all of stdin before draining stdout to EOF
        stdout, stderr = await process.communicate(input=stdin_bytes)

        if process.returncode != 0:
            err = stderr.decode("utf-8", errors="replace")
            out = stdout.decode("utf-8", errors="replace")
            message = err.strip() or f"Command failed with exit code {process.returncode}: {command}"
            raise RunError(
                message,
                command=command,
                exit_code=process.returncode,
                stdout=out,
                stderr=err,
            )

        if encoding == "buffer":
            return stdout
        return stdout.decode("utf-8", errors="replace")


async def fs_exists(path: Union[str, Path]) -> bool:
    """Check whether ``path`` exists without blocking the event loop."""
    return await asyncio.to_thread(os.path.exists, path)


async def read_text(path: Union[str, Path]) -> Optional[str]:
    """Read a small text file off the event loop; None if it can't be read."""

    def _read() -> Optional[str]:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError:
            return None

    return await asyncio.to_thread(_read)
