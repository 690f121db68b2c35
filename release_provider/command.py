"""Library for issuing commands using asyncio and returning the result."""

import asyncio
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .context import current_trace
from .exceptions import CommandException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 20
_SEM = asyncio.Semaphore(_CONCURRENCY)
_TIMEOUT = 300.0


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    cwd: Path | None = None
    """Current working directory."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    timeout: float | None = None
    """Seconds to wait for the command, otherwise the module default."""

    redact: list[str] | None = None
    """Arguments that must not appear in logs or error messages."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string with sensitive arguments masked."""
        args = [
            "***" if self.redact and arg in self.redact else shlex.quote(arg)
            for arg in self.cmd
        ]
        cwd = f"({self.cwd}) " if self.cwd else ""
        return f"{cwd}{' '.join(args)}"

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s [%s]", self, current_trace())
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=self.cwd,
            env=env,
        )
        try:
            out, err = await proc.communicate(stdin)
        except asyncio.CancelledError:
            if proc.returncode is None:
                _LOGGER.debug("Killing command: %s", self)
                proc.kill()
                await proc.wait()
            raise
        if proc.returncode:
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out


async def run(cmd: Command) -> str:
    """Run the specified command and return stdout.

    The number of concurrent subprocesses is bounded. A command that does not
    finish within its timeout is killed and raises the command exception.
    Whatever the subprocess already did is left in place.
    """
    async with _SEM:
        try:
            out = await asyncio.wait_for(cmd.run(), cmd.timeout or _TIMEOUT)
        except asyncio.TimeoutError as err:
            raise cmd.exc(f"Command '{cmd}' timed out") from err
    return out.decode("utf-8") if out else ""
