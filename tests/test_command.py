"""Tests for command library."""

import os
from pathlib import Path

import pytest

from release_provider.command import Command, run
from release_provider.exceptions import CommandException, HelmException


async def test_command() -> None:
    """Test stdout parsing of a command."""
    result = await run(Command(["echo", "Hello"]))
    assert result == "Hello\n"


async def test_command_env() -> None:
    """Test extra environment variables are passed to the command."""
    result = await run(
        Command(["sh", "-c", "echo $HELM_DRIVER"], env={"HELM_DRIVER": "memory"})
    )
    assert result == "memory\n"


async def test_failed_command() -> None:
    """Test a failing command."""
    with pytest.raises(CommandException, match="return code 1"):
        await run(Command(["/bin/false"]))


async def test_failed_command_exception_type() -> None:
    """Test a failing command raises the configured exception."""
    with pytest.raises(HelmException, match="not found"):
        await run(
            Command(
                ["sh", "-c", "echo 'release: not found' >&2; exit 1"],
                exc=HelmException,
            )
        )


async def test_command_timeout() -> None:
    """Test a command that does not finish in time."""
    with pytest.raises(HelmException, match="timed out"):
        await run(Command(["sleep", "5"], exc=HelmException, timeout=0.1))


async def test_command_timeout_kills_process(tmp_path: Path) -> None:
    """Test a command that times out does not keep running."""
    pidfile = tmp_path / "pid"
    with pytest.raises(HelmException, match="timed out"):
        await run(
            Command(
                ["sh", "-c", f"echo $$ > {pidfile}; exec sleep 5"],
                exc=HelmException,
                timeout=0.5,
            )
        )
    pid = int(pidfile.read_text())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_redacted_arguments() -> None:
    """Test sensitive arguments are masked when rendered."""
    cmd = Command(["helm", "pull", "--password", "hunter2"], redact=["hunter2"])
    assert str(cmd) == "helm pull --password ***"
    assert "hunter2" in cmd.string
