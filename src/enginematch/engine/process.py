"""Engine processes and the line-oriented byte stream they expose.

Engine binaries are started through pexpect, which handles PTY allocation
and buffering correctly for interactive programs. The rest of the package
only sees the small ``LineHandle`` protocol, so tests can substitute an
in-process engine.
"""

from dataclasses import dataclass
from typing import Protocol

import pexpect
from loguru import logger

from enginematch.configs.schema import EngineConfig
from enginematch.engine.protocol import Dialect
from enginematch.errors import EngineResourceError


class LineHandle(Protocol):
    """Newline-framed, bidirectional byte stream to one engine."""

    def write_line(self, line: str) -> None:
        """Write one line (the handle appends the newline).

        Raises:
            EngineResourceError: If the stream is closed or broken.
        """
        ...

    def read_line(self, timeout: float) -> str | None:
        """Read one line, waiting at most ``timeout`` seconds.

        Returns:
            The line without its terminator, or None if nothing arrived in time.

        Raises:
            EngineResourceError: If the engine closed its output.
        """
        ...

    def close(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for the engine to exit, then kill it.

        Returns:
            True if the engine exited on its own.
        """
        ...


@dataclass
class EngineProcess:
    """A running engine: its stream and the dialect it declared."""

    handle: LineHandle
    dialect: Dialect


class EngineFactory(Protocol):
    """Creates engine processes from configuration."""

    def create(self, config: EngineConfig) -> EngineProcess:
        """Start an engine.

        Raises:
            EngineResourceError: If the engine cannot be started.
        """
        ...


class PexpectHandle:
    """``LineHandle`` backed by a pexpect child process."""

    def __init__(self, child: pexpect.spawn) -> None:
        self._child = child

    def write_line(self, line: str) -> None:
        try:
            self._child.sendline(line)
        except OSError as e:
            raise EngineResourceError(f"Failed to write to engine: {e}") from e

    def read_line(self, timeout: float) -> str | None:
        try:
            index = self._child.expect(
                [r"\r?\n", pexpect.EOF, pexpect.TIMEOUT], timeout=max(timeout, 0.0)
            )
        except OSError as e:
            raise EngineResourceError(f"Failed to read from engine: {e}") from e

        if index == 0:
            return (self._child.before or "").rstrip("\r")
        if index == 1:
            raise EngineResourceError("engine terminated unexpectedly")
        return None

    def close(self, timeout: float) -> bool:
        exited = True
        try:
            self._child.expect(pexpect.EOF, timeout=timeout)
        except pexpect.TIMEOUT:
            exited = False
        except OSError:
            pass
        finally:
            self._child.close(force=True)
        return exited


class ProcessEngineFactory:
    """Starts engine binaries as child processes."""

    def create(self, config: EngineConfig) -> EngineProcess:
        logger.debug(f"Starting engine {config.name}: {config.command} {' '.join(config.args)}")
        try:
            child = pexpect.spawn(
                config.command,
                args=[str(arg) for arg in config.args],
                cwd=config.cwd,
                encoding="utf-8",
                codec_errors="replace",
                echo=False,
            )
        except pexpect.ExceptionPexpect as e:
            raise EngineResourceError(f"Cannot start engine {config.name!r}: {e}") from e

        return EngineProcess(PexpectHandle(child), Dialect(config.protocol))
