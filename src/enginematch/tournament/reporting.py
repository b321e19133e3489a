"""Where match output goes: text sinks and the PGN writer."""

import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol, TextIO

from loguru import logger
from rich.console import Console

from enginematch.tournament.results import GameRecord


class ReportSink(Protocol):
    """Accepts one line of report text."""

    def write(self, line: str) -> None: ...


class ConsoleSink:
    """Prints timestamped lines to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self._lock = threading.Lock()

    def write(self, line: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        with self._lock:
            # Engine names and PGN results may contain brackets
            self.console.print(f"{stamp} {line}", markup=False, highlight=False)


class LoggerSink:
    """Sends report lines to the log."""

    def __init__(self, level: str = "INFO") -> None:
        self.level = level

    def write(self, line: str) -> None:
        logger.log(self.level, line)


class MemorySink:
    """Keeps every line in memory."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._lock = threading.Lock()

    def write(self, line: str) -> None:
        with self._lock:
            self.lines.append(line)


class PGNWriter:
    """Incremental PGN writer that flushes games as they complete."""

    def __init__(self, path: str | Path, event: str = "Engine Match") -> None:
        self.path = Path(path)
        self.event = event
        self.game_count = 0
        self._file: TextIO | None = None
        self._lock = threading.Lock()

    def open(self) -> None:
        """Open the PGN file for writing."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("w")
        logger.info(f"PGN output: {self.path}")

    def write_game(self, record: GameRecord) -> None:
        """Write a single game to the PGN file and flush."""
        with self._lock:
            if self._file is None:
                return
            self._file.write(record.to_pgn(event=self.event))
            self._file.write("\n")
            self._file.flush()
            self.game_count += 1

    def close(self) -> None:
        """Close the PGN file."""
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None
                logger.info(f"Saved {self.game_count} games to {self.path}")
