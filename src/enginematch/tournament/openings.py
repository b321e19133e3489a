"""Start positions and opening books for engine matches.

Start positions come from EPD, PGN or plain FEN files. Opening books are
Polyglot ``.bin`` files read through python-chess and cached per path for
the lifetime of a match.

Common opening sources:
- https://github.com/official-stockfish/books (Stockfish opening books)
- https://github.com/AndyGrant/openbench-books (OpenBench books)
"""

import random
import threading
from pathlib import Path

import chess
import chess.pgn
import chess.polyglot
from loguru import logger

from enginematch.errors import ConfigurationError


def load_openings(
    path: str | Path,
    *,
    shuffle: bool = False,
    seed: int | None = None,
    max_openings: int | None = None,
) -> list[str]:
    """Load start positions from an EPD, PGN or FEN file.

    Args:
        path: Path to the file (.epd, .pgn or .fen).
        shuffle: Whether to randomize the order.
        seed: Random seed for shuffling. None for random.
        max_openings: Maximum number of positions to keep. None for all.

    Returns:
        List of FEN strings.

    Raises:
        ConfigurationError: If the file is missing or its format unsupported.
    """
    path = Path(path)

    if not path.exists():
        raise ConfigurationError(f"Openings file not found: {path}")

    loaders = {".epd": _load_epd, ".pgn": _load_pgn, ".fen": _load_fen}
    loader = loaders.get(path.suffix.lower())
    if loader is None:
        raise ConfigurationError(
            f"Unsupported openings format: {path.suffix}. Supported formats: .epd, .pgn, .fen"
        )

    openings = loader(path)
    if not openings:
        raise ConfigurationError(f"No usable positions in {path}")
    logger.info(f"Loaded {len(openings)} openings from {path}")

    if shuffle:
        random.Random(seed).shuffle(openings)
        logger.debug(f"Shuffled openings (seed={seed})")

    if max_openings is not None and len(openings) > max_openings:
        openings = openings[:max_openings]

    return openings


def _load_epd(path: Path) -> list[str]:
    """One EPD record per line; opcodes such as hmvc/fmvn are honoured."""
    openings = []
    with path.open() as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                board, _ = chess.Board.from_epd(line)
            except ValueError as e:
                logger.warning(f"Line {line_num}: Failed to parse EPD: {e}")
                continue
            openings.append(board.fen())
    return openings


def _load_pgn(path: Path, moves_to_play: int = 8) -> list[str]:
    """Position after the first ``moves_to_play`` plies of every game, deduplicated."""
    openings = []
    seen_fens = set()

    with path.open() as f:
        while True:
            game = chess.pgn.read_game(f)
            if game is None:
                break
            if game.errors:
                logger.warning(f"Skipping PGN game with errors: {game.errors[0]}")
                continue

            board = game.board()
            for i, move in enumerate(game.mainline_moves()):
                if i >= moves_to_play:
                    break
                board.push(move)

            fen = board.fen()
            if fen not in seen_fens:
                seen_fens.add(fen)
                openings.append(fen)

    return openings


def _load_fen(path: Path) -> list[str]:
    """One FEN per line."""
    openings = []
    with path.open() as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            try:
                openings.append(chess.Board(line).fen())
            except ValueError as e:
                logger.warning(f"Line {line_num}: Invalid FEN: {e}")
    return openings


class PolyglotBook:
    """A Polyglot opening book.

    Lookups are keyed by the position's Zobrist hash and always return the
    highest-weighted entry, so a given position always gets the same move.
    """

    def __init__(self, path: str | Path) -> None:
        """Open the book.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If the file is empty.
        """
        self.path = Path(path)
        self._reader = chess.polyglot.open_reader(self.path)
        self._lock = threading.Lock()

    def lookup(self, board: chess.Board) -> chess.Move | None:
        """Return the book move for ``board``, or None if out of book."""
        with self._lock:
            if self._reader is None:
                return None
            entry = self._reader.get(board)
        return entry.move if entry is not None else None

    def close(self) -> None:
        with self._lock:
            if self._reader is not None:
                self._reader.close()
                self._reader = None


class BookCache:
    """Opening books keyed by file path, opened once per match.

    A book that fails to load is reported once and remembered as missing;
    it is not retried.
    """

    def __init__(self) -> None:
        self._books: dict[str, PolyglotBook | None] = {}
        self._lock = threading.Lock()

    def get(self, path: str | Path | None) -> PolyglotBook | None:
        """Return the cached book for ``path``, loading it on first use."""
        if not path:
            return None
        key = str(path)
        with self._lock:
            if key in self._books:
                return self._books[key]
            try:
                book = PolyglotBook(key)
            except (OSError, ValueError):
                logger.warning(f"Can't read opening book file {key}")
                book = None
            self._books[key] = book
            return book

    def close(self) -> None:
        """Close every open book."""
        with self._lock:
            for book in self._books.values():
                if book is not None:
                    book.close()
            self._books.clear()
