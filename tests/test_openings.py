"""Tests for start positions and opening books."""

import struct
from pathlib import Path

import chess
import chess.polyglot
import pytest

from enginematch.errors import ConfigurationError
from enginematch.tournament.openings import BookCache, PolyglotBook, load_openings

SICILIAN = "rnbqkbnr/pp1ppppp/8/2p5/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"
FRENCH = "rnbqkbnr/pppp1ppp/4p3/8/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"


def write_book(path: Path, board: chess.Board, entries: list[tuple[str, int]]) -> None:
    """Write a Polyglot book with the given (move, weight) entries for one position."""
    key = chess.polyglot.zobrist_hash(board)
    data = b""
    for uci, weight in entries:
        move = chess.Move.from_uci(uci)
        raw = (
            chess.square_file(move.to_square)
            | chess.square_rank(move.to_square) << 3
            | chess.square_file(move.from_square) << 6
            | chess.square_rank(move.from_square) << 9
        )
        data += struct.pack(">QHHI", key, raw, weight, 0)
    path.write_bytes(data)


class TestLoadOpenings:
    """Tests for load_openings."""

    def test_epd(self, tmp_path: Path) -> None:
        path = tmp_path / "book.epd"
        path.write_text(
            "# comment\n"
            "rnbqkbnr/pp1ppppp/8/2p5/4P3/8/PPPP1PPP/RNBQKBNR w KQkq c6 id \"sicilian\";\n"
            "not an epd\n"
            "rnbqkbnr/pppp1ppp/4p3/8/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - hmvc 0; fmvn 2;\n"
        )
        openings = load_openings(path)
        assert len(openings) == 2
        assert openings[1] == FRENCH

    def test_fen(self, tmp_path: Path) -> None:
        path = tmp_path / "book.fen"
        path.write_text(f"{SICILIAN}\n\n{FRENCH}\n")
        assert load_openings(path) == [SICILIAN, FRENCH]

    def test_pgn_deduplicates(self, tmp_path: Path) -> None:
        path = tmp_path / "book.pgn"
        game = '[Event "?"]\n\n1. e4 c5 2. Nf3 d6 3. d4 cxd4 4. Nxd4 Nf6 5. Nc3 a6 *\n\n'
        path.write_text(game * 2)
        openings = load_openings(path)
        assert len(openings) == 1
        assert chess.Board(openings[0]).fullmove_number == 5

    def test_shuffle_is_reproducible(self, tmp_path: Path) -> None:
        path = tmp_path / "book.fen"
        boards = [chess.Board() for _ in range(10)]
        fens = []
        for i, board in enumerate(boards):
            board.push(list(board.legal_moves)[i])
            fens.append(board.fen())
        path.write_text("\n".join(fens))

        first = load_openings(path, shuffle=True, seed=7)
        second = load_openings(path, shuffle=True, seed=7)
        assert first == second
        assert sorted(first) == sorted(fens)
        assert len(load_openings(path, max_openings=3)) == 3

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            load_openings(tmp_path / "nope.epd")

    def test_unsupported_format(self, tmp_path: Path) -> None:
        path = tmp_path / "book.txt"
        path.write_text(SICILIAN)
        with pytest.raises(ConfigurationError, match="Unsupported"):
            load_openings(path)

    def test_no_usable_positions(self, tmp_path: Path) -> None:
        path = tmp_path / "book.fen"
        path.write_text("garbage\n")
        with pytest.raises(ConfigurationError):
            load_openings(path)


class TestPolyglotBook:
    """Tests for Polyglot books and the per-match cache."""

    def test_lookup_returns_heaviest_move(self, tmp_path: Path) -> None:
        path = tmp_path / "book.bin"
        write_book(path, chess.Board(), [("d2d4", 10), ("e2e4", 50)])

        book = PolyglotBook(path)
        assert book.lookup(chess.Board()) == chess.Move.from_uci("e2e4")
        assert book.lookup(chess.Board(FRENCH)) is None
        book.close()
        assert book.lookup(chess.Board()) is None

    def test_cache_opens_each_file_once(self, tmp_path: Path) -> None:
        path = tmp_path / "book.bin"
        write_book(path, chess.Board(), [("e2e4", 1)])

        cache = BookCache()
        first = cache.get(path)
        assert first is not None
        assert cache.get(str(path)) is first
        cache.close()

    def test_failed_load_is_not_retried(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "missing.bin"
        attempts = []

        import enginematch.tournament.openings as openings

        original = openings.PolyglotBook

        def counting(p):
            attempts.append(p)
            return original(p)

        monkeypatch.setattr(openings, "PolyglotBook", counting)
        cache = BookCache()
        assert cache.get(path) is None
        assert cache.get(path) is None
        assert len(attempts) == 1

    def test_no_path(self) -> None:
        assert BookCache().get(None) is None
