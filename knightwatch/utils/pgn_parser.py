# ==============================================================================
# pgn_parser.py  –  Splitting and header parsing for broadcast PGN
#
# A Lichess broadcast round arrives as one text blob holding many games,
# separated by two blank lines. This module splits such a blob into per-game
# records, parses their header tags and names each game by its players.
# ==============================================================================

from __future__ import annotations

import re
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

GAME_BOUNDARY = "\n\n\n"

_HEADER_RE = re.compile(r'^\[(\w+)\s+"(.*)"\]\s*$')
_WHITE_RE = re.compile(r'\[White "(.+?)"\]')
_BLACK_RE = re.compile(r'\[Black "(.+?)"\]')

Identity = Tuple[str, str]


def iter_pgn_games(text: str) -> Iterator[str]:
    """
    Yield the individual game records contained in `text`.

    Records are whitespace-stripped and blank records are skipped. The
    generator holds no state beyond the text it was given.
    """
    if not text:
        return
    for chunk in text.split(GAME_BOUNDARY):
        record = chunk.strip()
        if record:
            yield record


def split_pgn_games(text: str) -> List[str]:
    """List form of `iter_pgn_games`."""
    return list(iter_pgn_games(text))


def parse_pgn_text(pgn: Union[str, Iterable[bytes], Iterable[str]]) -> Dict[str, str]:
    """
    Parse PGN text (or raw stream lines) into headers + move string.

    Parameters
    ----------
    pgn : str | Iterable[bytes] | Iterable[str]
        Whole game text, or the lines of one game as read from a stream.

    Returns
    -------
    Dict[str, str]
        PGN headers with lowercased keys, plus a `"moves"` key holding the
        move text joined on single spaces.
    """
    lines = pgn.splitlines() if isinstance(pgn, str) else pgn

    game_data: Dict[str, str] = {}
    moves: List[str] = []

    for line in lines:
        decoded = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line
        decoded = decoded.strip()
        if not decoded:
            continue

        match = _HEADER_RE.match(decoded)
        if match:
            # [Result "1-0"] → key='result', value='1-0'
            game_data[match.group(1).lower()] = match.group(2)
        else:
            moves.append(decoded)

    game_data["moves"] = " ".join(moves)
    return game_data


def extract_identity(game_text: str) -> Optional[Identity]:
    """
    Return `(white, black)` from a record's header tags.

    Records missing either tag (or carrying an empty name) yield None and
    are simply left out by callers.
    """
    white = _WHITE_RE.search(game_text)
    black = _BLACK_RE.search(game_text)
    if not white or not black:
        return None
    return white.group(1), black.group(1)


def identity_key(white: str, black: str) -> str:
    """Key used for a game everywhere a single string is needed."""
    return f"{white} - {black}"


def split_identity_key(key: str) -> Optional[Identity]:
    """Inverse of `identity_key`; None when the separator is missing."""
    white, sep, black = key.partition(" - ")
    if not sep or not white or not black:
        return None
    return white, black
