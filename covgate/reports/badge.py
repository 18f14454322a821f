"""Coverage badge parsing.

Functions:
    parse_coverage(raw)         -> Decimal          extract "coverage: NN.N%"
    load_local_report(path)     -> CoverageReport   badge produced by this run

Badges are SVG documents rendered by grcov, e.g.::

    <svg ...><title>coverage: 82.3%</title> ... </svg>

The parser does not need well-formed markup: it scans for the first
case-insensitive ``coverage:`` literal and reads up to the next ``%``.
"""

import re
from decimal import Decimal
from pathlib import Path

TOKEN = "coverage:"
TERMINATOR = "%"

_MIN = Decimal(0)
_MAX = Decimal(100)

# Plain ASCII decimal only: no exponent, digit separators, NaN or Infinity.
_NUMBER = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")


class ParseError(Exception):
    """Raised when a badge does not contain a valid coverage percentage."""


def parse_coverage(raw: bytes | str) -> Decimal:
    """Return the coverage percentage embedded in a badge.

    Raises:
        ParseError: the ``coverage:`` token is missing, no ``%`` follows it,
                    the number is malformed, or it lies outside [0, 100].
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw

    start = _find_token(text, TOKEN)
    if start < 0:
        raise ParseError(f"No '{TOKEN}' token found in badge")
    start += len(TOKEN)

    end = text.find(TERMINATOR, start)
    if end < 0:
        raise ParseError(f"No '{TERMINATOR}' found after '{TOKEN}' token")

    segment = text[start:end].strip()
    if not segment:
        raise ParseError(f"Empty value after '{TOKEN}' token")

    if not _NUMBER.fullmatch(segment):
        raise ParseError(f"Malformed coverage value: {segment[:40]!r}")

    value = Decimal(segment)
    if value < _MIN or value > _MAX:
        raise ParseError(f"Coverage value {segment} is outside [0, 100]")
    return value


def load_local_report(path: str | Path):
    """Read the badge at *path* and return a LOCAL ``CoverageReport``."""
    from covgate.models import CoverageReport, Source

    badge = Path(path)
    try:
        raw = badge.read_bytes()
    except OSError as exc:
        raise ParseError(f"Unable to read badge '{badge}': {exc}") from exc
    return CoverageReport(raw_artifact=raw, source=Source.LOCAL)


def _find_token(text: str, token: str) -> int:
    """Index of the first case-insensitive occurrence of *token*, or -1."""
    # Compare slice by slice: str.lower() on the whole text can change its
    # length for some non-ASCII characters, which would shift the indexes.
    width = len(token)
    first = token[0]
    for i in range(len(text) - width + 1):
        if text[i].lower() == first and text[i:i + width].lower() == token:
            return i
    return -1
