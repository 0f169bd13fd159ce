import csv
import io
import re
from typing import IO, Iterable, List, Union

from .errors import InputError, InvalidIdentifier

ASIN_RE = re.compile(r"^[A-Z0-9]{10}$")
_SPLIT_RE = re.compile(r"[\s,;]+")
_HEADER_NAMES = {"asin", "asins", "identifier", "id"}


def split_tokens(text: str) -> List[str]:
    """Split free-form input (commas, semicolons, whitespace, newlines) into raw tokens."""
    return [t for t in _SPLIT_RE.split(text or "") if t]


def normalize_identifiers(raw: Union[str, Iterable[str]], case_insensitive: bool = False) -> List[str]:
    """
    Trim, drop empties and de-duplicate, keeping first-seen order and spelling.

    Matching is case-sensitive unless case_insensitive is set, in which case
    "B001" and "b001" collapse to whichever came first. No format check
    happens here; the fetch client rejects malformed codes.
    """
    tokens = split_tokens(raw) if isinstance(raw, str) else raw
    seen = set()
    out: List[str] = []
    for tok in tokens:
        tok = (tok or "").strip()
        if not tok:
            continue
        key = tok.casefold() if case_insensitive else tok
        if key in seen:
            continue
        seen.add(key)
        out.append(tok)
    return out


def read_identifiers(stream: IO, case_insensitive: bool = False) -> List[str]:
    """Read a line-delimited list or single-column CSV (text or bytes stream)."""
    try:
        data = stream.read()
        if isinstance(data, bytes):
            data = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise InputError("Identifier file is not valid UTF-8", original_error=exc) from exc
    data = data.lstrip("\ufeff")

    tokens: List[str] = []
    for row in csv.reader(io.StringIO(data)):
        for cell in row:
            tokens.extend(split_tokens(cell))
    if tokens and tokens[0].strip().lower() in _HEADER_NAMES:
        tokens = tokens[1:]
    return normalize_identifiers(tokens, case_insensitive=case_insensitive)


def canonical_asin(identifier: str) -> str:
    """Trimmed, upper-cased ASIN; raises InvalidIdentifier on a bad format."""
    asin = (identifier or "").strip().upper()
    if not ASIN_RE.match(asin):
        raise InvalidIdentifier(identifier)
    return asin


def is_valid_asin(identifier: str) -> bool:
    return bool(ASIN_RE.match((identifier or "").strip().upper()))
