"""
BERT text normalization and word splitting.

Implements the ``BertNormalizer`` + ``BertPreTokenizer`` recipe:

1. drop control characters, collapse whitespace runs into one separator
2. optionally lower-case and strip combining marks
3. put separators around CJK ideographs
4. split on separators, emitting every punctuation character as its own word

Every produced character keeps the index of the input character it came from,
so a word can always be traced back to its span in the original text.
Normalization never looks at neighbouring characters, hence restarting at any
word start reproduces the words a full pass would have produced from there.
"""

import unicodedata
from collections.abc import Iterable, Iterator
from typing import Final, NamedTuple

import regex as re

SEPARATOR: Final[str] = " "

# whitespace as defined by BERT: space, tab, newline, carriage return, Z*
_CHUNK: Final = re.compile(r"[^ \t\n\r\p{Z}]+")
# printable ASCII needs no cleaning, accent stripping or CJK handling
_PLAIN_ASCII: Final = re.compile(r"[\x21-\x7e]+")
_DROPPED: Final = re.compile(r"[\x00\ufffd\p{C}]")
_COMBINING_MARK: Final = re.compile(r"\p{Mn}")
# ASCII symbols count as punctuation even where Unicode says otherwise ("$", "^", "`")
_PUNCTUATION: Final = re.compile(r"[\x21-\x2f\x3a-\x40\x5b-\x60\x7b-\x7e\p{P}]")
_CJK: Final = re.compile(
    r"[\u4e00-\u9fff\u3400-\u4dbf\uf900-\ufaff"
    r"\U00020000-\U0002a6df\U0002a700-\U0002b73f\U0002b740-\U0002b81f"
    r"\U0002b920-\U0002ceaf\U0002f800-\U0002fa1f]"
)


class Word(NamedTuple):
    """A normalized word and its ``[start, end)`` span in the original text."""

    text: str
    start: int
    end: int


def _normalize_char(char: str, lowercase: bool) -> str:
    """Return the normalized form of one non-whitespace character (may be empty)."""
    if _DROPPED.match(char):
        return ""
    if _CJK.match(char):
        return f"{SEPARATOR}{char}{SEPARATOR}"
    if lowercase:
        decomposed = unicodedata.normalize("NFD", char.lower())
        return _COMBINING_MARK.sub("", decomposed)
    return char


def _clean(text: str, lowercase: bool, start: int) -> Iterator[tuple[str, int]]:
    """Yield normalized characters with offsets; whitespace runs become one separator."""
    for chunk_match in _CHUNK.finditer(text, start):
        chunk_start = chunk_match.start()
        if chunk_start > start:
            # whitespace between previous chunk and this one
            yield SEPARATOR, chunk_start - 1
        chunk = chunk_match.group()

        if _PLAIN_ASCII.fullmatch(chunk):
            if lowercase:
                chunk = chunk.lower()
            for i, char in enumerate(chunk, chunk_start):
                yield char, i
        else:
            for i, raw in enumerate(chunk, chunk_start):
                for char in _normalize_char(raw, lowercase):
                    yield char, i

        start = chunk_match.end()


def normalize(
    text: str, lowercase: bool, start: int = 0
) -> Iterator[tuple[str, int]]:
    """
    Lazily normalize ``text`` from character index ``start`` on.

    Yields ``(char, offset)`` pairs where ``offset`` indexes the original
    character. Leading and trailing separators are dropped and consecutive
    separators are collapsed into one.

    :param text: Raw input text.
    :param lowercase: Lower-case and strip accents when ``True``.
    :param start: Index of the first input character to consider.
    """
    pending: int | None = None
    started = False
    for char, offset in _clean(text, lowercase, start):
        if char == SEPARATOR:
            # hold separators back until a real character follows
            if started and pending is None:
                pending = offset
            continue
        if pending is not None:
            yield SEPARATOR, pending
            pending = None
        started = True
        yield char, offset


def is_punctuation(char: str) -> bool:
    """Return ``True`` if BERT treats ``char`` as a standalone punctuation word."""
    return _PUNCTUATION.match(char) is not None


def pre_tokenize(chars: Iterable[tuple[str, int]]) -> Iterator[Word]:
    """Group a normalized character stream into words."""
    buf: list[str] = []
    begin = end = 0
    for char, offset in chars:
        if char == SEPARATOR or is_punctuation(char):
            if buf:
                yield Word("".join(buf), begin, end)
                buf = []
            if char != SEPARATOR:
                yield Word(char, offset, offset + 1)
            continue
        if not buf:
            begin = offset
        buf.append(char)
        end = offset + 1
    if buf:
        yield Word("".join(buf), begin, end)


def iter_words(text: str, lowercase: bool, start: int = 0) -> Iterator[Word]:
    """Normalize and split ``text`` into words, starting at character ``start``."""
    return pre_tokenize(normalize(text, lowercase, start))


__all__ = ["Word", "normalize", "pre_tokenize", "iter_words", "is_punctuation"]
