"""
Single-sequence encoder writing one row into caller-provided buffers.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Final

import numpy as np
import numpy.typing as npt

from .errors import ArgumentError
from .normalizer import iter_words
from .types import TokenId
from .vocab import Vocabulary
from .wordpiece import match_word

# [CLS] + one token + [SEP]
MIN_ROW_TOKENS: Final[int] = 3

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenizedRange[K]:
    """
    Maps one encoded row back to the document it came from.

    ``offset`` is the character index in the document where this row's words
    begin. ``last_tokenized_word_start_index`` is ``None`` when the document
    ended inside this row; otherwise it is the character index of the first
    word that did not fit and where the next row has to continue.

    ``stride_len`` is the number of ids right after ``[CLS]`` that repeat the
    tail of the previous row. It is 0 for first rows and for continuation
    rows whose stride window had to be dropped, so callers rebuilding a
    document strip exactly ``stride_len`` leading ids.
    """

    key: K
    offset: int
    last_tokenized_word_start_index: int | None = None
    stride_len: int = 0

    @property
    def is_complete(self) -> bool:
        """Whether the document was fully consumed by this row."""
        return self.last_tokenized_word_start_index is None


def check_row_buffers(
    input_ids: npt.NDArray[np.int64],
    attention_mask: npt.NDArray[np.int64],
    token_type_ids: npt.NDArray[np.int64] | None = None,
) -> int:
    """
    Validate the buffers of one row and return its capacity.

    :raises ArgumentError: If buffer lengths differ or the row cannot hold
        ``[CLS]``, one token and ``[SEP]``.
    """
    capacity = len(input_ids)
    if len(attention_mask) != capacity:
        raise ArgumentError(
            "attention_mask length must match input_ids",
            expected=capacity,
            got=len(attention_mask),
        )
    if token_type_ids is not None and len(token_type_ids) != capacity:
        raise ArgumentError(
            "token_type_ids length must match input_ids",
            expected=capacity,
            got=len(token_type_ids),
        )
    if capacity < MIN_ROW_TOKENS:
        raise ArgumentError(
            "row too small for [CLS], one token and [SEP]",
            expected=f">= {MIN_ROW_TOKENS}",
            got=capacity,
        )
    return capacity


def encode_row[K](
    vocab: Vocabulary,
    key: K,
    text: str,
    start_offset: int,
    stride_ids: Sequence[TokenId],
    input_ids: npt.NDArray[np.int64],
    attention_mask: npt.NDArray[np.int64],
    with_stride: bool = True,
    token_type_ids: npt.NDArray[np.int64] | None = None,
) -> tuple[TokenizedRange[K], int]:
    """
    Encode ``text`` from ``start_offset`` into one fixed-size row.

    The row is laid out as ``[CLS]``, the stride window (if ``with_stride``),
    as many whole words as fit, ``[SEP]`` and ``[PAD]`` up to the buffer
    length. Continuation rows keep ``[CLS]`` at position 0 as well: the stride
    window follows it instead of taking its place. A word is never split
    across rows: the first word that does not fit is deferred and reported
    through the returned range. If the first word does not fit next to the
    stride window, the window is dropped and the range reports
    ``stride_len == 0``. Only a word too long for an otherwise empty row is
    replaced by ``[UNK]``, so that each row consumes at least one word.

    Nothing is written to the buffers unless all arguments are valid.

    :param vocab: Vocabulary used for normalization flags and matching.
    :param key: Caller-defined document key, copied into the range.
    :param text: Full document text.
    :param start_offset: Character index of the first word to encode.
    :param stride_ids: Trailing ids of the previous row for this document.
    :param input_ids: Output ids, its length is the row capacity.
    :param attention_mask: Output mask, same length as ``input_ids``.
    :param with_stride: Whether ``stride_ids`` are written after ``[CLS]``.
    :param token_type_ids: Optional output buffer, zero-filled.
    :returns: The row's range and its non-padding token count.
    :raises ArgumentError: On mismatched or too small buffers, or a stride
        window that leaves no room for a word.
    """
    capacity = check_row_buffers(input_ids, attention_mask, token_type_ids)
    lead = tuple(stride_ids) if with_stride else ()
    if len(lead) > capacity - MIN_ROW_TOKENS:
        raise ArgumentError(
            "stride window leaves no room for new tokens",
            expected=f"<= {capacity - MIN_ROW_TOKENS}",
            got=len(lead),
        )

    ids: list[TokenId] = [vocab.cls_id, *lead]
    # last slot is reserved for [SEP]
    limit = capacity - 1
    deferred: int | None = None
    n_words = 0
    for word in iter_words(text, vocab.lowercase, start_offset):
        pieces = match_word(word.text, vocab)
        if len(ids) + len(pieces) > limit:
            if n_words:
                deferred = word.start
                break
            if lead and 1 + len(pieces) <= limit:
                log.debug(f"dropping stride window to fit word at offset {word.start}")
                del ids[1:]
                lead = ()
                ids.extend(pieces)
                n_words += 1
                continue
            log.debug(
                f"word at offset {word.start} needs {len(pieces)} tokens, "
                f"row has room for {limit - len(ids)}: using [UNK]"
            )
            pieces = [vocab.unk_id]
        ids.extend(pieces)
        n_words += 1
    ids.append(vocab.sep_id)

    n = len(ids)
    input_ids[:n] = ids
    input_ids[n:] = vocab.pad_id
    attention_mask[:n] = 1
    attention_mask[n:] = 0
    if token_type_ids is not None:
        token_type_ids[:] = 0

    return TokenizedRange(key, start_offset, deferred, len(lead)), n


__all__ = ["TokenizedRange", "MIN_ROW_TOKENS", "check_row_buffers", "encode_row"]
