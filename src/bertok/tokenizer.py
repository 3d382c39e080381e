"""
BERT WordPiece tokenizer with a load-once lifecycle.
"""

import logging
from collections.abc import AsyncIterable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, NamedTuple

import numpy as np
import numpy.typing as npt

from ._decorators import measure_time
from .batch import AsyncBatchEnumerator, BatchEnumerator, check_batch_args
from .encoder import MIN_ROW_TOKENS, TokenizedRange, encode_row
from .errors import ArgumentError, InvalidStateError
from .loader import (
    vocabulary_from_file,
    vocabulary_from_json_file,
    vocabulary_from_lines,
    vocabulary_from_tokenizer_json,
)
from .parallel import ParallelMode, ParallelStrategy, run_rows
from .types import Document, TokenId
from .vocab import Vocabulary

log = logging.getLogger(__name__)


class Encoding(NamedTuple):
    """Model inputs produced by the allocating encode forms."""

    input_ids: npt.NDArray[np.int64]
    attention_mask: npt.NDArray[np.int64]
    token_type_ids: npt.NDArray[np.int64]


class BertTokenizer:
    """
    WordPiece tokenizer for BERT-style models.

    A tokenizer starts unloaded and is loaded exactly once, from a
    ``Vocabulary``, a ``vocab.txt`` source or a ``tokenizer.json`` source.
    Loading again raises ``InvalidStateError`` and keeps the first vocabulary.
    After loading the tokenizer is read-only and may be shared between threads;
    each concurrent encode call needs its own output buffers.

    .. code-block:: python

        tok = BertTokenizer()
        tok.load_vocabulary("vocab.txt", lowercase=True)
        enc = tok.encode("Hello world", max_tokens=128)
    """

    def __init__(self) -> None:
        self._vocab: Vocabulary | None = None

    # Loading
    # ===================================================================================

    @property
    def is_loaded(self) -> bool:
        return self._vocab is not None

    @property
    def vocab(self) -> Vocabulary:
        """
        The loaded vocabulary.

        :raises InvalidStateError: If the tokenizer has not been loaded.
        """
        if self._vocab is None:
            raise InvalidStateError(
                f"{self.__class__.__name__} must be loaded before use"
            )
        return self._vocab

    def _ensure_unloaded(self) -> None:
        if self._vocab is not None:
            raise InvalidStateError(
                f"{self.__class__.__name__} is already loaded ({len(self._vocab)} tokens)"
            )

    def load(self, vocab: Vocabulary) -> None:
        """
        Load an already built vocabulary.

        :raises InvalidStateError: If the tokenizer is already loaded.
        """
        self._ensure_unloaded()
        self._vocab = vocab
        log.info(
            f"tokenizer loaded: {len(vocab)} tokens, lowercase={vocab.lowercase}"
        )

    @measure_time
    def load_vocabulary(
        self, source: str | Path | Iterable[str], lowercase: bool, **kwargs
    ) -> None:
        """
        Load a ``vocab.txt`` file path or an iterable of its lines.

        :param source: Path to the file, or lines with one token each.
        :param lowercase: Whether the model is uncased.
        :param kwargs: Special token names, continuation prefix and word length overrides.
        :raises InvalidStateError: If the tokenizer is already loaded.
        :raises ConfigurationError: If the source is missing or invalid.
        """
        self._ensure_unloaded()
        if isinstance(source, (str, Path)):
            vocab = vocabulary_from_file(source, lowercase, **kwargs)
        else:
            vocab = vocabulary_from_lines(source, lowercase, **kwargs)
        self.load(vocab)

    @measure_time
    def load_tokenizer_json(self, source: str | Path | Mapping[str, Any]) -> None:
        """
        Load a HuggingFace ``tokenizer.json`` file path or its parsed object.

        :raises InvalidStateError: If the tokenizer is already loaded.
        :raises ConfigurationError: If the config is not a BERT WordPiece one.
        """
        self._ensure_unloaded()
        if isinstance(source, Mapping):
            vocab = vocabulary_from_tokenizer_json(source)
        else:
            vocab = vocabulary_from_json_file(source)
        self.load(vocab)

    # Single text
    # ===================================================================================

    def encode_row[K](
        self,
        key: K,
        text: str,
        input_ids: npt.NDArray[np.int64],
        attention_mask: npt.NDArray[np.int64],
        start_offset: int = 0,
        stride_ids: Sequence[TokenId] = (),
        with_stride: bool = True,
        token_type_ids: npt.NDArray[np.int64] | None = None,
    ) -> tuple[TokenizedRange[K], int]:
        """
        Encode one row of a document, reporting where it has to continue.

        See ``bertok.encoder.encode_row`` for the row layout.
        """
        return encode_row(
            self.vocab,
            key,
            text,
            start_offset,
            stride_ids,
            input_ids,
            attention_mask,
            with_stride=with_stride,
            token_type_ids=token_type_ids,
        )

    def encode_into(
        self,
        text: str,
        input_ids: npt.NDArray[np.int64],
        attention_mask: npt.NDArray[np.int64],
        token_type_ids: npt.NDArray[np.int64] | None = None,
    ) -> int:
        """
        Encode ``text`` into fixed-size buffers, dropping words that do not fit.

        :returns: Number of non-padding tokens written.
        :raises InvalidStateError: If the tokenizer has not been loaded.
        :raises ArgumentError: If the buffers are too small or differ in length.
        """
        corr, n = encode_row(
            self.vocab,
            None,
            text,
            0,
            (),
            input_ids,
            attention_mask,
            with_stride=False,
            token_type_ids=token_type_ids,
        )
        if not corr.is_complete:
            log.debug(
                f"input truncated at offset {corr.last_tokenized_word_start_index} "
                f"of {len(text)} characters"
            )
        return n

    def encode(
        self, text: str, max_tokens: int = 512, pad_to: int | None = None
    ) -> Encoding:
        """
        Encode ``text`` into newly allocated arrays.

        :param max_tokens: Upper bound on the sequence length.
        :param pad_to: Pad the result with ``[PAD]`` up to this length; by
            default the arrays end at ``[SEP]``.
        :raises ArgumentError: If ``max_tokens`` is too small or ``pad_to``
            exceeds it.
        """
        if max_tokens < MIN_ROW_TOKENS:
            raise ArgumentError(
                "max_tokens too small", expected=f">= {MIN_ROW_TOKENS}", got=max_tokens
            )
        if pad_to is not None and not 0 < pad_to <= max_tokens:
            raise ArgumentError(
                "pad_to out of range", expected=f"1..{max_tokens}", got=pad_to
            )
        input_ids = np.empty(max_tokens, dtype=np.int64)
        attention_mask = np.empty(max_tokens, dtype=np.int64)
        n = self.encode_into(text, input_ids, attention_mask)
        length = n if pad_to is None else max(n, pad_to)
        return Encoding(
            input_ids=input_ids[:length].copy(),
            attention_mask=attention_mask[:length].copy(),
            token_type_ids=np.zeros(length, dtype=np.int64),
        )

    def decode(self, ids: Iterable[TokenId], skip_special_tokens: bool = True) -> str:
        """
        Turn token ids back into text.

        Continuation pieces are glued to the preceding piece. Normalization is
        not reversible, so the result is the normalized text (e.g. lower-cased).

        :raises ArgumentError: If an id is not in the vocabulary.
        """
        vocab = self.vocab
        prefix = vocab.continuation_prefix
        skipped = vocab.special_ids if skip_special_tokens else frozenset()
        words: list[str] = []
        for tok_id in ids:
            tok_id = int(tok_id)
            if tok_id in skipped:
                continue
            try:
                tok = vocab.lookup_token(tok_id)
            except IndexError as e:
                raise ArgumentError(
                    "token id not in vocabulary", expected=f"0..{len(vocab) - 1}", got=tok_id
                ) from e
            if words and tok.startswith(prefix):
                words[-1] += tok[len(prefix) :]
            else:
                words.append(tok)
        return " ".join(words)

    # Batches
    # ===================================================================================

    def encode_batch_into(
        self,
        texts: Sequence[str],
        input_ids: npt.NDArray[np.int64],
        attention_mask: npt.NDArray[np.int64],
        tokens_per_row: int,
        token_type_ids: npt.NDArray[np.int64] | None = None,
        num_workers: int | None = None,
        parallel_mode: ParallelStrategy | ParallelMode = "auto",
    ) -> list[int]:
        """
        Encode one row per text into flat ``len(texts) * tokens_per_row`` buffers.

        Rows are encoded independently (in parallel unless ``parallel_mode`` is
        ``"off"``) and land in input order. Words beyond a row are dropped.

        :returns: Non-padding token count per row.
        :raises ArgumentError: If a buffer length does not match, before any
            buffer is written.
        """
        vocab = self.vocab
        mode = ParallelMode.get(parallel_mode)
        if tokens_per_row < MIN_ROW_TOKENS:
            raise ArgumentError(
                "tokens_per_row too small", expected=f">= {MIN_ROW_TOKENS}", got=tokens_per_row
            )
        n_rows = len(texts)
        expected = n_rows * tokens_per_row
        for name, buf in (
            ("input_ids", input_ids),
            ("attention_mask", attention_mask),
            ("token_type_ids", token_type_ids),
        ):
            if buf is not None and buf.size != expected:
                raise ArgumentError(
                    f"{name} size must be len(texts) * tokens_per_row",
                    expected=expected,
                    got=buf.size,
                )
            # rows are written through reshaped views
            if buf is not None and not buf.flags.c_contiguous:
                raise ArgumentError(f"{name} must be C-contiguous")
        if n_rows == 0:
            return []

        ids_rows = input_ids.reshape(n_rows, tokens_per_row)
        mask_rows = attention_mask.reshape(n_rows, tokens_per_row)
        type_rows = (
            None if token_type_ids is None else token_type_ids.reshape(n_rows, tokens_per_row)
        )

        def encode_one(row: int) -> int:
            _, n = encode_row(
                vocab,
                row,
                texts[row],
                0,
                (),
                ids_rows[row],
                mask_rows[row],
                with_stride=False,
                token_type_ids=None if type_rows is None else type_rows[row],
            )
            return n

        return run_rows(encode_one, n_rows, num_workers=num_workers, parallel_mode=mode)

    def encode_batch(
        self,
        texts: Sequence[str],
        tokens_per_row: int = 512,
        num_workers: int | None = None,
        parallel_mode: ParallelStrategy | ParallelMode = "auto",
    ) -> Encoding:
        """Encode texts into newly allocated ``(len(texts), tokens_per_row)`` arrays."""
        shape = (len(texts), tokens_per_row)
        input_ids = np.empty(shape, dtype=np.int64)
        attention_mask = np.empty(shape, dtype=np.int64)
        token_type_ids = np.empty(shape, dtype=np.int64)
        self.encode_batch_into(
            texts,
            input_ids,
            attention_mask,
            tokens_per_row,
            token_type_ids=token_type_ids,
            num_workers=num_workers,
            parallel_mode=parallel_mode,
        )
        return Encoding(input_ids, attention_mask, token_type_ids)

    def batches[K](
        self,
        source: Iterable[Document[K]],
        tokens_per_row: int,
        batch_size: int,
        stride: int = 0,
    ) -> BatchEnumerator[K]:
        """
        Lazily encode ``(key, text)`` pairs into fixed-shape batches.

        Documents longer than one row continue in the following rows, each
        starting with ``stride`` trailing tokens of the previous row.

        :raises InvalidStateError: If the tokenizer has not been loaded.
        :raises ArgumentError: If a dimension is out of range.
        """
        check_batch_args(tokens_per_row, batch_size, stride)
        return BatchEnumerator(self.vocab, source, tokens_per_row, batch_size, stride)

    def abatches[K](
        self,
        source: AsyncIterable[Document[K]],
        tokens_per_row: int,
        batch_size: int,
        stride: int = 0,
    ) -> AsyncBatchEnumerator[K]:
        """Async variant of ``batches`` for sources that have to be awaited."""
        check_batch_args(tokens_per_row, batch_size, stride)
        return AsyncBatchEnumerator(self.vocab, source, tokens_per_row, batch_size, stride)
