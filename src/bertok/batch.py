"""
Streaming batch enumeration with stride continuation.

A single synchronous state machine (``_BatchState``) owns the batch buffers,
the pivot document and the stride window. Two thin drivers feed it documents:
``BatchEnumerator`` pulls from a regular iterable, ``AsyncBatchEnumerator``
awaits an async iterable. The document pull is the only point where the async
driver can suspend, and it never happens in the middle of writing a row.

Buffers are reused across batches. A ``TokenizedBatch`` exposes read-only
views that stay valid only until the enumerator advances; copy the arrays if
they are needed afterwards.
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

import numpy as np
import numpy.typing as npt

from .encoder import MIN_ROW_TOKENS, TokenizedRange, encode_row
from .errors import ArgumentError, InvalidStateError
from .types import Document, TokenId
from .vocab import Vocabulary

log = logging.getLogger(__name__)


class EnumeratorState(str, Enum):
    """Lifecycle of a batch enumerator."""

    AWAITING_SOURCE = "awaiting_source"
    FILLING_ROW = "filling_row"
    BATCH_READY = "batch_ready"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Continuing[K]:
    """A document that did not fit into the previous row."""

    key: K
    text: str
    offset: int


type Pivot[K] = Continuing[K] | None


@dataclass(frozen=True)
class TokenizedBatch[K]:
    """
    One batch of fixed-size rows.

    ``input_ids`` and ``attention_mask`` are flat, read-only views of length
    ``batch_size * tokens_per_row``. ``output_correlation[i]`` is the range of
    row ``i`` or ``None`` for an all-zero padding row.
    """

    input_ids: npt.NDArray[np.int64]
    attention_mask: npt.NDArray[np.int64]
    output_correlation: tuple[TokenizedRange[K] | None, ...]
    tokens_per_row: int

    @property
    def batch_size(self) -> int:
        return len(self.output_correlation)

    def row(self, i: int) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        """Return ``(input_ids, attention_mask)`` views of row ``i``."""
        if not 0 <= i < self.batch_size:
            raise IndexError(f"row index out of range: {i}")
        start = i * self.tokens_per_row
        end = start + self.tokens_per_row
        return self.input_ids[start:end], self.attention_mask[start:end]

    def as_2d(self) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        """Return ``(batch_size, tokens_per_row)`` shaped views."""
        shape = (self.batch_size, self.tokens_per_row)
        return self.input_ids.reshape(shape), self.attention_mask.reshape(shape)


def _readonly(buf: npt.NDArray[np.int64]) -> npt.NDArray[np.int64]:
    view = buf.view()
    view.flags.writeable = False
    return view


def check_batch_args(tokens_per_row: int, batch_size: int, stride: int) -> None:
    """
    Validate batch dimensions.

    :raises ArgumentError: If a dimension is out of range.
    """
    if tokens_per_row < MIN_ROW_TOKENS:
        raise ArgumentError(
            "tokens_per_row too small", expected=f">= {MIN_ROW_TOKENS}", got=tokens_per_row
        )
    if batch_size < 1:
        raise ArgumentError("batch_size must be positive", got=batch_size)
    # stride must leave room for [CLS], one new token and [SEP]
    if not 0 <= stride <= tokens_per_row - MIN_ROW_TOKENS:
        raise ArgumentError(
            "stride out of range",
            expected=f"0 <= stride <= {tokens_per_row - MIN_ROW_TOKENS}",
            got=stride,
        )


class _BatchState[K]:
    """Source-agnostic batch filling state machine."""

    def __init__(
        self, vocab: Vocabulary, tokens_per_row: int, batch_size: int, stride: int
    ) -> None:
        check_batch_args(tokens_per_row, batch_size, stride)
        self.vocab = vocab
        self.tokens_per_row = tokens_per_row
        self.batch_size = batch_size
        self.stride = stride

        size = tokens_per_row * batch_size
        self._input_ids = np.zeros(size, dtype=np.int64)
        self._attention_mask = np.zeros(size, dtype=np.int64)
        self._ids_view = _readonly(self._input_ids)
        self._mask_view = _readonly(self._attention_mask)
        self._correlation: list[TokenizedRange[K] | None] = [None] * batch_size

        self._pivot: Pivot[K] = None
        self._stride_ids: tuple[TokenId, ...] = ()
        self._row = 0
        self.state = EnumeratorState.AWAITING_SOURCE

    @property
    def filling(self) -> bool:
        return self.state in (EnumeratorState.AWAITING_SOURCE, EnumeratorState.FILLING_ROW)

    @property
    def needs_document(self) -> bool:
        return self.state is EnumeratorState.AWAITING_SOURCE

    def begin_batch(self) -> bool:
        """Start a new batch; return ``False`` once the enumerator is exhausted."""
        if self.state is EnumeratorState.EXHAUSTED:
            return False
        self._row = 0
        self._next_row_state()
        return True

    def feed(self, doc: Document[K] | None) -> None:
        """Hand over the next document, or ``None`` when the source is exhausted."""
        if not self.needs_document:
            raise InvalidStateError(f"enumerator is not awaiting a document ({self.state.value})")
        if doc is None:
            self.state = EnumeratorState.BATCH_READY
            return
        key, text = doc
        self._pivot = Continuing(key, text, 0)
        self._stride_ids = ()
        self.state = EnumeratorState.FILLING_ROW

    def fill_row(self) -> None:
        """Encode the pivot document into the current row."""
        match self._pivot:
            case Continuing(key=key, text=text, offset=offset):
                pass
            case None:
                raise InvalidStateError("no document to encode")

        start = self._row * self.tokens_per_row
        end = start + self.tokens_per_row
        corr, n = encode_row(
            self.vocab,
            key,
            text,
            offset,
            self._stride_ids,
            self._input_ids[start:end],
            self._attention_mask[start:end],
            with_stride=self.stride > 0,
        )
        self._correlation[self._row] = corr

        match corr.last_tokenized_word_start_index:
            case None:
                self._pivot = None
                self._stride_ids = ()
            case next_offset:
                log.debug(f"document {key!r} continues at offset {next_offset}")
                self._pivot = Continuing(key, text, next_offset)
                # trailing ids before [SEP], never reaching back into [CLS]
                window_start = start + max(1, n - 1 - self.stride)
                self._stride_ids = tuple(
                    self._input_ids[window_start : start + n - 1].tolist()
                )

        self._row += 1
        self._next_row_state()

    def finish_batch(self) -> TokenizedBatch[K] | None:
        """Pad unfilled rows and publish the batch, or exhaust if nothing was filled."""
        filled = self._row
        if filled == 0:
            self.exhaust()
            return None

        if filled < self.batch_size:
            self._input_ids[filled * self.tokens_per_row :] = 0
            self._attention_mask[filled * self.tokens_per_row :] = 0
            for i in range(filled, self.batch_size):
                self._correlation[i] = None

        log.debug(f"batch ready: {filled}/{self.batch_size} rows filled")
        self.state = EnumeratorState.BATCH_READY
        return TokenizedBatch(
            input_ids=self._ids_view,
            attention_mask=self._mask_view,
            output_correlation=tuple(self._correlation),
            tokens_per_row=self.tokens_per_row,
        )

    def exhaust(self) -> None:
        if self.state is not EnumeratorState.EXHAUSTED:
            log.debug("batch enumerator exhausted")
        self.state = EnumeratorState.EXHAUSTED
        self._pivot = None
        self._stride_ids = ()

    def _next_row_state(self) -> None:
        if self._row >= self.batch_size:
            self.state = EnumeratorState.BATCH_READY
        elif self._pivot is None:
            self.state = EnumeratorState.AWAITING_SOURCE
        else:
            self.state = EnumeratorState.FILLING_ROW


class BatchEnumerator[K](Iterator[TokenizedBatch[K]]):
    """
    Iterate fixed-shape batches over a synchronous ``(key, text)`` source.

    Single pass and single consumer: each ``next()`` overwrites the buffers
    behind the previously returned batch.

    .. code-block:: python

        for batch in BatchEnumerator(vocab, docs, tokens_per_row=512, batch_size=32):
            ids, mask = batch.as_2d()
            run_model(ids.copy(), mask.copy())
    """

    def __init__(
        self,
        vocab: Vocabulary,
        source: Iterable[Document[K]],
        tokens_per_row: int,
        batch_size: int,
        stride: int = 0,
    ) -> None:
        self._state: _BatchState[K] = _BatchState(vocab, tokens_per_row, batch_size, stride)
        self._source: Iterator[Document[K]] | None = iter(source)

    @property
    def state(self) -> EnumeratorState:
        return self._state.state

    def __iter__(self) -> "BatchEnumerator[K]":
        return self

    def __next__(self) -> TokenizedBatch[K]:
        state = self._state
        if self._source is None or not state.begin_batch():
            raise StopIteration
        while state.filling:
            if state.needs_document:
                state.feed(next(self._source, None))
            else:
                state.fill_row()
        batch = state.finish_batch()
        if batch is None:
            # drop the source so it can be garbage collected
            self._source = None
            raise StopIteration
        return batch


class AsyncBatchEnumerator[K](AsyncIterator[TokenizedBatch[K]]):
    """
    Iterate fixed-shape batches over an asynchronous ``(key, text)`` source.

    Same semantics as ``BatchEnumerator``; only awaiting the next document may
    suspend. Cancellation is up to the source: once it stops yielding, the
    enumerator finishes the current batch and ends.
    """

    def __init__(
        self,
        vocab: Vocabulary,
        source: AsyncIterable[Document[K]],
        tokens_per_row: int,
        batch_size: int,
        stride: int = 0,
    ) -> None:
        self._state: _BatchState[K] = _BatchState(vocab, tokens_per_row, batch_size, stride)
        self._source: AsyncIterator[Document[K]] | None = aiter(source)

    @property
    def state(self) -> EnumeratorState:
        return self._state.state

    def __aiter__(self) -> "AsyncBatchEnumerator[K]":
        return self

    async def __anext__(self) -> TokenizedBatch[K]:
        state = self._state
        if self._source is None or not state.begin_batch():
            raise StopAsyncIteration
        while state.filling:
            if state.needs_document:
                state.feed(await anext(self._source, None))
            else:
                state.fill_row()
        batch = state.finish_batch()
        if batch is None:
            self._source = None
            raise StopAsyncIteration
        return batch

    async def aclose(self) -> None:
        """Stop enumerating and close the source if it supports ``aclose()``."""
        source, self._source = self._source, None
        self._state.exhaust()
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()


__all__ = [
    "EnumeratorState",
    "Continuing",
    "Pivot",
    "TokenizedBatch",
    "BatchEnumerator",
    "AsyncBatchEnumerator",
    "check_batch_args",
]
