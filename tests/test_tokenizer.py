"""Unit tests for BertTokenizer loading, encode/decode, batches and factories."""

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

import bertok as bt
from bertok.errors import ArgumentError, InvalidStateError


def _tokenizer_json(tokens, lowercase=True):
    """Return a minimal BERT tokenizer.json object."""
    return {
        "version": "1.0",
        "normalizer": {
            "type": "BertNormalizer",
            "clean_text": True,
            "handle_chinese_chars": True,
            "strip_accents": None,
            "lowercase": lowercase,
        },
        "pre_tokenizer": {"type": "BertPreTokenizer"},
        "model": {"type": "WordPiece", "vocab": {tok: i for i, tok in enumerate(tokens)}},
    }


# Load lifecycle
# ---------------------------------------------------------------------------


def test_encode_before_load_raises():
    """Encoding before loading raises InvalidStateError."""
    tok = bt.BertTokenizer()
    assert not tok.is_loaded
    with pytest.raises(InvalidStateError):
        tok.encode("hello")


def test_decode_before_load_raises():
    """Decoding before loading raises InvalidStateError."""
    with pytest.raises(InvalidStateError):
        bt.BertTokenizer().decode([0, 1, 2])


def test_batches_before_load_raises():
    """Batch enumeration needs a loaded tokenizer."""
    with pytest.raises(InvalidStateError):
        bt.BertTokenizer().batches([(0, "dog")], tokens_per_row=5, batch_size=1)


def test_load_twice_keeps_first_vocabulary(tokenizer, vocab, tokens):
    """A second load fails and leaves the first vocabulary in place."""
    with pytest.raises(InvalidStateError):
        tokenizer.load(bt.Vocabulary(tokens, lowercase=False))
    with pytest.raises(InvalidStateError):
        tokenizer.load_vocabulary(tokens, lowercase=False)
    with pytest.raises(InvalidStateError):
        tokenizer.load_tokenizer_json(_tokenizer_json(tokens, lowercase=False))
    assert tokenizer.vocab is vocab
    assert tokenizer.vocab.lowercase is True


def test_load_vocabulary_from_lines(tokens):
    """Lines are accepted in place of a file path."""
    tok = bt.BertTokenizer()
    tok.load_vocabulary(iter(tokens), lowercase=True)
    assert tok.is_loaded
    assert len(tok.vocab) == len(tokens)


def test_load_vocabulary_word_length_limit(tokens):
    """Words over the configured length encode as [UNK]."""
    tok = bt.BertTokenizer()
    tok.load_vocabulary(tokens, lowercase=True, max_input_chars_per_word=3)
    assert tok.encode("cats dog").input_ids.tolist() == [2, 1, 7, 3]


def test_load_logs_timing(tokens, caplog):
    """Loading logs how long it took."""
    tok = bt.BertTokenizer()
    with caplog.at_level("INFO", logger="bertok"):
        tok.load_vocabulary(tokens, lowercase=True)
    assert "load_vocabulary completed in" in caplog.text


def test_failed_load_leaves_tokenizer_unloaded():
    """An invalid vocabulary does not half-load the tokenizer."""
    tok = bt.BertTokenizer()
    with pytest.raises(bt.FormatError):
        tok.load_vocabulary(["[PAD]", "[UNK]", "[CLS]"], lowercase=True)
    assert not tok.is_loaded


# Encode
# ---------------------------------------------------------------------------


def test_encode_trimmed(tokenizer):
    """By default the arrays end at [SEP]."""
    enc = tokenizer.encode("the cats")
    assert enc.input_ids.tolist() == [2, 4, 5, 6, 3]
    assert enc.attention_mask.tolist() == [1] * 5
    assert enc.token_type_ids.tolist() == [0] * 5


def test_encode_padded(tokenizer):
    """pad_to extends the arrays with [PAD] and a zero mask."""
    enc = tokenizer.encode("the cats", pad_to=8)
    assert enc.input_ids.tolist() == [2, 4, 5, 6, 3, 0, 0, 0]
    assert enc.attention_mask.tolist() == [1, 1, 1, 1, 1, 0, 0, 0]
    assert len(enc.token_type_ids) == 8


def test_encode_pad_to_shorter_than_sequence(tokenizer):
    """pad_to never cuts the sequence."""
    assert len(tokenizer.encode("the cats", pad_to=3).input_ids) == 5


def test_encode_truncates_at_word_boundary(tokenizer):
    """Words beyond max_tokens are dropped whole."""
    enc = tokenizer.encode("the cats", max_tokens=4)
    assert enc.input_ids.tolist() == [2, 4, 3]


@pytest.mark.parametrize("max_tokens, pad_to", [(2, None), (0, None), (8, 9), (8, 0)])
def test_encode_invalid_lengths(tokenizer, max_tokens, pad_to):
    """Out-of-range lengths raise ArgumentError."""
    with pytest.raises(ArgumentError):
        tokenizer.encode("the cats", max_tokens=max_tokens, pad_to=pad_to)


def test_encode_is_idempotent(tokenizer):
    """The same input always gives the same ids."""
    text = "Hello, world! The doggy cats running."
    first = tokenizer.encode(text)
    second = tokenizer.encode(text)
    assert np.array_equal(first.input_ids, second.input_ids)


def test_encode_cased(tokens):
    """A cased tokenizer does not fold case."""
    tok = bt.BertTokenizer()
    tok.load_vocabulary(tokens, lowercase=False)
    assert tok.encode("The the").input_ids.tolist() == [2, 1, 4, 3]


def test_encode_into_reuses_buffers(tokenizer):
    """encode_into overwrites caller buffers and returns the token count."""
    ids = np.full(6, 9, dtype=np.int64)
    mask = np.full(6, 9, dtype=np.int64)
    assert tokenizer.encode_into("dog", ids, mask) == 3
    assert ids.tolist() == [2, 7, 3, 0, 0, 0]
    assert mask.tolist() == [1, 1, 1, 0, 0, 0]


def test_encode_row_reports_continuation(tokenizer):
    """encode_row exposes the resume offset for long documents."""
    ids = np.zeros(5, dtype=np.int64)
    mask = np.zeros(5, dtype=np.int64)
    corr, n = tokenizer.encode_row("k", "the cats dog", ids, mask)
    assert (corr.key, corr.offset, corr.last_tokenized_word_start_index) == ("k", 0, 9)
    corr, _ = tokenizer.encode_row("k", "the cats dog", ids, mask, start_offset=9)
    assert corr.is_complete
    assert ids.tolist() == [2, 7, 3, 0, 0]


# Decode
# ---------------------------------------------------------------------------


def test_decode_skips_special_tokens(tokenizer):
    """Continuation pieces are glued and [CLS]/[SEP]/[PAD] dropped."""
    assert tokenizer.decode([2, 4, 5, 6, 3, 0, 0]) == "the cats"


def test_decode_keeps_special_tokens(tokenizer):
    """skip_special_tokens=False keeps markers."""
    assert tokenizer.decode([2, 4, 5, 6, 3], skip_special_tokens=False) == "[CLS] the cats [SEP]"


def test_decode_keeps_unk(tokenizer):
    """[UNK] is not skipped, it stands for real input."""
    assert tokenizer.decode([4, 1]) == "the [UNK]"


def test_decode_normalized_text(tokenizer):
    """Decoding gives the normalized text, punctuation split off."""
    enc = tokenizer.encode("Hello, World!")
    assert tokenizer.decode(enc.input_ids) == "hello , world !"


def test_decode_leading_continuation(tokenizer):
    """A leading continuation piece is kept as is."""
    assert tokenizer.decode([6, 7]) == "##s dog"


@pytest.mark.parametrize("bad_id", [25, 999, -1])
def test_decode_unknown_id(tokenizer, bad_id):
    """Ids outside the vocabulary raise ArgumentError."""
    with pytest.raises(ArgumentError):
        tokenizer.decode([4, bad_id])


# Batch encode
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("parallel_mode", bt.list_parallel_modes() + [bt.ParallelMode.BATCH])
def test_encode_batch_modes(tokenizer, parallel_mode):
    """Every parallel mode gives the same rows in input order."""
    enc = tokenizer.encode_batch(
        ["the cats", "dog", ""], tokens_per_row=6, num_workers=2, parallel_mode=parallel_mode
    )
    assert enc.input_ids.shape == (3, 6)
    assert enc.input_ids.tolist() == [
        [2, 4, 5, 6, 3, 0],
        [2, 7, 3, 0, 0, 0],
        [2, 3, 0, 0, 0, 0],
    ]
    assert enc.attention_mask.sum(axis=1).tolist() == [5, 3, 2]
    assert not enc.token_type_ids.any()


def test_encode_batch_matches_single(tokenizer):
    """Batch rows equal individually padded encodings."""
    texts = ["Hello, world!", "the doggy cats running", "un", "cafe cafe cafe"] * 8
    enc = tokenizer.encode_batch(texts, tokens_per_row=10)
    for i, text in enumerate(texts):
        single = tokenizer.encode(text, max_tokens=10, pad_to=10)
        assert enc.input_ids[i].tolist() == single.input_ids.tolist()


def test_encode_batch_into_counts(tokenizer):
    """encode_batch_into returns the non-padding count per row."""
    ids = np.empty(12, dtype=np.int64)
    mask = np.empty(12, dtype=np.int64)
    counts = tokenizer.encode_batch_into(["the cats", "dog"], ids, mask, tokens_per_row=6)
    assert counts == [5, 3]


def test_encode_batch_size_mismatch_leaves_buffers(tokenizer):
    """A wrong buffer size is rejected before any row is written."""
    ids = np.full(12, -1, dtype=np.int64)
    mask = np.full(10, -1, dtype=np.int64)
    with pytest.raises(ArgumentError):
        tokenizer.encode_batch_into(["the cats", "dog"], ids, mask, tokens_per_row=6)
    assert ids.tolist() == [-1] * 12


def test_encode_batch_non_contiguous(tokenizer):
    """Strided buffers are rejected."""
    ids = np.zeros(24, dtype=np.int64)[::2]
    mask = np.zeros(12, dtype=np.int64)
    with pytest.raises(ArgumentError):
        tokenizer.encode_batch_into(["the cats", "dog"], ids, mask, tokens_per_row=6)


def test_encode_batch_empty(tokenizer):
    """No texts means no rows."""
    empty = np.empty(0, dtype=np.int64)
    assert tokenizer.encode_batch_into([], empty, empty, tokens_per_row=6) == []


def test_encode_batch_unknown_mode(tokenizer):
    """Unknown parallel modes are rejected."""
    with pytest.raises(ArgumentError):
        tokenizer.encode_batch(["dog"], tokens_per_row=6, parallel_mode="gpu")


# Streaming batches
# ---------------------------------------------------------------------------


def test_batches(tokenizer):
    """batches() enumerates (key, text) pairs with stride continuation."""
    docs = [("a", "the cats dog"), ("b", "dog")]
    batches = [
        (b.input_ids.copy(), b.output_correlation)
        for b in tokenizer.batches(docs, tokens_per_row=5, batch_size=2, stride=2)
    ]
    assert len(batches) == 2
    assert batches[0][0].reshape(2, 5).tolist() == [[2, 4, 5, 6, 3], [2, 5, 6, 7, 3]]
    assert [c.key for c in batches[1][1] if c is not None] == ["b"]


def test_abatches(tokenizer):
    """abatches() awaits an async source."""

    async def source():
        for i, text in enumerate(["dog", "the cats"]):
            await asyncio.sleep(0)
            yield i, text

    async def run():
        return [b.input_ids.copy() async for b in tokenizer.abatches(source(), 6, 2)]

    (ids,) = asyncio.run(run())
    assert ids.reshape(2, 6).tolist() == [[2, 7, 3, 0, 0, 0], [2, 4, 5, 6, 3, 0]]


def test_batches_invalid_stride(tokenizer):
    """A stride leaving no room for new tokens is rejected."""
    with pytest.raises(ArgumentError):
        tokenizer.batches([], tokens_per_row=5, batch_size=1, stride=3)


# Thread safety
# ---------------------------------------------------------------------------


def test_concurrent_encodes_match_sequential(tokenizer):
    """A loaded tokenizer can be shared between threads."""
    texts = [f"the cats {'dog ' * (i % 7)}running, hello world!" for i in range(64)]
    expected = [tokenizer.encode(text, max_tokens=32).input_ids.tolist() for text in texts]
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda t: tokenizer.encode(t, max_tokens=32).input_ids.tolist(), texts))
    assert results == expected


# Factories
# ---------------------------------------------------------------------------


def test_from_vocab_file(tmp_path, tokens):
    """from_vocab_file returns a loaded tokenizer."""
    path = tmp_path / "vocab.txt"
    path.write_text("\n".join(tokens) + "\n", encoding="utf-8")
    tok = bt.from_vocab_file(path)
    assert tok.is_loaded
    assert tok.encode("the cats").input_ids.tolist() == [2, 4, 5, 6, 3]


def test_from_tokenizer_json(tmp_path, tokens):
    """from_tokenizer_json accepts a parsed object or a file path."""
    config = _tokenizer_json(tokens)
    from_object = bt.from_tokenizer_json(config)

    path = tmp_path / "tokenizer.json"
    path.write_text(json.dumps(config), encoding="utf-8")
    from_file = bt.from_tokenizer_json(path)

    text = "Unaffable cats, running!"
    assert (
        from_object.encode(text).input_ids.tolist()
        == from_file.encode(text).input_ids.tolist()
        == [2, 16, 17, 18, 5, 6, 11, 9, 10, 13, 3]
    )


def test_from_vocab_file_missing(tmp_path):
    """A missing file surfaces as ConfigurationError."""
    with pytest.raises(bt.ConfigurationError):
        bt.from_vocab_file(tmp_path / "vocab.txt")
