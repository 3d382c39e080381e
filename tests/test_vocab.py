"""Unit tests for the immutable Vocabulary."""

import pytest

import bertok as bt
from bertok.errors import ConfigurationError, FormatError


# Lookups
# ---------------------------------------------------------------------------


def test_lookup_id_and_token(vocab):
    """Ids are line positions and map back to the same token."""
    assert vocab.lookup_id("the") == 4
    assert vocab.lookup_token(4) == "the"
    assert vocab.lookup_id("##s") == 6
    assert vocab.lookup_id("zebra") is None


def test_size_and_contains(vocab, tokens):
    """Size counts every token and membership tests surface tokens."""
    assert vocab.size() == len(tokens)
    assert len(vocab) == len(tokens)
    assert "cat" in vocab
    assert "cats" not in vocab


def test_special_ids(vocab):
    """Special tokens resolve to their positions."""
    assert (vocab.pad_id, vocab.unk_id, vocab.cls_id, vocab.sep_id) == (0, 1, 2, 3)
    assert vocab.special_ids == frozenset({0, 2, 3})


def test_lookup_token_out_of_range(vocab):
    """Ids outside [0, size) raise IndexError."""
    with pytest.raises(IndexError):
        vocab.lookup_token(len(vocab))
    with pytest.raises(IndexError):
        vocab.lookup_token(-1)


def test_mapping_is_read_only(vocab):
    """The token mapping cannot be mutated after construction."""
    with pytest.raises(TypeError):
        vocab.token_to_id["zebra"] = 99


def test_max_token_chars(vocab):
    """The longest token bounds matching candidates."""
    assert vocab.max_token_chars == len("[MASK]")


# Construction errors
# ---------------------------------------------------------------------------


def test_duplicate_token_raises(tokens):
    """Duplicate surface tokens are rejected."""
    with pytest.raises(FormatError) as exc:
        bt.Vocabulary([*tokens, "cat"], lowercase=True)
    assert exc.value.token == "cat"


def test_missing_special_token_raises(tokens):
    """Every special token has to be present."""
    without_sep = [tok for tok in tokens if tok != "[SEP]"]
    with pytest.raises(FormatError):
        bt.Vocabulary(without_sep, lowercase=True)


def test_custom_special_names(tokens):
    """Special token names can be overridden."""
    renamed = ["<pad>" if tok == "[PAD]" else tok for tok in tokens]
    vocab = bt.Vocabulary(renamed, lowercase=False, pad_token="<pad>")
    assert vocab.pad_id == 0
    assert vocab.pad_token == "<pad>"


def test_empty_prefix_raises(tokens):
    """An empty continuation prefix cannot mark subwords."""
    with pytest.raises(FormatError):
        bt.Vocabulary(tokens, lowercase=True, continuation_prefix="")


def test_format_error_is_configuration_error(tokens):
    """FormatError belongs to the configuration error family."""
    with pytest.raises(ConfigurationError):
        bt.Vocabulary([*tokens, "the"], lowercase=True)


# from_mapping
# ---------------------------------------------------------------------------


def test_from_mapping_builds_dense_vocab(tokens):
    """A dense mapping produces the same vocabulary as the token list."""
    mapping = {tok: i for i, tok in enumerate(tokens)}
    vocab = bt.Vocabulary.from_mapping(mapping, lowercase=True)
    assert vocab.id_to_token == tuple(tokens)


def test_from_mapping_sparse_ids_raise(tokens):
    """Ids with gaps are rejected."""
    mapping = {tok: i for i, tok in enumerate(tokens)}
    mapping["cat"] = len(tokens) + 10
    with pytest.raises(FormatError):
        bt.Vocabulary.from_mapping(mapping, lowercase=True)


def test_from_mapping_shared_id_raises(tokens):
    """Two tokens cannot share one id."""
    mapping = {tok: i for i, tok in enumerate(tokens)}
    del mapping["dog"]
    mapping["cat"] = mapping["the"]
    mapping["doggo"] = len(tokens) - 1
    with pytest.raises(FormatError):
        bt.Vocabulary.from_mapping(mapping, lowercase=True)
