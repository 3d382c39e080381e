"""Shared fixtures: a tiny uncased vocabulary and a tokenizer loaded with it."""

import pytest

import bertok as bt

# ids 0-6 match the example vocabulary {[PAD]=0, [UNK]=1, [CLS]=2, [SEP]=3, the=4, cat=5, ##s=6}
TOKENS = [
    "[PAD]",
    "[UNK]",
    "[CLS]",
    "[SEP]",
    "the",
    "cat",
    "##s",
    "dog",
    "##gy",
    "run",
    "##ning",
    ",",
    ".",
    "!",
    "hello",
    "world",
    "un",
    "##aff",
    "##able",
    "中",
    "国",
    "cafe",
    "a",
    "##a",
    "[MASK]",
]


@pytest.fixture
def tokens():
    """Return the fixture token list (index = id)."""
    return list(TOKENS)


@pytest.fixture
def vocab():
    """Return an uncased vocabulary built from the fixture tokens."""
    return bt.Vocabulary(TOKENS, lowercase=True)


@pytest.fixture
def tokenizer(vocab):
    """Return a loaded BertTokenizer."""
    tok = bt.BertTokenizer()
    tok.load(vocab)
    return tok
