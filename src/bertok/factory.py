"""Factory functions for creating loaded tokenizers."""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .tokenizer import BertTokenizer


def from_vocab_file(path: str | Path, lowercase: bool = True, **kwargs) -> BertTokenizer:
    """
    Create a tokenizer from a ``vocab.txt`` file.

    :param path: Path to the vocabulary file, one token per line.
    :param lowercase: ``True`` for uncased models.
    :param kwargs: Special token names, continuation prefix and word length overrides.
    :return: Loaded tokenizer.
    :raises ConfigurationError: If the file is missing or the vocabulary is invalid.

    .. code-block:: python

        tokenizer = from_vocab_file("bert-base-uncased/vocab.txt")
        enc = tokenizer.encode("Hello world")
    """
    tokenizer = BertTokenizer()
    tokenizer.load_vocabulary(path, lowercase, **kwargs)
    return tokenizer


def from_tokenizer_json(source: str | Path | Mapping[str, Any]) -> BertTokenizer:
    """
    Create a tokenizer from a HuggingFace ``tokenizer.json`` file or object.

    Casing and special tokens are taken from the config.

    :raises ConfigurationError: If the config is not a BERT WordPiece tokenizer.
    """
    tokenizer = BertTokenizer()
    tokenizer.load_tokenizer_json(source)
    return tokenizer
