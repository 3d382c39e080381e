"""
Vocabulary sources: ``vocab.txt`` token lists and ``tokenizer.json`` configs.

Only the BERT normalization recipe is supported. A ``tokenizer.json`` that
disables text cleaning, CJK spacing or accent stripping (while lower-casing)
describes a tokenizer this library cannot reproduce and is rejected instead
of silently producing different ids.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Final

from .errors import ConfigurationError
from .vocab import (
    CLS_TOKEN,
    CONTINUATION_PREFIX,
    MAX_INPUT_CHARS_PER_WORD,
    PAD_TOKEN,
    SEP_TOKEN,
    UNK_TOKEN,
    Vocabulary,
)

SUPPORTED_VERSION: Final[str] = "1.0"
VOCAB_SUFFIX: Final[str] = ".txt"
CONFIG_SUFFIX: Final[str] = ".json"

log = logging.getLogger(__name__)


def read_vocab_lines(lines: Iterable[str]) -> list[str]:
    """Return tokens from a line-oriented vocabulary; line number is the id."""
    return [line.rstrip("\r\n") for line in lines]


def vocabulary_from_lines(
    lines: Iterable[str],
    lowercase: bool,
    *,
    unk_token: str = UNK_TOKEN,
    pad_token: str = PAD_TOKEN,
    cls_token: str = CLS_TOKEN,
    sep_token: str = SEP_TOKEN,
    continuation_prefix: str = CONTINUATION_PREFIX,
    max_input_chars_per_word: int = MAX_INPUT_CHARS_PER_WORD,
) -> Vocabulary:
    """
    Build a vocabulary from ``vocab.txt`` style lines.

    Words longer than ``max_input_chars_per_word`` characters encode as
    ``[UNK]``.

    :raises FormatError: On duplicate tokens or missing special tokens.
    """
    return Vocabulary(
        read_vocab_lines(lines),
        lowercase=lowercase,
        unk_token=unk_token,
        pad_token=pad_token,
        cls_token=cls_token,
        sep_token=sep_token,
        continuation_prefix=continuation_prefix,
        max_input_chars_per_word=max_input_chars_per_word,
    )


def vocabulary_from_file(path: str | Path, lowercase: bool, **kwargs) -> Vocabulary:
    """
    Load a ``vocab.txt`` file.

    :raises ConfigurationError: If the file does not exist.
    :raises FormatError: On duplicate tokens or missing special tokens.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("vocabulary file does not exist", path=str(path))
    if path.suffix != VOCAB_SUFFIX:
        log.warning(f"unexpected vocabulary file suffix {path.suffix!r}, reading as lines")
    log.info(f"loading vocabulary from {path}")
    with path.open("r", encoding="utf-8", newline="") as f:
        return vocabulary_from_lines(f, lowercase, **kwargs)


def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = config.get(name)
    if not isinstance(section, Mapping):
        raise ConfigurationError("missing or malformed section", field=name, got=section)
    return section


def _require_type(section: Mapping[str, Any], name: str, expected: str) -> None:
    got = section.get("type")
    if got != expected:
        raise ConfigurationError(f"unsupported {name}, expected {expected}", field=f"{name}.type", got=got)


def _special_names(config: Mapping[str, Any]) -> tuple[str, str]:
    """Return ``([CLS], [SEP])`` names declared by the post-processor, if any."""
    cls_token, sep_token = CLS_TOKEN, SEP_TOKEN
    post = config.get("post_processor")
    if not isinstance(post, Mapping):
        return cls_token, sep_token

    match post.get("type"):
        case "BertProcessing":
            # "cls": ["[CLS]", 101]
            cls_token = post.get("cls", [cls_token])[0]
            sep_token = post.get("sep", [sep_token])[0]
        case "TemplateProcessing":
            single = post.get("single") or []
            specials = [
                item["SpecialToken"]["id"] for item in single if "SpecialToken" in item
            ]
            if len(specials) >= 2:
                cls_token, sep_token = specials[0], specials[-1]
        case other:
            log.debug(f"ignoring post-processor {other!r}, using default special tokens")
    return cls_token, sep_token


def vocabulary_from_tokenizer_json(config: Mapping[str, Any]) -> Vocabulary:
    """
    Build a vocabulary from a parsed HuggingFace ``tokenizer.json`` object.

    :raises ConfigurationError: If the model is not WordPiece or the
        normalizer/pre-tokenizer is not the BERT recipe.
    :raises FormatError: If the vocabulary itself is invalid.
    """
    version = config.get("version")
    if version is not None and version != SUPPORTED_VERSION:
        raise ConfigurationError(
            f"unsupported tokenizer.json version, expected {SUPPORTED_VERSION}",
            field="version",
            got=version,
        )

    model = _section(config, "model")
    _require_type(model, "model", "WordPiece")

    normalizer = _section(config, "normalizer")
    _require_type(normalizer, "normalizer", "BertNormalizer")
    if normalizer.get("clean_text") is not True:
        raise ConfigurationError(
            "text cleaning must be enabled", field="normalizer.clean_text", got=normalizer.get("clean_text")
        )
    if normalizer.get("handle_chinese_chars") is not True:
        raise ConfigurationError(
            "chinese character handling must be enabled",
            field="normalizer.handle_chinese_chars",
            got=normalizer.get("handle_chinese_chars"),
        )
    lowercase = normalizer.get("lowercase")
    if not isinstance(lowercase, bool):
        raise ConfigurationError("lowercase flag missing", field="normalizer.lowercase", got=lowercase)
    # null means "follow lowercase", which is what the matcher implements
    strip_accents = normalizer.get("strip_accents")
    if strip_accents is not None and strip_accents != lowercase:
        raise ConfigurationError(
            "accent stripping must follow lowercasing",
            field="normalizer.strip_accents",
            got=strip_accents,
        )

    pre_tokenizer = _section(config, "pre_tokenizer")
    _require_type(pre_tokenizer, "pre_tokenizer", "BertPreTokenizer")

    token_to_id = model.get("vocab")
    if not isinstance(token_to_id, Mapping):
        raise ConfigurationError("vocabulary missing", field="model.vocab")

    cls_token, sep_token = _special_names(config)
    padding = config.get("padding")
    pad_token = padding.get("pad_token", PAD_TOKEN) if isinstance(padding, Mapping) else PAD_TOKEN

    return Vocabulary.from_mapping(
        token_to_id,
        lowercase=lowercase,
        unk_token=model.get("unk_token", UNK_TOKEN),
        pad_token=pad_token,
        cls_token=cls_token,
        sep_token=sep_token,
        continuation_prefix=model.get("continuing_subword_prefix", CONTINUATION_PREFIX),
        max_input_chars_per_word=model.get("max_input_chars_per_word", MAX_INPUT_CHARS_PER_WORD),
    )


def vocabulary_from_json_file(path: str | Path) -> Vocabulary:
    """
    Load a ``tokenizer.json`` file.

    :raises ConfigurationError: If the file is missing, not valid JSON or
        describes an unsupported tokenizer.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError("tokenizer config does not exist", path=str(path))
    if path.suffix != CONFIG_SUFFIX:
        raise ConfigurationError("expected .json file", path=str(path))
    log.info(f"loading tokenizer config from {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON: {e.msg}", path=str(path)) from e
    if not isinstance(config, Mapping):
        raise ConfigurationError("tokenizer config must be a JSON object", path=str(path))
    return vocabulary_from_tokenizer_json(config)


__all__ = [
    "read_vocab_lines",
    "vocabulary_from_lines",
    "vocabulary_from_file",
    "vocabulary_from_tokenizer_json",
    "vocabulary_from_json_file",
]
