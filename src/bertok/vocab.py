"""
Immutable WordPiece vocabulary.
"""

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Final

from .errors import FormatError
from .types import TokenId

UNK_TOKEN: Final[str] = "[UNK]"
PAD_TOKEN: Final[str] = "[PAD]"
CLS_TOKEN: Final[str] = "[CLS]"
SEP_TOKEN: Final[str] = "[SEP]"
CONTINUATION_PREFIX: Final[str] = "##"
MAX_INPUT_CHARS_PER_WORD: Final[int] = 100

log = logging.getLogger(__name__)


class Vocabulary:
    """
    Bidirectional mapping between WordPiece tokens and dense integer ids.

    The token at position ``i`` of ``tokens`` gets id ``i``. Special token ids
    are resolved once at construction, and the instance never changes
    afterwards, so it can be shared across threads without locking.

    :param tokens: Surface tokens in id order.
    :param lowercase: Whether input text is lower-cased and accent-stripped
        before matching.
    :param continuation_prefix: Marker that starts every non-initial subword.
    :param max_input_chars_per_word: Words longer than this map to ``[UNK]``.
    :raises FormatError: On duplicate tokens, a missing special token or an
        empty continuation prefix.
    """

    __slots__ = (
        "_token_to_id",
        "_id_to_token",
        "lowercase",
        "continuation_prefix",
        "max_input_chars_per_word",
        "max_token_chars",
        "unk_token",
        "pad_token",
        "cls_token",
        "sep_token",
        "unk_id",
        "pad_id",
        "cls_id",
        "sep_id",
    )

    def __init__(
        self,
        tokens: Iterable[str],
        *,
        lowercase: bool,
        unk_token: str = UNK_TOKEN,
        pad_token: str = PAD_TOKEN,
        cls_token: str = CLS_TOKEN,
        sep_token: str = SEP_TOKEN,
        continuation_prefix: str = CONTINUATION_PREFIX,
        max_input_chars_per_word: int = MAX_INPUT_CHARS_PER_WORD,
    ) -> None:
        if not continuation_prefix:
            raise FormatError("continuation prefix must not be empty")

        id_to_token = tuple(tokens)
        token_to_id: dict[str, TokenId] = {}
        for tok_id, tok in enumerate(id_to_token):
            if tok in token_to_id:
                raise FormatError(
                    f"duplicate token at ids {token_to_id[tok]} and {tok_id}",
                    token=tok,
                )
            token_to_id[tok] = tok_id

        self._token_to_id: Mapping[str, TokenId] = MappingProxyType(token_to_id)
        self._id_to_token: tuple[str, ...] = id_to_token
        self.lowercase = lowercase
        self.continuation_prefix = continuation_prefix
        self.max_input_chars_per_word = max_input_chars_per_word
        # bounds the candidate length tried by the matcher
        self.max_token_chars = max((len(tok) for tok in id_to_token), default=0)

        self.unk_token = unk_token
        self.pad_token = pad_token
        self.cls_token = cls_token
        self.sep_token = sep_token
        self.unk_id = self._require(unk_token)
        self.pad_id = self._require(pad_token)
        self.cls_id = self._require(cls_token)
        self.sep_id = self._require(sep_token)

        log.debug(
            f"built vocabulary with {len(id_to_token)} tokens "
            f"(lowercase: {lowercase}, prefix: {continuation_prefix!r})"
        )

    @classmethod
    def from_mapping(cls, token_to_id: Mapping[str, TokenId], **kwargs) -> "Vocabulary":
        """
        Build a vocabulary from a ``token -> id`` mapping.

        Ids must cover ``[0, len(token_to_id))`` exactly once.

        :raises FormatError: If the ids are not dense or not unique.
        """
        size = len(token_to_id)
        id_to_token: list[str | None] = [None] * size
        for tok, tok_id in token_to_id.items():
            if not isinstance(tok_id, int) or not 0 <= tok_id < size:
                raise FormatError(
                    f"token id {tok_id!r} outside of [0, {size})", token=tok
                )
            if id_to_token[tok_id] is not None:
                raise FormatError(f"token id {tok_id} assigned twice", token=tok)
            id_to_token[tok_id] = tok
        # every slot is filled: size slots and size unique in-range ids
        return cls((tok for tok in id_to_token if tok is not None), **kwargs)

    def _require(self, token: str) -> TokenId:
        tok_id = self._token_to_id.get(token)
        if tok_id is None:
            raise FormatError("required special token missing", token=token)
        return tok_id

    def lookup_id(self, token: str) -> TokenId | None:
        """Return the id of ``token`` or ``None`` if it is not in the vocabulary."""
        return self._token_to_id.get(token)

    def lookup_token(self, tok_id: TokenId) -> str:
        """
        Return the surface token for ``tok_id``.

        :raises IndexError: If the id is outside the vocabulary.
        """
        if tok_id < 0:
            raise IndexError(f"token id out of range: {tok_id}")
        return self._id_to_token[tok_id]

    @property
    def token_to_id(self) -> Mapping[str, TokenId]:
        return self._token_to_id

    @property
    def id_to_token(self) -> tuple[str, ...]:
        return self._id_to_token

    @property
    def special_ids(self) -> frozenset[TokenId]:
        """Ids that ``decode`` drops when skipping special tokens."""
        return frozenset((self.pad_id, self.cls_id, self.sep_id))

    def size(self) -> int:
        """Return the number of tokens in the vocabulary."""
        return len(self._id_to_token)

    def __len__(self) -> int:
        return len(self._id_to_token)

    def __contains__(self, token: object) -> bool:
        return token in self._token_to_id

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(size={len(self)}, "
            f"lowercase={self.lowercase}, prefix={self.continuation_prefix!r})"
        )
