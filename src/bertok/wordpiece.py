"""
Greedy longest-match-first WordPiece matching.
"""

from .types import TokenId
from .vocab import Vocabulary


def match_word(word: str, vocab: Vocabulary) -> list[TokenId]:
    """
    Split one normalized word into WordPiece ids.

    Starting at the front of the word, the longest prefix found in the
    vocabulary wins; every piece after the first is looked up with the
    continuation prefix. If some position has no matching piece at all, the
    partial result is thrown away and the word becomes a single ``[UNK]``.

    Example (vocabulary contains ``cat`` and ``##s``)::

        >>> match_word("cats", vocab)
        [5, 6]

    :param word: A normalized word without whitespace.
    :param vocab: Vocabulary to match against.
    :returns: Non-empty list of ids, at most ``len(word)`` long.
    """
    n = len(word)
    if n > vocab.max_input_chars_per_word:
        return [vocab.unk_id]

    prefix = vocab.continuation_prefix
    # candidates longer than the longest token cannot match
    max_len = vocab.max_token_chars
    ids: list[TokenId] = []
    start = 0
    while start < n:
        end = min(n, start + max_len)
        found: TokenId | None = None
        while end > start:
            piece = word[start:end]
            if start > 0:
                piece = prefix + piece
            found = vocab.lookup_id(piece)
            if found is not None:
                break
            end -= 1
        if found is None:
            return [vocab.unk_id]
        ids.append(found)
        start = end
    return ids
