"""bertok: fast BERT WordPiece tokenization into fixed-size batches."""

from .batch import (
    AsyncBatchEnumerator,
    BatchEnumerator,
    EnumeratorState,
    TokenizedBatch,
)
from .encoder import TokenizedRange, encode_row
from .errors import (
    ArgumentError,
    BertokError,
    ConfigurationError,
    FormatError,
    InvalidStateError,
)
from .factory import from_tokenizer_json, from_vocab_file
from .normalizer import Word, iter_words, normalize
from .parallel import ParallelMode, list_parallel_modes
from .tokenizer import BertTokenizer, Encoding
from .vocab import Vocabulary
from .wordpiece import match_word

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("bertok")
except PackageNotFoundError:
    __version__ = "dev"

__all__ = [
    "BertTokenizer",
    "Encoding",
    "Vocabulary",
    "Word",
    "TokenizedRange",
    "TokenizedBatch",
    "BatchEnumerator",
    "AsyncBatchEnumerator",
    "EnumeratorState",
    "ParallelMode",
    "BertokError",
    "ConfigurationError",
    "FormatError",
    "InvalidStateError",
    "ArgumentError",
    "normalize",
    "iter_words",
    "match_word",
    "encode_row",
    "from_vocab_file",
    "from_tokenizer_json",
    "list_parallel_modes",
]
