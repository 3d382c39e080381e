"""Custom exception hierarchy for bertok tokenization errors."""

from ._sanitise import render_token


class BertokError(Exception):
    """Base exception for all bertok errors."""


class ConfigurationError(BertokError):
    """Raised when a vocabulary source is malformed or unsupported."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        field: str | None = None,
        got: object = None,
    ) -> None:
        """Initialize with optional source details that get appended to the message."""
        extra = " "
        if path:
            extra += f"(path: {path}) "
        if field:
            extra += f"(field: {field}) "
        if got is not None:
            extra += f"(got {got!r}) "
        super().__init__(message + extra)
        self.path = path
        self.field = field
        self.got = got


class FormatError(ConfigurationError):
    """Raised when vocabulary contents violate the vocabulary invariants."""

    def __init__(self, message: str, *, token: str | None = None) -> None:
        super().__init__(
            message if token is None else f"{message} (token: {render_token(token)})"
        )
        self.token = token


class InvalidStateError(BertokError):
    """Raised when a tokenizer is used before loading or loaded twice."""


class ArgumentError(BertokError):
    """Raised when call arguments such as buffer sizes are invalid."""

    def __init__(
        self,
        message: str,
        *,
        expected: object = None,
        got: object = None,
    ) -> None:
        extra = " "
        if expected is not None:
            extra += f"(expected: {expected}) "
        if got is not None:
            extra += f"(got {got}) "
        super().__init__(message + extra)
        self.expected = expected
        self.got = got
