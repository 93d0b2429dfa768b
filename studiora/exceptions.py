"""Error types raised by the extraction pipeline."""


class StudioraError(Exception):
    """Base class for all errors raised by this package."""


class ParseInputError(StudioraError, ValueError):
    """Raised when the caller passes unusable input (empty text, missing course)."""


class ConfigurationError(StudioraError):
    """Raised when settings or overrides are malformed."""


class LLMResponseError(StudioraError):
    """Raised inside the language-model client when a response cannot be used.

    Never escapes the client; it is converted into a neutral outcome.
    """
