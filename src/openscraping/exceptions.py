"""
Exception classes for openscraping.

Malformed schemas and lost results surface as exceptions. Selectors that match nothing and
transformations that reject their input are not errors: the affected value is
simply left out of the result.
"""


class OpenScrapingError(Exception):
    """Base exception for all openscraping errors."""

    pass


class SchemaError(OpenScrapingError, ValueError):
    """
    Raised when a schema cannot be interpreted.

    Examples: a rule object without a selector, a selector that is not valid
    XPath, an unknown rule key, or a schema source that cannot be read.
    """

    pass


class UnknownTransformationError(SchemaError, KeyError):
    """Raised when a rule names a transformation missing from the registry."""

    def __init__(self, name: str):
        super().__init__(f"Unknown transformation: {name!r}")
        self.name = name

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class PersistenceError(OpenScrapingError):
    """Raised when buffered results could not be written."""

    def __init__(self, message: str, sources=()):
        super().__init__(message)
        self.sources = list(sources)
