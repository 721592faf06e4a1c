"""Exception hierarchy for the directory."""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(DirectoryError):
    """Invalid dialect, template set or connection settings.

    Raised while an instance is being configured; the instance is not
    installed.
    """


class PlaceholderMismatch(ConfigurationError):
    """A template was bound with a different number of parameters than it declares."""

    def __init__(self, expected: int, given: int) -> None:
        super().__init__(
            f"Template declares {expected} placeholder(s) but {given} parameter(s) were bound"
        )
        self.expected = expected
        self.given = given


class DirectoryReadFailure(DirectoryError):
    """Result rows could not be mapped; the template and schema disagree."""


class UnsupportedAlgorithm(DirectoryError):
    """The configured hash algorithm is not available in this runtime."""

    def __init__(self, algorithm: str) -> None:
        super().__init__(f"Unsupported hash algorithm: {algorithm!r}")
        self.algorithm = algorithm


class DirectoryUnavailable(DirectoryError):
    """A query that must not degrade to an empty result failed at the database."""
