"""
Exception hierarchy for the scrape pipeline.

Per-identifier errors (InvalidIdentifier, FetchError, ParseError,
NormalizationError) are caught at the pipeline boundary and turned into
error records. ConfigurationError and InputError are fatal to a batch and
are raised before any work starts.
"""

from typing import Optional


class ScrapeError(Exception):
    """Base exception for all scrape errors."""

    kind: Optional[str] = None

    def __init__(
        self,
        message: str,
        identifier: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        self.original_error = original_error

    @property
    def reason(self) -> str:
        """Short human-readable reason, used on error records."""
        return self.message

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.identifier:
            parts.append(f"[identifier={self.identifier}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class InvalidIdentifier(ScrapeError):
    """Identifier failed the format check; no request was made."""

    kind = "invalid_identifier"

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Invalid ASIN format: {identifier!r}", identifier=identifier)


class FetchError(ScrapeError):
    """Retrieving the product document failed."""

    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TRANSPORT_ERROR = "transport_error"
    KINDS = (TIMEOUT, NOT_FOUND, RATE_LIMITED, TRANSPORT_ERROR)

    def __init__(
        self,
        kind: str,
        message: str,
        identifier: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        retry_after: Optional[float] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        if kind not in self.KINDS:
            raise ValueError(f"unknown fetch error kind: {kind}")
        super().__init__(message, identifier, original_error)
        self.kind = kind
        self.status_code = status_code
        self.url = url
        self.retry_after = retry_after
        self.attempts = 1

    @property
    def retryable(self) -> bool:
        if self.kind in (self.RATE_LIMITED, self.TIMEOUT):
            return True
        if self.kind == self.TRANSPORT_ERROR:
            # connection failures and server errors; other client errors are final
            return self.status_code is None or self.status_code >= 500
        return False

    @property
    def reason(self) -> str:
        if self.attempts > 1:
            return f"{self.message} (after {self.attempts} attempts)"
        return self.message


class ParseError(ScrapeError):
    """Required fields could not be extracted from the document."""

    MISSING_FIELD = "missing_field"
    MALFORMED = "malformed"

    def __init__(
        self,
        kind: str,
        message: str,
        identifier: Optional[str] = None,
        field: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, identifier, original_error)
        self.kind = kind
        self.field = field


class NormalizationError(ScrapeError):
    """Price arithmetic failed on the parsed values."""

    kind = "normalization"


class ConfigurationError(ScrapeError):
    """Invalid setting; raised before a batch starts."""

    kind = "configuration"

    def __init__(self, message: str, config_key: Optional[str] = None) -> None:
        super().__init__(message)
        self.config_key = config_key


class InputError(ScrapeError):
    """Identifier input stream could not be read."""

    kind = "input"
