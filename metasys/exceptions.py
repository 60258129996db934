"""Metasys exceptions."""


class MetasysApiError(Exception):
    """Base exception for all Metasys API errors."""


class RequestError(MetasysApiError):
    """The API responded with an error status."""

    def __init__(self, message: str, error_code: int) -> None:
        """Initialize the RequestError."""
        super().__init__(message)
        self.error_code = error_code


class RequestConnectionError(MetasysApiError):
    """Failed to make the request to the API."""


class RequestTimeoutError(MetasysApiError):
    """Failed to get the results from the API in time."""


class RequestRetryError(MetasysApiError):
    """Retries too many times."""


class RequestDataError(MetasysApiError):
    """Data is not valid."""
