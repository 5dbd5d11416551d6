from typing import Optional


class ExtractionError(Exception):
    retryable = False

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def user_message(self) -> str:
        return f"Error loading data: {self.message}"


class NetworkError(ExtractionError):
    """Non-2xx status, timeout or transport failure. Safe to retry."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message, detail=url)
        self.status_code = status_code
        self.url = url


class MalformedResponseError(ExtractionError):
    pass


class NoMatchingDataError(ExtractionError):
    def __init__(self, message: str, cutoff_year: Optional[int] = None) -> None:
        super().__init__(message)
        self.cutoff_year = cutoff_year


class ConfigurationError(ExtractionError):
    def user_message(self) -> str:
        return f"Configuration error: {self.message}"
