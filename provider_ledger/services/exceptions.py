class ServiceError(Exception):
    """Base exception for service layer failures."""

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class DownstreamServiceError(ServiceError):
    """Raised when the provider backend returns an error response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        detail: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.status_code = status_code
        self.detail = detail

    @property
    def user_message(self) -> str:
        """Structured server message when present, transport message otherwise."""
        return self.detail or str(self)
