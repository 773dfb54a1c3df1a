"""Domain-level exceptions for the finalization workflow."""


class ServiceError(Exception):
    """Raised when an external service fails (network, auth, timeout, rejection, etc.).

    Service errors are step-local: the orchestrator records them on the state
    and waits for the user to retry or cancel forward.
    """

    def __init__(self, message: str, *, service: str | None = None, retryable: bool = True) -> None:
        super().__init__(message)
        self.message = message
        self.service = service
        self.retryable = retryable

    def __str__(self) -> str:
        if self.service is None:
            return self.message
        return f"{self.service}: {self.message}"
