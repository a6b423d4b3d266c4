"""Exceptions raised by the backend clients."""


class RemoteError(RuntimeError):
    """A backend answered with a non-2xx status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status} {message}".strip())
        self.status = status
        self.message = message
