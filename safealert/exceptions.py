from fastapi import status


class FatalRequestError(Exception):
    """Rejects a panic request before any side effect happens."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Request rejected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NoContactsError(FatalRequestError):
    error = "No emergency contacts"

    def __init__(self, user_id: int):
        super().__init__("Add at least one active emergency contact before using panic mode.")
        self.user_id = user_id


class ProviderError(Exception):
    """A geo/vision provider call failed or the provider is not configured."""
