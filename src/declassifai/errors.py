"""Error types raised by the registration and verification flows."""


class FingerprintReadError(OSError):
    """Raised when the bytes of a selected file cannot be read."""


class NotAuthenticatedError(RuntimeError):
    """Raised when an authenticated call is attempted without a session."""


class RegistrationError(RuntimeError):
    """Base class for failures of a single registration phase."""

    phase = "registration"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return f"{self.phase} failed: {self.message}"
        return f"{self.phase} failed (HTTP {self.status_code}): {self.message}"


class PresignError(RegistrationError):
    """The registry refused to issue upload credentials."""

    phase = "presign"


class TransferError(RegistrationError):
    """Blob storage rejected the direct upload."""

    phase = "transfer"


class CommitError(RegistrationError):
    """The registry refused to finalize the record."""

    phase = "commit"


class VerificationError(RuntimeError):
    """Raised when no verification tier produced an answer."""


class AuthenticationError(RuntimeError):
    """Raised when the identity provider rejects a sign-in or sign-up."""
