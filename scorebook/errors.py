"""
Error types shared by the Scorebook services and routes.

Validation and credential errors carry a user-facing message. Anything that
goes wrong talking to the backend is a BackendError, which routes report with
a generic message after logging the cause.
"""


class ScorebookError(Exception):
    """Base class for errors surfaced to the user."""
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message}


class ValidationError(ScorebookError):
    """Missing field, out-of-range score, short passcode, taken id."""
    status_code = 400


class CredentialError(ScorebookError):
    """Wrong password / passcode. Never says which half was wrong."""
    status_code = 401


class NotFoundError(ScorebookError):
    """Unknown student or record."""
    status_code = 404


class BackendError(ScorebookError):
    """Identity or document store failure other than a bad credential."""
    status_code = 500


class IdentityError(Exception):
    """Raised by identity service clients."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class InvalidCredentialError(IdentityError):
    """Email/password pair rejected by the identity service."""

    def __init__(self, message="Invalid login credentials"):
        super().__init__(message, code="invalid_credentials")


class AccountNotFoundError(IdentityError):
    """No identity-service account exists for the address."""

    def __init__(self, message="User not found"):
        super().__init__(message, code="user_not_found")


class DocumentStoreError(Exception):
    """Raised by document store clients."""
