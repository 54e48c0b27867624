"""Authentication error taxonomy.

Learn: Each class maps to exactly one client-facing outcome in
promptdex.api.errors. Messages on these exceptions are safe to show to
the client; anything that is not an AuthError is treated as an internal
failure and only ever surfaces as a generic 500.
"""


class AuthError(Exception):
    """Base class for all identity-core errors."""

    default_message = "Authentication failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class CredentialError(AuthError):
    """Bad username/password. Never says which one was wrong."""

    default_message = "Invalid username or password"


class RegistrationConflict(AuthError):
    """Username or email already taken."""

    default_message = "Account already exists"


class ProcessingError(AuthError):
    """Provider profile is missing attributes we cannot do without."""

    default_message = "Could not complete sign-in with this provider"


class ProviderError(AuthError):
    """Provider unreachable or answered with something unusable."""

    default_message = "Identity provider unavailable"


class TokenError(AuthError):
    """Expired, malformed or mis-signed bearer token."""

    default_message = "Authentication required"


class AuthenticationRequired(TokenError):
    """No usable credentials on a route that needs them."""


class AccessDenied(AuthError):
    """Authenticated, but not allowed (role or ownership)."""

    default_message = "Access denied"


class ProvisioningError(Exception):
    """Username allocation gave up. Not an AuthError — surfaces as a 500."""
