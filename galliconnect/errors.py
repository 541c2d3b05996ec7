class GalliconnectError(Exception):
    """Base class for errors surfaced to the person using the storefront."""


class AuthError(GalliconnectError):
    pass


class InvalidCredentials(AuthError):
    def __init__(self, message: str = 'Invalid credentials.') -> None:
        super().__init__(message)


class AccountNotFound(AuthError):
    def __init__(self, message: str = 'No account found with these credentials.') -> None:
        super().__init__(message)


class RegistrationRejected(AuthError):
    pass


class InvalidCode(AuthError):
    def __init__(self, message: str = 'Invalid code.') -> None:
        super().__init__(message)


class OtpExpired(InvalidCode):
    def __init__(self, message: str = 'Verification code expired. Sign in again to get a new one.') -> None:
        super().__init__(message)


class OtpLocked(InvalidCode):
    def __init__(self, message: str = 'Too many wrong codes. Sign in again to get a new one.') -> None:
        super().__init__(message)


class VerificationEnded(InvalidCode):
    def __init__(self, message: str = 'That verification has ended. Sign in again to get a new code.') -> None:
        super().__init__(message)


class BackendFailure(GalliconnectError):
    """A hosted-mode read or write failed."""

    def __init__(self, message: str = 'The marketplace backend is unavailable. Please try again.') -> None:
        super().__init__(message)


class CheckoutError(GalliconnectError):
    pass


class TransitionRejected(GalliconnectError):
    pass


class GeolocationUnavailable(GalliconnectError):
    """No usable coordinate fix; callers degrade instead of reporting it."""


class InvalidProduct(GalliconnectError):
    pass
