"""
Custom exceptions for the achievements engine.

Provides specific exception types so callers can tell an unreadable game
image from a bad server response or a rejected trigger, instead of
catching generic Exception everywhere.
"""


class CheevosError(Exception):
    """Base exception for the achievements engine."""
    pass


class IdentityError(CheevosError):
    """
    Raised when the running game cannot be identified.

    Typically the executable could not be read from the disc image, or
    its path does not contain a usable name. Non-fatal: achievements
    simply stay inactive for that boot.
    """
    pass


class ProtocolError(CheevosError):
    """
    Raised when a server response is unsuccessful or malformed.

    Non-200 status, empty body, invalid JSON, or a document whose
    success field is missing or false.
    """

    def __init__(self, request_type: str, message: str, body: bytes = b""):
        super().__init__(f"{request_type} failed: {message}")
        self.request_type = request_type
        self.body = body


class EngineError(CheevosError):
    """
    Raised when the evaluation runtime rejects an expression or a
    serialized progress buffer.
    """

    def __init__(self, message: str, code: int = -1):
        super().__init__(message)
        self.code = code


class ConfigError(CheevosError):
    """Missing or invalid configuration, e.g. empty credentials on login."""
    pass
