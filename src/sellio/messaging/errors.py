"""Errors raised while reading platform payloads."""


class NormalizationError(Exception):
    """Raised when a platform payload or event has an invalid shape."""

    pass


class SignatureVerificationError(Exception):
    """Raised when the X-Hub-Signature-256 check fails."""

    pass
