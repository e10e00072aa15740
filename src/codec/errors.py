"""
Codec Exceptions

Callers branch on these: a TruncatedRecordError or InvalidEncodingError
means the bytes are bad whatever tier reads them, an
UnknownDiscriminatorError means another tier may still succeed.
"""


class CodecError(Exception):
    """Base exception for record encoding and decoding."""
    pass


class TruncatedRecordError(CodecError):
    """The buffer ends before a field is fully read."""
    pass


class InvalidEncodingError(CodecError):
    """The bytes are present but do not form a valid value."""
    pass


class UnknownDiscriminatorError(CodecError):
    """The leading 8 bytes do not identify the expected record kind."""

    def __init__(self, expected: str, found: bytes, message: str):
        self.expected = expected
        self.found = found
        super().__init__(message)
