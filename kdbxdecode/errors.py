"""
Exception types raised by the KDBX body decoder.

Every failure of a decode call surfaces as exactly one of these. They all
derive from `ValueError` so callers that already guard decryption with
`except ValueError` keep working. Messages never carry key material or
decrypted bytes.
"""

from __future__ import annotations

from typing import Any, Optional


class KdbxDecodeError(ValueError):
    """Base class for every decode pipeline failure."""


class InvalidKeyLength(KdbxDecodeError):
    def __init__(self, actual: int, expected: int) -> None:
        super().__init__(f"Master key must be {expected} bytes, got {actual}")
        self.actual = actual
        self.expected = expected


class InvalidIVLength(KdbxDecodeError):
    def __init__(self, actual: int, expected: int) -> None:
        super().__init__(f"Encryption IV must be {expected} bytes, got {actual}")
        self.actual = actual
        self.expected = expected


class InvalidBlockAlignment(KdbxDecodeError):
    def __init__(self, length: int, block_size: int) -> None:
        super().__init__(
            f"Encrypted body length {length} is not a positive multiple of {block_size}"
        )
        self.length = length
        self.block_size = block_size


class IntegrityCheckFailed(KdbxDecodeError):
    """Stream start bytes did not match: wrong master key or corrupted database."""

    def __init__(self, message: str = "Database integrity check failed; wrong master key or corrupted file") -> None:
        super().__init__(message)


class BlockHashMismatch(KdbxDecodeError):
    def __init__(self, index: int) -> None:
        super().__init__(f"Hash mismatch. Database seems to be corrupt at block index {index}")
        self.index = index


class TruncatedFrame(KdbxDecodeError):
    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)
        self.offset = offset


class DecompressionError(KdbxDecodeError):
    pass


class UnsupportedCompressionFlag(KdbxDecodeError):
    def __init__(self, flag: Any) -> None:
        super().__init__(f"Unsupported compression flag: {flag!r}")
        self.flag = flag


class MalformedContent(KdbxDecodeError):
    pass


class InputTooLarge(KdbxDecodeError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Input of {size} bytes exceeds the {limit} byte limit")
        self.size = size
        self.limit = limit


__all__ = [
    "BlockHashMismatch",
    "DecompressionError",
    "InputTooLarge",
    "IntegrityCheckFailed",
    "InvalidBlockAlignment",
    "InvalidIVLength",
    "InvalidKeyLength",
    "KdbxDecodeError",
    "MalformedContent",
    "TruncatedFrame",
    "UnsupportedCompressionFlag",
]
