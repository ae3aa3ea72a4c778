"""Stage-level convenience wrappers."""

from .main import kdbxdecode


def decrypt_body(body: bytes, master_key: bytes, iv: bytes):
    return kdbxdecode.decrypt_body(body, master_key, iv)


def verify_prefix(plaintext: bytes, expected_prefix: bytes):
    return kdbxdecode.verify_prefix(plaintext, expected_prefix)


def iter_hashed_blocks(framed: bytes, require_terminator: bool | None = None):
    return kdbxdecode.iter_hashed_blocks(framed, require_terminator=require_terminator)


def reframe(framed: bytes, require_terminator: bool | None = None):
    return kdbxdecode.reframe(framed, require_terminator=require_terminator)


def maybe_decompress(payload: bytes, flag, max_inflated_bytes: int | None = None):
    return kdbxdecode.maybe_decompress(payload, flag, max_inflated_bytes=max_inflated_bytes)


def decode_content(data: bytes):
    return kdbxdecode.decode_content(data)


__all__ = [
    "decode_content",
    "decrypt_body",
    "iter_hashed_blocks",
    "maybe_decompress",
    "reframe",
    "verify_prefix",
]
