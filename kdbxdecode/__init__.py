"""
KDBXDECODE - decrypt and decode the body of a KDBX password database

The signature and header are parsed elsewhere, and the master key is derived
elsewhere. This package takes the encrypted body from there: AES-CBC
decryption, the stream-start-bytes check, hashed-block verification, gzip
inflation and XML parsing.
"""

from .main import kdbxdecode, cli, main
from .errors import *
from .model import CompressionFlag, DecodedContent, FramingPolicy, HashedBlock, HeaderFields
from .api_decode import (
    decode_content,
    decrypt_body,
    iter_hashed_blocks,
    maybe_decompress,
    reframe,
    verify_prefix,
)


def unpack_payload(body: bytes, master_key: bytes, header, **options):
    """
    Decrypt, verify and unframe a body, stopping before XML parsing.

    Args:
        body: Encrypted body (everything after the header)
        master_key: 32-byte master key
        header: HeaderFields or a mapping with encryption_iv,
            stream_start_bytes and compression_flags
        **options: framing, require_terminator, max_inflated_bytes

    Returns:
        The decompressed payload bytes

    Raises:
        KdbxDecodeError: the first stage that fails, e.g.
            IntegrityCheckFailed for a wrong key
    """
    return kdbxdecode.unpack_payload(body, master_key, header, **options)


def decode_body(body: bytes, master_key: bytes, header, **options):
    """
    Full pipeline on an in-memory body.

    Returns:
        DecodedContent wrapping the XML root element

    Note:
        - No partial content is returned on failure
        - Signature/header parsing and key derivation are the caller's job
    """
    return kdbxdecode.decode_body(body, master_key, header, **options)


def decode_stream(source, master_key: bytes, header, max_input_bytes: int | None = None, **options):
    """
    Read a binary reader positioned after the header and decode it.

    The reader is consumed to EOF but not closed. Reads are capped at
    `max_input_bytes` (default KDBXDECODE_MAX_INPUT_BYTES or 512 MiB).
    """
    return kdbxdecode.decode_stream(source, master_key, header, max_input_bytes=max_input_bytes, **options)


from .version import __version__
