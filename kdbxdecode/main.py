# KDBX BODY DECODER ->

import os as _os_module
import sys as _sys_module

from .errors import (
    BlockHashMismatch,
    DecompressionError,
    InputTooLarge,
    IntegrityCheckFailed,
    InvalidBlockAlignment,
    InvalidIVLength,
    InvalidKeyLength,
    KdbxDecodeError,
    MalformedContent,
    TruncatedFrame,
)
from .model import CompressionFlag, DecodedContent, FramingPolicy, HashedBlock, HeaderFields


class kdbxdecode:
    import gzip
    import hashlib
    import io
    import struct
    import typing
    import zlib
    from cryptography.hazmat.primitives import constant_time, padding
    from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
    from defusedxml import DefusedXmlException
    from defusedxml import ElementTree as DefusedET

    @staticmethod
    def _env_int(name: str) -> "kdbxdecode.typing.Optional[int]":
        value = _os_module.getenv(name)
        if not value:
            return None
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return None
        if parsed <= 0:
            return None
        return parsed

    ENGINE_VERSION = "1.0.0"
    AES_KEY_LEN = 32
    AES_BLOCK_SIZE = 16
    # index (u32 LE) | sha256 | length (u32 LE)
    _BLOCK_HEADER = struct.Struct("<I32sI")
    BLOCK_HEADER_LEN = _BLOCK_HEADER.size
    READ_CHUNK_SIZE = 1 << 20
    MAX_INPUT_BYTES = 512 * 1024 * 1024
    MAX_INFLATED_BYTES = 1024 * 1024 * 1024
    _MAX_INPUT_ENV = _env_int("KDBXDECODE_MAX_INPUT_BYTES")
    if _MAX_INPUT_ENV is not None:
        MAX_INPUT_BYTES = _MAX_INPUT_ENV
    _MAX_INFLATED_ENV = _env_int("KDBXDECODE_MAX_INFLATED_BYTES")
    if _MAX_INFLATED_ENV is not None:
        MAX_INFLATED_BYTES = _MAX_INFLATED_ENV
    try:
        FRAMING_POLICY = FramingPolicy.coerce(_os_module.getenv("KDBXDECODE_FRAMING", "always"))
    except ValueError:
        FRAMING_POLICY = FramingPolicy.ALWAYS_FRAMED
    REQUIRE_TERMINATOR = _os_module.getenv("KDBXDECODE_LENIENT_TERMINATOR", "0") != "1"

    # ---------- Block decryptor ------------------------------------------

    @staticmethod
    def decrypt_body(
        body: bytes,
        master_key: bytes,
        iv: bytes
    ) -> bytes:
        """AES-256-CBC decrypt the whole body; output length equals input length."""
        if not isinstance(body, (bytes, bytearray, memoryview)):
            raise TypeError("decrypt_body expects bytes")
        key = bytes(master_key)
        if len(key) != kdbxdecode.AES_KEY_LEN:
            raise InvalidKeyLength(len(key), kdbxdecode.AES_KEY_LEN)
        block_size = kdbxdecode.AES_BLOCK_SIZE
        if len(body) == 0 or len(body) % block_size:
            raise InvalidBlockAlignment(len(body), block_size)
        iv_bytes = bytes(iv)
        if len(iv_bytes) != block_size:
            raise InvalidIVLength(len(iv_bytes), block_size)
        decryptor = kdbxdecode.Cipher(
            kdbxdecode.algorithms.AES(key),
            kdbxdecode.modes.CBC(iv_bytes)
        ).decryptor()
        return decryptor.update(bytes(body)) + decryptor.finalize()

    @staticmethod
    def _strip_block_padding(plaintext: bytes) -> bytes:
        # Bodies are PKCS#7 padded; anything else is left untouched.
        unpadder = kdbxdecode.padding.PKCS7(kdbxdecode.AES_BLOCK_SIZE * 8).unpadder()
        try:
            return unpadder.update(plaintext) + unpadder.finalize()
        except ValueError:
            return plaintext

    # ---------- Integrity prefix check -----------------------------------

    @staticmethod
    def verify_prefix(plaintext: bytes, expected_prefix: bytes) -> bytes:
        prefix = bytes(expected_prefix)
        if not prefix:
            raise IntegrityCheckFailed("Stream start bytes missing from header")
        head = bytes(plaintext[:len(prefix)])
        # bytes_eq needs equal lengths, so a short plaintext fails before comparing
        if len(head) != len(prefix) or not kdbxdecode.constant_time.bytes_eq(head, prefix):
            raise IntegrityCheckFailed()
        return bytes(plaintext[len(prefix):])

    # ---------- Hashed block reframer ------------------------------------

    @staticmethod
    def _scan_block_layout(
        view: memoryview,
        require_terminator: bool
    ) -> "kdbxdecode.typing.Iterator[kdbxdecode.typing.Tuple[int, bytes, int, int]]":
        """Yield (index, hash, data_offset, length) per frame, terminator included."""
        header = kdbxdecode._BLOCK_HEADER
        total = len(view)
        offset = 0
        while offset < total:
            if total - offset < header.size:
                raise TruncatedFrame(
                    f"Hashed block header needs {header.size} bytes, {total - offset} remain",
                    offset
                )
            index, block_hash, length = header.unpack_from(view, offset)
            offset += header.size
            if length > total - offset:
                raise TruncatedFrame(
                    f"Block {index} declares {length} bytes but only {total - offset} remain",
                    offset
                )
            yield index, block_hash, offset, length
            if length == 0:
                return
            offset += length
        if require_terminator:
            raise TruncatedFrame("Hashed block stream ended without a terminating block", offset)

    @staticmethod
    def iter_hashed_blocks(
        framed: bytes,
        *,
        require_terminator: "kdbxdecode.typing.Optional[bool]" = None
    ) -> "kdbxdecode.typing.Iterator[HashedBlock]":
        """Walk frames in stream order without checking hashes."""
        if require_terminator is None:
            require_terminator = kdbxdecode.REQUIRE_TERMINATOR
        view = memoryview(framed)
        for index, block_hash, start, length in kdbxdecode._scan_block_layout(view, require_terminator):
            yield HashedBlock(index=index, hash=block_hash, data=bytes(view[start:start + length]))

    @staticmethod
    def reframe(
        framed: bytes,
        *,
        require_terminator: "kdbxdecode.typing.Optional[bool]" = None
    ) -> bytes:
        """
        Verify and strip hashed-block framing.

        The layout is scanned first so every declared length is checked against
        the remaining input and the output buffer is allocated once. Blocks are
        then hashed in stream order; the first mismatch aborts.
        """
        if require_terminator is None:
            require_terminator = kdbxdecode.REQUIRE_TERMINATOR
        view = memoryview(framed)
        layout = [
            entry for entry in kdbxdecode._scan_block_layout(view, require_terminator)
            if entry[3]
        ]
        out = bytearray(sum(entry[3] for entry in layout))
        pos = 0
        for index, block_hash, start, length in layout:
            chunk = view[start:start + length]
            digest = kdbxdecode.hashlib.sha256(chunk).digest()
            if not kdbxdecode.constant_time.bytes_eq(digest, block_hash):
                raise BlockHashMismatch(index)
            out[pos:pos + length] = chunk
            pos += length
        return bytes(out)

    # ---------- Decompression --------------------------------------------

    @staticmethod
    def maybe_decompress(
        payload: bytes,
        flag: "kdbxdecode.typing.Any",
        *,
        max_inflated_bytes: "kdbxdecode.typing.Optional[int]" = None
    ) -> bytes:
        flag = CompressionFlag.coerce(flag)
        if flag is CompressionFlag.NONE:
            return bytes(payload)
        if not payload:
            raise DecompressionError("Compressed payload is empty")
        limit = max_inflated_bytes or kdbxdecode.MAX_INFLATED_BYTES
        try:
            with kdbxdecode.gzip.GzipFile(fileobj=kdbxdecode.io.BytesIO(payload), mode="rb") as reader:
                inflated = reader.read(limit + 1)
        except (OSError, EOFError, kdbxdecode.zlib.error) as exc:
            raise DecompressionError(f"Malformed gzip payload: {exc}") from exc
        if len(inflated) > limit:
            raise DecompressionError(f"Decompressed payload exceeds {limit} bytes")
        return inflated

    # ---------- Content decoder ------------------------------------------

    @staticmethod
    def decode_content(data: bytes) -> DecodedContent:
        try:
            root = kdbxdecode.DefusedET.fromstring(bytes(data))
        except kdbxdecode.DefusedET.ParseError as exc:
            raise MalformedContent(f"Malformed XML content: {exc}") from exc
        except kdbxdecode.DefusedXmlException as exc:
            raise MalformedContent(f"Forbidden XML construct: {exc!r}") from exc
        except (LookupError, ValueError) as exc:
            # expat raises these for unknown or undecodable declared encodings
            raise MalformedContent(f"Undecodable XML content: {exc}") from exc
        return DecodedContent(root=root)

    # ---------- Pipeline -------------------------------------------------

    @staticmethod
    def _coerce_header(
        header: "kdbxdecode.typing.Union[HeaderFields, kdbxdecode.typing.Mapping[str, kdbxdecode.typing.Any]]"
    ) -> HeaderFields:
        if isinstance(header, HeaderFields):
            return header
        return HeaderFields.from_mapping(header)

    @staticmethod
    def unpack_payload(
        body: bytes,
        master_key: bytes,
        header: "kdbxdecode.typing.Union[HeaderFields, kdbxdecode.typing.Mapping[str, kdbxdecode.typing.Any]]",
        *,
        framing: "kdbxdecode.typing.Union[FramingPolicy, str, None]" = None,
        require_terminator: "kdbxdecode.typing.Optional[bool]" = None,
        max_inflated_bytes: "kdbxdecode.typing.Optional[int]" = None
    ) -> bytes:
        """Run every stage except the content decoder and return the payload bytes."""
        fields = kdbxdecode._coerce_header(header)
        policy = FramingPolicy.coerce(framing if framing is not None else kdbxdecode.FRAMING_POLICY)
        plaintext = kdbxdecode.decrypt_body(body, master_key, fields.encryption_iv)
        remainder = kdbxdecode.verify_prefix(
            kdbxdecode._strip_block_padding(plaintext),
            fields.stream_start_bytes
        )
        del plaintext
        if policy.applies_to(fields.compression_flag):
            remainder = kdbxdecode.reframe(remainder, require_terminator=require_terminator)
        return kdbxdecode.maybe_decompress(
            remainder,
            fields.compression_flag,
            max_inflated_bytes=max_inflated_bytes
        )

    @staticmethod
    def decode_body(
        body: bytes,
        master_key: bytes,
        header: "kdbxdecode.typing.Union[HeaderFields, kdbxdecode.typing.Mapping[str, kdbxdecode.typing.Any]]",
        **options: "kdbxdecode.typing.Any"
    ) -> DecodedContent:
        payload = kdbxdecode.unpack_payload(body, master_key, header, **options)
        return kdbxdecode.decode_content(payload)

    @staticmethod
    def _read_all(source, max_bytes: "kdbxdecode.typing.Optional[int]" = None) -> bytes:
        limit = max_bytes or kdbxdecode.MAX_INPUT_BYTES
        buf = bytearray()
        while True:
            chunk = source.read(kdbxdecode.READ_CHUNK_SIZE)
            if not chunk:
                break
            buf += chunk
            if len(buf) > limit:
                raise InputTooLarge(len(buf), limit)
        return bytes(buf)

    @staticmethod
    def decode_stream(
        source,
        master_key: bytes,
        header: "kdbxdecode.typing.Union[HeaderFields, kdbxdecode.typing.Mapping[str, kdbxdecode.typing.Any]]",
        *,
        max_input_bytes: "kdbxdecode.typing.Optional[int]" = None,
        **options: "kdbxdecode.typing.Any"
    ) -> DecodedContent:
        """Read `source` to the end (it stays open) and decode what was read."""
        body = kdbxdecode._read_all(source, max_input_bytes)
        return kdbxdecode.decode_body(body, master_key, header, **options)


def _load_secret(value: str, expected_len: int, label: str) -> bytes:
    """Hex string, or a path to a file holding raw bytes or hex text."""
    if _os_module.path.isfile(value):
        with open(value, "rb") as handle:
            raw = handle.read()
        if len(raw) == expected_len:
            return raw
        try:
            return bytes.fromhex(raw.decode("ascii").strip())
        except (UnicodeDecodeError, ValueError):
            raise ValueError(f"{label} file must hold {expected_len} raw bytes or hex text") from None
    try:
        return bytes.fromhex(value.strip())
    except ValueError:
        raise ValueError(f"{label} is neither a file nor hex text") from None


def _emit(data: bytes, output: "kdbxdecode.typing.Optional[str]") -> None:
    if output:
        with open(output, "wb") as handle:
            handle.write(data)
        print(f"{output}: {len(data)} bytes written")
        return
    stream = getattr(_sys_module.stdout, "buffer", None)
    if stream is None:
        print(data.decode("utf-8", errors="replace"))
        return
    _sys_module.stdout.flush()
    stream.write(data)
    stream.flush()


def cli(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(prog="kdbxdecode", description="KDBX body decoder")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub):
        sub.add_argument("body", help="File holding the encrypted body (or the whole database with --offset)")
        sub.add_argument("--key", required=True, help="Master key as hex text or a path to a key file")
        sub.add_argument("--iv", required=True, help="Encryption IV from the header, hex")
        sub.add_argument("--start-bytes", required=True, help="Stream start bytes from the header, hex")
        sub.add_argument(
            "--offset",
            type=int,
            default=0,
            help="Skip this many bytes (signature and header) before the body"
        )
        sub.add_argument(
            "--compression",
            choices=("none", "gzip"),
            default="none",
            help="Compression flag from the header"
        )
        sub.add_argument(
            "--framing",
            choices=("always", "when-compressed"),
            default=None,
            help="Whether the body uses hashed-block framing (default: KDBXDECODE_FRAMING or always)"
        )
        sub.add_argument(
            "--lenient-terminator",
            dest="require_terminator",
            action="store_false",
            default=None,
            help="Accept a hashed block stream that ends without a terminating block"
        )
        sub.add_argument("--verbose", action="store_true", help="Report stage sizes on stderr")

    opened = subparsers.add_parser("open", help="Decrypt and decode a database body")
    add_common(opened)
    opened.add_argument("--raw", action="store_true", help="Write the payload without parsing it as XML")
    opened.add_argument("-o", "--output", default=None, help="Write output to a file instead of stdout")

    blocks = subparsers.add_parser("blocks", help="List the hashed blocks of a database body")
    add_common(blocks)

    args = parser.parse_args(argv)

    try:
        master_key = _load_secret(args.key, kdbxdecode.AES_KEY_LEN, "Master key")
        iv = bytes.fromhex(args.iv)
        start_bytes = bytes.fromhex(args.start_bytes)
    except ValueError as exc:
        parser.error(str(exc))
    if args.offset < 0:
        parser.error("--offset must not be negative")
    header = HeaderFields(
        encryption_iv=iv,
        stream_start_bytes=start_bytes,
        compression_flag=args.compression
    )

    def note(message: str) -> None:
        if args.verbose:
            print(message, file=_sys_module.stderr)

    try:
        with open(args.body, "rb") as handle:
            handle.seek(args.offset)
            body = kdbxdecode._read_all(handle)
        note(f"encrypted body: {len(body)} bytes")

        plaintext = kdbxdecode.decrypt_body(body, master_key, header.encryption_iv)
        note(f"decrypted: {len(plaintext)} bytes")
        remainder = kdbxdecode.verify_prefix(
            kdbxdecode._strip_block_padding(plaintext),
            header.stream_start_bytes
        )
        del plaintext
        note(f"after stream start bytes: {len(remainder)} bytes")

        if args.command == "blocks":
            failures = 0
            for block in kdbxdecode.iter_hashed_blocks(remainder, require_terminator=args.require_terminator):
                if block.is_terminator:
                    print(f"block {block.index}: terminator")
                    continue
                ok = kdbxdecode.constant_time.bytes_eq(
                    kdbxdecode.hashlib.sha256(block.data).digest(),
                    block.hash
                )
                if not ok:
                    failures += 1
                print(f"block {block.index}: {block.length} bytes {'OK' if ok else 'HASH MISMATCH'}")
            return 0 if failures == 0 else 1

        policy = FramingPolicy.coerce(args.framing or kdbxdecode.FRAMING_POLICY)
        if policy.applies_to(header.compression_flag):
            if args.verbose:
                for block in kdbxdecode.iter_hashed_blocks(remainder, require_terminator=args.require_terminator):
                    size = "terminator" if block.is_terminator else f"{block.length} bytes"
                    note(f"  block {block.index}: {size}")
            remainder = kdbxdecode.reframe(remainder, require_terminator=args.require_terminator)
            note(f"reframed: {len(remainder)} bytes")
        payload = kdbxdecode.maybe_decompress(remainder, header.compression_flag)
        note(f"payload: {len(payload)} bytes")
        if args.raw:
            _emit(payload, args.output)
            return 0
        content = kdbxdecode.decode_content(payload)
        note(f"root element: <{content.tag}>")
        _emit(content.to_bytes(), args.output)
        return 0
    except KdbxDecodeError as exc:
        print(f"FAIL! {exc}")
        return 1
    except OSError as exc:
        print(f"FAIL! {exc}")
        return 1


def main(argv=None) -> int:
    return cli(argv)


if __name__ == "__main__":
    raise SystemExit(main())
