#!/usr/bin/env python3
"""Quick decode benchmark - direct timing of the full pipeline"""
import gzip
import hashlib
import struct
import time

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


KEY = hashlib.sha256(b"bench").digest()
IV = b"\x24" * 16
START_BYTES = b"\x5a" * 32
ENTRY = b"<Entry><String><Key>Title</Key><Value>site</Value></String></Entry>"
XML = b"<KeePassFile><Root><Group>" + ENTRY * 5000 + b"</Group></Root></KeePassFile>"
BLOCK_SIZE = 1024 * 1024


def build_body(compress: bool) -> bytes:
    payload = gzip.compress(XML) if compress else XML
    framed = bytearray()
    index = 0
    for start in range(0, len(payload), BLOCK_SIZE):
        chunk = payload[start:start + BLOCK_SIZE]
        framed += struct.pack("<I", index) + hashlib.sha256(chunk).digest() + struct.pack("<I", len(chunk)) + chunk
        index += 1
    framed += struct.pack("<I", index) + b"\x00" * 32 + struct.pack("<I", 0)
    padder = padding.PKCS7(128).padder()
    padded = padder.update(START_BYTES + bytes(framed)) + padder.finalize()
    encryptor = Cipher(algorithms.AES(KEY), modes.CBC(IV)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def bench(compress: bool, rounds: int = 200):
    from kdbxdecode import CompressionFlag, HeaderFields, decode_body

    body = build_body(compress)
    header = HeaderFields(IV, START_BYTES, CompressionFlag.GZIP if compress else CompressionFlag.NONE)
    start = time.perf_counter()
    for _ in range(rounds):
        content = decode_body(body, KEY, header)
    elapsed = time.perf_counter() - start
    return elapsed, len(body), content


def main():
    rounds = 200
    print(f"Benchmarking full decode ({rounds} iterations)...")
    print(f"XML size: {len(XML)} bytes\n")
    for compress in (False, True):
        label = "gzip" if compress else "none"
        elapsed, size, content = bench(compress, rounds)
        print(f"compression={label}")
        print(f"  Body: {size} bytes")
        print(f"  Time: {elapsed:.3f}s ({elapsed / rounds * 1000:.2f} ms/op)")
        print(f"  Entries: {len(content.findall('Root/Group/Entry'))}")

    print("\n✅ Decode benchmark complete")


if __name__ == '__main__':
    main()
