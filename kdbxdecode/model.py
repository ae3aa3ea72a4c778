"""
Value types shared by the decode pipeline: header boundary fields, hashed
block frames, flags and the decoded content tree.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Mapping, Optional, Union
from xml.etree.ElementTree import Element, tostring

from .errors import UnsupportedCompressionFlag


class CompressionFlag(enum.IntEnum):
    NONE = 0
    GZIP = 1

    @classmethod
    def coerce(cls, value: Any) -> "CompressionFlag":
        """Accept the enum, its integer value, a name or the raw 4-byte header field."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            raw = bytes(value)
            if len(raw) != 4:
                raise UnsupportedCompressionFlag(raw)
            value = int.from_bytes(raw, "little")
        if isinstance(value, bool):
            raise UnsupportedCompressionFlag(value)
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise UnsupportedCompressionFlag(value) from None
        if isinstance(value, str):
            name = value.strip().lower()
            if name in ("none", "0", ""):
                return cls.NONE
            if name in ("gzip", "gz", "1"):
                return cls.GZIP
        raise UnsupportedCompressionFlag(value)


class FramingPolicy(enum.Enum):
    """Whether the decrypted body carries hashed-block framing."""

    ALWAYS_FRAMED = "always"
    FRAMED_WHEN_COMPRESSED = "when-compressed"

    @classmethod
    def coerce(cls, value: Union["FramingPolicy", str]) -> "FramingPolicy":
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower().replace("_", "-")
        aliases = {
            "always": cls.ALWAYS_FRAMED,
            "always-framed": cls.ALWAYS_FRAMED,
            "when-compressed": cls.FRAMED_WHEN_COMPRESSED,
            "framed-when-compressed": cls.FRAMED_WHEN_COMPRESSED,
            "compressed": cls.FRAMED_WHEN_COMPRESSED,
        }
        try:
            return aliases[name]
        except KeyError:
            raise ValueError(f"Unknown framing policy: {value!r}") from None

    def applies_to(self, flag: CompressionFlag) -> bool:
        if self is FramingPolicy.ALWAYS_FRAMED:
            return True
        return flag is CompressionFlag.GZIP


@dataclass(frozen=True)
class HeaderFields:
    """The header values the body decoder needs; parsed elsewhere."""

    encryption_iv: bytes
    stream_start_bytes: bytes
    compression_flag: CompressionFlag = CompressionFlag.NONE

    def __post_init__(self) -> None:
        object.__setattr__(self, "encryption_iv", bytes(self.encryption_iv))
        object.__setattr__(self, "stream_start_bytes", bytes(self.stream_start_bytes))
        object.__setattr__(self, "compression_flag", CompressionFlag.coerce(self.compression_flag))

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "HeaderFields":
        flag = record.get("compression_flags", record.get("compression_flag", CompressionFlag.NONE))
        return cls(
            encryption_iv=record["encryption_iv"],
            stream_start_bytes=record["stream_start_bytes"],
            compression_flag=flag,
        )


@dataclass(frozen=True)
class HashedBlock:
    index: int
    hash: bytes
    data: bytes = field(repr=False)

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def is_terminator(self) -> bool:
        return not self.data


@dataclass
class DecodedContent:
    """
    Parsed XML tree of a database body.

    Only structure is checked. The helpers below are conveniences over the
    usual KeePass layout and return None when an element is absent.
    """

    root: Element

    @property
    def tag(self) -> str:
        return self.root.tag

    @property
    def meta(self) -> Optional[Element]:
        return self.root.find("Meta")

    @property
    def root_group(self) -> Optional[Element]:
        return self.root.find("Root/Group")

    @property
    def generator(self) -> Optional[str]:
        return self._meta_text("Generator")

    @property
    def database_name(self) -> Optional[str]:
        return self._meta_text("DatabaseName")

    def _meta_text(self, name: str) -> Optional[str]:
        meta = self.meta
        if meta is None:
            return None
        node = meta.find(name)
        return node.text if node is not None else None

    def find(self, path: str) -> Optional[Element]:
        return self.root.find(path)

    def findall(self, path: str) -> List[Element]:
        return self.root.findall(path)

    def iter(self, tag: Optional[str] = None) -> Iterator[Element]:
        return self.root.iter(tag)

    def to_bytes(self) -> bytes:
        return tostring(self.root, encoding="utf-8")


__all__ = [
    "CompressionFlag",
    "DecodedContent",
    "FramingPolicy",
    "HashedBlock",
    "HeaderFields",
]
