"""String block lookup for DBC tables.

The string block trails the record array. Records reference strings by
byte offset into the block; every string is null-terminated and the block
conventionally starts with an empty string so that offset 0 means "".
"""
from __future__ import annotations

from typing import Iterator, Optional


class StringBlock:
    """Lookup table over the raw bytes of a string block."""

    def __init__(self, data: bytes):
        self.data = data

    def __len__(self) -> int:
        return len(self.data)

    def lookup(self, offset: int) -> Optional[str]:
        """Return the null-terminated string starting at offset, or None if outside the block."""
        if offset < 0 or offset >= len(self.data):
            return None
        end = self.data.find(b"\x00", offset)
        if end == -1:
            end = len(self.data)
        return self.data[offset:end].decode("utf-8", errors="replace")

    def is_string_start(self, offset: int) -> bool:
        """True if offset points at the first byte of a string."""
        if offset <= 0 or offset >= len(self.data):
            return offset == 0 and len(self.data) > 0
        return self.data[offset - 1] == 0

    def offsets(self) -> Iterator[int]:
        """Iterate the start offset of every string in the block."""
        data_len = len(self.data)
        pos = 0
        while pos < data_len:
            yield pos
            end = self.data.find(b"\x00", pos)
            if end == -1:
                break
            pos = end + 1

    def search(self, query: str) -> list[tuple[int, str]]:
        """Search strings by substring (case-insensitive)."""
        query_lower = query.lower()
        results = []
        for offset in self.offsets():
            text = self.lookup(offset)
            if text and query_lower in text.lower():
                results.append((offset, text))
        return results

    @property
    def count(self) -> int:
        return sum(1 for _ in self.offsets())
