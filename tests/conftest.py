"""Fixtures that build small DBC files on disk."""
from __future__ import annotations

import struct
from pathlib import Path
from typing import Optional

import pytest

from dbcreader.dbc.constants import FIELD_SIZE, MAGIC

# Offset 0 is the empty string, 1 is "Frostbolt", 0x10 is "Fireball"
STRINGS = b"\x00Frostbolt\x00" + b"\x00" * 5 + b"Fireball\x00"
FROSTBOLT = 1
FIREBALL = 0x10


def pack_row(fmt: str, *values) -> bytes:
    return struct.pack("<" + fmt, *values)


def write_dbc(path: Path, rows: list[bytes], strings: bytes = STRINGS,
              record_size: Optional[int] = None, field_count: Optional[int] = None) -> Path:
    """Write a DBC file from already packed rows."""
    if record_size is None:
        record_size = len(rows[0]) if rows else 0
    if field_count is None:
        field_count = record_size // FIELD_SIZE
    header = struct.pack("<4sIIII", MAGIC, len(rows), field_count, record_size, len(strings))
    path.write_bytes(header + b"".join(rows) + strings)
    return path


@pytest.fixture
def make_dbc(tmp_path):
    """Factory writing a DBC file into tmp_path."""
    def _make(rows: list[bytes], name: str = "Spell.dbc", **kwargs) -> Path:
        return write_dbc(tmp_path / name, rows, **kwargs)
    return _make


@pytest.fixture
def spell_dbc(make_dbc):
    """Three 12-byte records: id, name offset, power."""
    return make_dbc([
        pack_row("IIf", 7, FIREBALL, 1.0),
        pack_row("IIf", 8, FROSTBOLT, 0.5),
        pack_row("IIf", 9, 0, -2.0),
    ])
