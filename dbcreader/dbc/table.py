"""DBC table reader: header parsing, record access, and string lookups."""
from __future__ import annotations

import logging
import struct
import threading
from pathlib import Path
from typing import Iterator, Optional

from dbcreader.dbc.constants import FIELD_SIZE, HEADER_SIZE, MAGIC
from dbcreader.dbc.errors import InvalidTable
from dbcreader.dbc.record import Record
from dbcreader.dbc.schema import Schema
from dbcreader.dbc.strings import StringBlock

logger = logging.getLogger(__name__)

_HEADER = struct.Struct("<4sIIII")   # magic(4) + records(4) + fields(4) + record_size(4) + string_block_size(4)


class DBCTable:
    """An open DBC file.

    The file handle stays open for the lifetime of the table; records are
    read from it on demand. The string block is loaded once on open.
    """

    header_size = HEADER_SIZE

    def __init__(self, path: Path, schema: Optional[Schema] = None):
        self.path = Path(path)
        self.lock = threading.Lock()
        self._schema: Optional[Schema] = None
        self.handle = open(self.path, "rb")
        try:
            self._parse_header()
        except BaseException:
            self.handle.close()
            raise
        if schema is not None:
            self.attach(schema)

    def _parse_header(self):
        header = self.handle.read(_HEADER.size)
        if len(header) < _HEADER.size:
            raise InvalidTable(f"Not a DBC file: {self.path} is only {len(header)} bytes")

        magic, record_count, field_count, record_size, string_block_size = _HEADER.unpack(header)
        if magic != MAGIC:
            raise InvalidTable(f"Not a DBC file: bad magic {magic!r} in {self.path}")

        expected = HEADER_SIZE + record_count * record_size + string_block_size
        file_size = self.path.stat().st_size
        if file_size < expected:
            raise InvalidTable(
                f"{self.path}: header describes {expected} bytes "
                f"({record_count} x {record_size} + {string_block_size} strings) but file has {file_size}"
            )

        self.record_count = record_count
        self.field_count = field_count
        self.record_size = record_size
        self.string_block_size = string_block_size

        if record_size != field_count * FIELD_SIZE:
            # Packed byte fields; raw arrays still step in 4-byte units
            logger.debug("%s: record size %d is not %d fields x %d bytes",
                         self.path.name, record_size, field_count, FIELD_SIZE)

        self.handle.seek(HEADER_SIZE + record_count * record_size)
        self.strings = StringBlock(self.handle.read(string_block_size))

        logger.debug("Opened %s: %d records, %d fields, %d bytes/record, %d bytes of strings",
                     self.path.name, record_count, field_count, record_size, string_block_size)

    # -- Lifecycle --

    def close(self):
        self.handle.close()

    @property
    def closed(self) -> bool:
        return self.handle.closed

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def __repr__(self) -> str:
        return f"<DBCTable {self.path.name}: {self.record_count} records x {self.field_count} fields>"

    # -- Schema --

    @property
    def schema(self) -> Optional[Schema]:
        return self._schema

    @schema.setter
    def schema(self, schema: Optional[Schema]):
        if schema is None:
            self._schema = None
        else:
            self.attach(schema)

    def attach(self, schema: Schema):
        """Attach a default schema used by record extraction and name lookups."""
        if schema.size > self.record_size:
            logger.warning("%s: schema needs %d bytes per record but records are %d bytes",
                           self.path.name, schema.size, self.record_size)
        elif schema.size < self.record_size:
            logger.debug("%s: schema covers %d of %d bytes per record",
                         self.path.name, schema.size, self.record_size)
        self._schema = schema

    # -- Records --

    def __len__(self) -> int:
        return self.record_count

    def record(self, position: int) -> Record:
        """Return the record at a zero-based position (negative counts from the end)."""
        if position < 0:
            position += self.record_count
        return Record(self, position)

    __getitem__ = record

    def records(self) -> Iterator[Record]:
        """Iterate all records in file order."""
        for position in range(self.record_count):
            yield Record(self, position)

    __iter__ = records

    def find(self, record_id: int) -> Optional[Record]:
        """Find the first record whose identifier (field 0) equals record_id."""
        for record in self.records():
            if record.id == record_id:
                return record
        return None

    # -- Strings --

    def get_string(self, offset: int) -> Optional[str]:
        """Return the string at a byte offset into the string block."""
        return self.strings.lookup(offset)
