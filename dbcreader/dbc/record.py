"""A single DBC record and its typed field accessors."""
from __future__ import annotations

import pprint
import struct
from typing import TYPE_CHECKING, Optional, Union

from dbcreader.dbc.constants import FIELD_SIZE
from dbcreader.dbc.errors import NoSchemaAttached, SchemaOverflow, TruncatedRecord
from dbcreader.dbc.schema import FieldKind, Schema

if TYPE_CHECKING:
    from dbcreader.dbc.table import DBCTable

Scalar = Union[int, float, str, None]
Value = Union[Scalar, list[Scalar]]

# One field unit per kind; string kinds read the block offset
_UNIT = {kind: struct.Struct(f"<{kind.code}") for kind in FieldKind}


class Record:
    """The record found at a zero-based position in a table.

    Raw bytes are read once on construction. Accessors decode from that
    buffer and only call back into the table for its schema and strings.
    """

    __slots__ = ("table", "position", "offset", "data", "_id")

    def __init__(self, table: DBCTable, position: int):
        if not 0 <= position < table.record_count:
            raise IndexError(f"Record {position} out of range for {table.path.name} ({table.record_count} records)")
        self.table = table
        self.position = position
        self.offset = table.header_size + position * table.record_size

        size = table.record_size
        data = b""
        if size > 0:
            with table.lock:
                table.handle.seek(self.offset)
                data = table.handle.read(size)
            if len(data) != size:
                raise TruncatedRecord(
                    f"{table.path}: record {position} at offset {self.offset} "
                    f"has {len(data)} of {size} bytes"
                )
        self.data = data

        # Computed up front so records stay read-only once built
        self._id = self.get_uint(0)

    def __repr__(self) -> str:
        return f"<Record #{self.position} id={self._id} of {self.table.path.name}>"

    @property
    def id(self) -> Optional[int]:
        return self._id

    def get_id(self) -> Optional[int]:
        """Identifier of this record (field 0 as unsigned integer)."""
        return self._id

    def get_pos(self) -> int:
        return self.position

    def extract(self, schema: Optional[Schema] = None) -> Optional[dict[str, Value]]:
        """Decode all fields using the given schema or the table's default.

        Returns None when neither is available. Fields with a repeat count
        above one decode to lists; string fields are resolved through the
        string block.
        """
        if schema is None:
            schema = self.table.schema
        if schema is None:
            return None

        data_len = len(self.data)
        if schema.size > data_len:
            overflow = next(slot for slot in schema.slots if slot.end > data_len)
            raise SchemaOverflow(
                f"{self.table.path}: field '{overflow.name}' ends at byte {overflow.end} "
                f"but record {self.position} is {data_len} bytes (schema needs {schema.size})"
            )

        fields: dict[str, Value] = {}
        for slot in schema.slots:
            values = slot.unpack_from(self.data)
            if slot.rule.kind.is_string:
                values = tuple(self.table.get_string(v) for v in values)
            fields[slot.name] = values[0] if slot.rule.count == 1 else list(values)
        return fields

    def as_array(self) -> list[int]:
        """All field units of this record as unsigned integers, ignoring any schema."""
        count = len(self.data) // FIELD_SIZE
        return list(struct.unpack_from(f"<{count}I", self.data))

    def get(self, field: Union[int, str], kind: FieldKind = FieldKind.UINT) -> Scalar:
        """Read one field unit, addressed by index or by schema field name.

        Returns None if the field lies outside this record.
        """
        if isinstance(field, str):
            schema = self.table.schema
            if schema is None:
                raise NoSchemaAttached(
                    f'Addressing fields by name requires table "{self.table.path}" to have a schema attached'
                )
            field = schema.field_offset(field)

        offset = field * FIELD_SIZE
        if offset < 0 or offset + FIELD_SIZE > len(self.data):
            return None

        value = _UNIT[kind].unpack_from(self.data, offset)[0]
        if kind.is_string:
            return self.table.get_string(value)
        return value

    def get_uint(self, field: Union[int, str]) -> Optional[int]:
        return self.get(field, FieldKind.UINT)

    def get_int(self, field: Union[int, str]) -> Optional[int]:
        return self.get(field, FieldKind.INT)

    def get_float(self, field: Union[int, str]) -> Optional[float]:
        return self.get(field, FieldKind.FLOAT)

    def get_string(self, field: Union[int, str]) -> Optional[str]:
        return self.get(field, FieldKind.STRING)

    def dump(self, use_schema: bool = False) -> str:
        """Render fields for debugging, via the table's schema if asked and attached."""
        if use_schema and self.table.schema is not None:
            fields = self.extract()
        else:
            fields = self.as_array()
        return pprint.pformat(fields, sort_dicts=False)
