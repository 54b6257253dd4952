"""Field rules and schemas describing the byte layout of DBC records.

A schema is an ordered mapping of field name to rule. Fields are packed
back to back in declaration order, each one FIELD_SIZE bytes per repeat.
Localized string fields are followed by LOCALIZATION locale copies per
repeat, which are reserved in the layout but not decoded.

Schemas are stored as TOML:

    localization = 16

    [fields]
    id = "uint"
    name = "string_loc"
    flags = { type = "uint", count = 3 }
    legacy = 0x0103        # bit-encoded rule: UINT_MASK | count 3
"""
from __future__ import annotations

import logging
import math
import re
import struct
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional, Union

from dbcreader.dbc.constants import (
    COUNT_MASK,
    FIELD_SIZE,
    FLOAT_CODE,
    FLOAT_MASK,
    INT_CODE,
    INT_MASK,
    LOCALIZATION,
    STRING_LOC_MASK,
    STRING_MASK,
    UINT_CODE,
    UINT_MASK,
)
from dbcreader.dbc.errors import InvalidFieldRule, UnknownField

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

if TYPE_CHECKING:
    from dbcreader.dbc.table import DBCTable

logger = logging.getLogger(__name__)

_BARE_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class FieldKind(Enum):
    """How a field's 32-bit slots are interpreted."""
    UINT = "uint"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    STRING_LOC = "string_loc"

    @property
    def code(self) -> str:
        """struct format code for one slot of this kind."""
        return _STRUCT_CODES[self]

    @property
    def mask(self) -> int:
        return _KIND_MASKS[self]

    @property
    def is_string(self) -> bool:
        return self is FieldKind.STRING or self is FieldKind.STRING_LOC


_STRUCT_CODES = {
    FieldKind.UINT: UINT_CODE,
    FieldKind.INT: INT_CODE,
    FieldKind.FLOAT: FLOAT_CODE,
    FieldKind.STRING: UINT_CODE,      # string block offsets
    FieldKind.STRING_LOC: UINT_CODE,
}

_KIND_MASKS = {
    FieldKind.UINT: UINT_MASK,
    FieldKind.INT: INT_MASK,
    FieldKind.FLOAT: FLOAT_MASK,
    FieldKind.STRING: STRING_MASK,
    FieldKind.STRING_LOC: STRING_LOC_MASK,
}

_VALID_RULE_BITS = COUNT_MASK | UINT_MASK | INT_MASK | FLOAT_MASK | STRING_MASK | STRING_LOC_MASK


def _as_int(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise InvalidFieldRule(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidFieldRule(f"{what} must be an integer, got {value!r}") from None


def _kind_from_name(name: Any) -> FieldKind:
    try:
        return FieldKind(str(name).lower())
    except ValueError:
        valid = ", ".join(k.value for k in FieldKind)
        raise InvalidFieldRule(f"Unknown field type {name!r} (expected one of: {valid})") from None


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Type and repeat count of one schema field."""
    kind: FieldKind
    count: int = 1

    def __post_init__(self):
        if not 1 <= self.count <= COUNT_MASK:
            raise InvalidFieldRule(f"Field repeat count must be between 1 and {COUNT_MASK}, got {self.count}")

    @classmethod
    def from_mask(cls, rule: int) -> FieldRule:
        """Decode a legacy bit-encoded rule (type tag bits | repeat count)."""
        if rule < 0 or rule & ~_VALID_RULE_BITS:
            raise InvalidFieldRule(f"Field rule 0x{rule:04X} has bits outside the type tags and repeat count")
        kinds = [kind for kind, mask in _KIND_MASKS.items() if rule & mask]
        if len(kinds) != 1:
            raise InvalidFieldRule(f"Field rule 0x{rule:04X} must carry exactly one type tag, found {len(kinds)}")
        return cls(kinds[0], max(rule & COUNT_MASK, 1))

    @classmethod
    def parse(cls, value: Union[FieldRule, int, str, Mapping[str, Any]]) -> FieldRule:
        """Build a rule from a bit mask, a type name, or a {type, count} table."""
        if isinstance(value, FieldRule):
            return value
        if isinstance(value, bool):
            raise InvalidFieldRule(f"Invalid field rule {value!r}")
        if isinstance(value, int):
            return cls.from_mask(value)
        if isinstance(value, str):
            return cls(_kind_from_name(value))
        if isinstance(value, Mapping):
            if "type" not in value:
                raise InvalidFieldRule(f"Field rule table {dict(value)!r} is missing 'type'")
            return cls(_kind_from_name(value["type"]), _as_int(value.get("count", 1), "Field repeat count"))
        raise InvalidFieldRule(f"Invalid field rule {value!r}")

    def to_mask(self) -> int:
        return self.kind.mask | self.count

    @property
    def width(self) -> int:
        """Bytes occupied by the decoded slots (excluding locale copies)."""
        return FIELD_SIZE * self.count


@dataclass(frozen=True, slots=True)
class FieldSlot:
    """Resolved position of a field within a record."""
    name: str
    rule: FieldRule
    offset: int             # byte offset of the first slot
    reserved: int           # locale bytes skipped after the field
    unpacker: struct.Struct

    @property
    def index(self) -> int:
        """Field-unit index of the first slot."""
        return self.offset // FIELD_SIZE

    @property
    def end(self) -> int:
        return self.offset + self.rule.width + self.reserved

    def unpack_from(self, data: bytes) -> tuple:
        return self.unpacker.unpack_from(data, self.offset)


class Schema:
    """Ordered field map with its byte layout computed once on construction."""

    def __init__(self, fields: Mapping[str, Union[FieldRule, int, str, Mapping[str, Any]]],
                 localization: int = LOCALIZATION):
        if localization < 0:
            raise InvalidFieldRule(f"Localization factor must not be negative, got {localization}")
        self.localization = localization
        self.fields: dict[str, FieldRule] = {}
        self.slots: list[FieldSlot] = []
        self._slots_by_name: dict[str, FieldSlot] = {}

        offset = 0
        for name, value in fields.items():
            try:
                rule = FieldRule.parse(value)
            except InvalidFieldRule as e:
                raise InvalidFieldRule(f"Field '{name}': {e}") from None
            reserved = 0
            if rule.kind is FieldKind.STRING_LOC:
                reserved = FIELD_SIZE * localization * rule.count
            slot = FieldSlot(
                name=name,
                rule=rule,
                offset=offset,
                reserved=reserved,
                unpacker=struct.Struct(f"<{rule.count}{rule.kind.code}"),
            )
            self.fields[name] = rule
            self.slots.append(slot)
            self._slots_by_name[name] = slot
            offset = slot.end

        self.size = offset

    @classmethod
    def from_rules(cls, rules: Mapping[str, int], localization: int = LOCALIZATION) -> Schema:
        """Build a schema from legacy bit-encoded integer rules."""
        return cls({name: FieldRule.from_mask(rule) for name, rule in rules.items()}, localization)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> FieldRule:
        return self.slot(name).rule

    def __repr__(self) -> str:
        return f"Schema({len(self.fields)} fields, {self.size} bytes, localization={self.localization})"

    def slot(self, name: str) -> FieldSlot:
        try:
            return self._slots_by_name[name]
        except KeyError:
            raise UnknownField(f"Field '{name}' is not defined in the schema") from None

    def field_offset(self, name: str) -> int:
        """Field-unit index of a named field, counting reserved locale slots."""
        return self.slot(name).index

    @property
    def field_count(self) -> int:
        """Number of field units the layout spans."""
        return self.size // FIELD_SIZE

    @property
    def string_fields(self) -> list[str]:
        return [slot.name for slot in self.slots if slot.rule.kind.is_string]


def load_schema(path: Path, localization: Optional[int] = None) -> Schema:
    """Read a TOML schema file. An explicit localization overrides the file's."""
    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise InvalidFieldRule(f"Schema {path}: {e}") from e

    fields = data.get("fields")
    if not fields:
        raise InvalidFieldRule(f"Schema {path} defines no [fields]")
    if not isinstance(fields, Mapping):
        raise InvalidFieldRule(f"Schema {path}: [fields] must be a table, got {fields!r}")
    if localization is None:
        localization = _as_int(data.get("localization", LOCALIZATION), f"Schema {path}: localization")

    schema = Schema(fields, localization)
    logger.debug("Loaded schema %s: %r", path, schema)
    return schema


def _toml_key(name: str) -> str:
    if _BARE_KEY_RE.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def save_schema(schema: Schema, path: Path) -> Path:
    """Write a schema as TOML."""
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [f"localization = {schema.localization}", "", "[fields]"]
    for name, rule in schema.fields.items():
        if rule.count == 1:
            lines.append(f'{_toml_key(name)} = "{rule.kind.value}"')
        else:
            lines.append(f'{_toml_key(name)} = {{ type = "{rule.kind.value}", count = {rule.count} }}')
    lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")
    return path


# -- Inference --

_AS_FLOAT = struct.Struct("<f")
_AS_UINT = struct.Struct("<I")


def _as_float(value: int) -> float:
    return _AS_FLOAT.unpack(_AS_UINT.pack(value))[0]


def _plausible_float(value: float) -> bool:
    return math.isfinite(value) and 1e-6 <= abs(value) <= 1e7


def _guess_kind(values: list[int], table: DBCTable) -> FieldKind:
    nonzero = [v for v in values if v]
    if not nonzero:
        return FieldKind.UINT

    if len(table.strings) > 1 and all(table.strings.is_string_start(v) for v in nonzero):
        return FieldKind.STRING

    if all(_plausible_float(_as_float(v)) for v in nonzero):
        return FieldKind.FLOAT

    if any(v & 0x80000000 for v in nonzero):
        signed = [v - 0x100000000 if v & 0x80000000 else v for v in nonzero]
        if all(s >= -0x10000 for s in signed):
            return FieldKind.INT

    return FieldKind.UINT


def infer_schema(table: DBCTable, sample: int = 256, localization: int = LOCALIZATION) -> Schema:
    """Guess a schema (field0..fieldN) from a sample of the table's records.

    Field 0 is always taken as the unsigned identifier. Localized strings are
    not detected; their locale copies come out as separate fields.
    """
    width = table.record_size // FIELD_SIZE
    step = max(1, table.record_count // max(sample, 1))
    rows = [table.record(pos).as_array() for pos in range(0, table.record_count, step)][:sample]

    fields: dict[str, FieldRule] = {}
    for i in range(width):
        if i == 0:
            kind = FieldKind.UINT
        else:
            kind = _guess_kind([row[i] for row in rows], table)
        fields[f"field{i}"] = FieldRule(kind)

    logger.debug("Inferred %d fields from %d sampled records of %s", width, len(rows), table.path)
    return Schema(fields, localization)
