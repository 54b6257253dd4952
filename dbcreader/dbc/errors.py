"""Exceptions raised while reading DBC tables and decoding records."""


class DBCError(Exception):
    """Base class for all DBC reading errors."""


class InvalidTable(DBCError, ValueError):
    """The file is not a DBC table or its header disagrees with its size."""


class TruncatedRecord(DBCError):
    """Fewer bytes than the record size could be read for a record."""


class NoSchemaAttached(DBCError):
    """A field was addressed by name but the table has no schema."""


class SchemaOverflow(DBCError):
    """The schema needs more bytes than the record holds."""


class UnknownField(DBCError, KeyError):
    """A field name is not part of the attached schema."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class InvalidFieldRule(DBCError, ValueError):
    """A field rule has no type tag, several type tags, or an unknown type name."""
