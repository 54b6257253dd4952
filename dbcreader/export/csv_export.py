"""Export table records as CSV."""
from __future__ import annotations

import csv
import io
from typing import Optional

from dbcreader.dbc.constants import FIELD_SIZE
from dbcreader.dbc.schema import Schema
from dbcreader.dbc.table import DBCTable


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "|".join(_cell(v) for v in value)
    return str(value)


def export_csv(table: DBCTable, schema: Optional[Schema] = None) -> str:
    """Export all records as a CSV string."""
    if schema is None:
        schema = table.schema
    output = io.StringIO()
    writer = csv.writer(output)

    if schema is None:
        # Raw field units
        writer.writerow([f"field{i}" for i in range(table.record_size // FIELD_SIZE)])
        for rec in table.records():
            writer.writerow(rec.as_array())
        return output.getvalue()

    # Header
    writer.writerow(list(schema))

    for rec in table.records():
        fields = rec.extract(schema)
        writer.writerow([_cell(value) for value in fields.values()])

    return output.getvalue()
