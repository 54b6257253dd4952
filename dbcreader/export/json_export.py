"""Export table records as JSON."""
from __future__ import annotations

import json
import math
from typing import Optional

from dbcreader.dbc.schema import Schema
from dbcreader.dbc.table import DBCTable


def _finite(value):
    """Replace NaN and infinities, which JSON cannot represent, with None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, list):
        return [_finite(v) for v in value]
    return value


def export_json(table: DBCTable, schema: Optional[Schema] = None) -> str:
    """Export all records as a JSON string.

    With a schema (given or attached) each record is an object of decoded
    fields; otherwise each record is its raw array of unsigned integers.
    Non-finite float fields are written as null.
    """
    if schema is None:
        schema = table.schema

    data = []
    for rec in table.records():
        if schema is not None:
            fields = rec.extract(schema)
            data.append({name: _finite(value) for name, value in fields.items()})
        else:
            data.append(rec.as_array())

    return json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False)
