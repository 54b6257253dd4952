import pytest

from dbcreader.dbc.constants import (
    FLOAT_MASK,
    INT_MASK,
    LOCALIZATION,
    STRING_LOC_MASK,
    STRING_MASK,
    UINT_MASK,
)
from dbcreader.dbc.errors import InvalidFieldRule, UnknownField
from dbcreader.dbc.schema import FieldKind, FieldRule, Schema, infer_schema, load_schema, save_schema
from dbcreader.dbc.table import DBCTable

from conftest import FIREBALL, FROSTBOLT, pack_row


@pytest.mark.parametrize("mask,kind", [
    (UINT_MASK, FieldKind.UINT),
    (INT_MASK, FieldKind.INT),
    (FLOAT_MASK, FieldKind.FLOAT),
    (STRING_MASK, FieldKind.STRING),
    (STRING_LOC_MASK, FieldKind.STRING_LOC),
])
def test_rule_from_mask(mask, kind):
    assert FieldRule.from_mask(mask | 4) == FieldRule(kind, 4)


def test_rule_count_zero_means_one():
    assert FieldRule.from_mask(UINT_MASK).count == 1


@pytest.mark.parametrize("mask", [0x0000, 0x0003, UINT_MASK | FLOAT_MASK])
def test_rule_needs_exactly_one_tag(mask):
    with pytest.raises(InvalidFieldRule):
        FieldRule.from_mask(mask)


def test_rule_to_mask():
    assert FieldRule(FieldKind.STRING_LOC, 2).to_mask() == STRING_LOC_MASK | 2


@pytest.mark.parametrize("value,expected", [
    ("uint", FieldRule(FieldKind.UINT)),
    ("FLOAT", FieldRule(FieldKind.FLOAT)),
    ({"type": "int", "count": 3}, FieldRule(FieldKind.INT, 3)),
    (INT_MASK | 2, FieldRule(FieldKind.INT, 2)),
])
def test_rule_parse(value, expected):
    assert FieldRule.parse(value) == expected


@pytest.mark.parametrize("value", ["double", {"count": 2}, True, 1.5])
def test_rule_parse_invalid(value):
    with pytest.raises(InvalidFieldRule):
        FieldRule.parse(value)


def test_rule_count_bounds():
    with pytest.raises(InvalidFieldRule):
        FieldRule(FieldKind.UINT, 0)


def test_schema_layout():
    schema = Schema.from_rules({
        "id": UINT_MASK,
        "name": STRING_LOC_MASK,
        "effects": INT_MASK | 3,
    }, localization=2)

    assert list(schema) == ["id", "name", "effects"]
    assert [slot.offset for slot in schema.slots] == [0, 4, 16]
    assert schema.slot("name").reserved == 8
    assert schema.size == 28
    assert schema.field_count == 7
    assert schema.field_offset("effects") == 4
    assert schema.string_fields == ["name"]
    assert schema["effects"] == FieldRule(FieldKind.INT, 3)
    assert "name" in schema
    assert len(schema) == 3


def test_schema_default_localization():
    schema = Schema({"name": "string_loc"})
    assert schema.localization == LOCALIZATION
    assert schema.size == 4 + 4 * LOCALIZATION


def test_schema_unknown_field():
    with pytest.raises(UnknownField):
        Schema({"id": "uint"}).field_offset("name")


def test_schema_reports_bad_field_name():
    with pytest.raises(InvalidFieldRule, match="'power'"):
        Schema({"id": "uint", "power": "double"})


def test_load_schema(tmp_path):
    path = tmp_path / "Spell.toml"
    path.write_text(
        'localization = 8\n'
        '\n'
        '[fields]\n'
        'id = "uint"\n'
        'name = "string_loc"\n'
        'effects = { type = "int", count = 3 }\n'
        'legacy = 0x0102\n',
        encoding="utf-8",
    )
    schema = load_schema(path)
    assert schema.localization == 8
    assert schema.fields == {
        "id": FieldRule(FieldKind.UINT),
        "name": FieldRule(FieldKind.STRING_LOC),
        "effects": FieldRule(FieldKind.INT, 3),
        "legacy": FieldRule(FieldKind.UINT, 2),
    }
    assert load_schema(path, localization=0).size == (1 + 1 + 3 + 2) * 4


def test_load_schema_without_fields(tmp_path):
    path = tmp_path / "Empty.toml"
    path.write_text("localization = 16\n", encoding="utf-8")
    with pytest.raises(InvalidFieldRule):
        load_schema(path)


def test_save_schema(tmp_path):
    schema = Schema({"id": "uint", "spell name": "string", "scale": {"type": "float", "count": 2}}, localization=4)
    path = save_schema(schema, tmp_path / "out" / "Spell.toml")
    loaded = load_schema(path)
    assert loaded.fields == schema.fields
    assert loaded.localization == 4


def test_infer_schema(make_dbc):
    path = make_dbc([
        pack_row("IIfiI", 1, FIREBALL, 1.5, -3, 3000000000),
        pack_row("IIfiI", 2, FROSTBOLT, 2.25, -1, 4000000000),
        pack_row("IIfiI", 3, 0, 0.0, 0, 0),
    ])
    with DBCTable(path) as table:
        schema = infer_schema(table)

    assert [rule.kind for rule in schema.fields.values()] == [
        FieldKind.UINT,
        FieldKind.STRING,
        FieldKind.FLOAT,
        FieldKind.INT,
        FieldKind.UINT,
    ]
    assert list(schema) == ["field0", "field1", "field2", "field3", "field4"]


def test_infer_schema_all_zero_column(make_dbc):
    path = make_dbc([pack_row("II", 1, 0), pack_row("II", 2, 0)])
    with DBCTable(path) as table:
        assert infer_schema(table)["field1"].kind is FieldKind.UINT


@pytest.mark.parametrize("rule", [0x2101, 0x10000 | UINT_MASK, -1])
def test_rule_rejects_unknown_bits(rule):
    with pytest.raises(InvalidFieldRule):
        FieldRule.from_mask(rule)


MALFORMED_SCHEMAS = {
    "bad_toml": "[fields\nid = \"uint\"\n",
    "bad_count": '[fields]\nid = { type = "uint", count = "three" }\n',
    "bad_localization": 'localization = "many"\n[fields]\nid = "uint"\n',
    "fields_not_table": "fields = 3\n",
}


@pytest.mark.parametrize("text", MALFORMED_SCHEMAS.values(), ids=MALFORMED_SCHEMAS.keys())
def test_load_malformed_schema(tmp_path, text):
    path = tmp_path / "Bad.toml"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(InvalidFieldRule):
        load_schema(path)
