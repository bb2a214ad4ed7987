import pytest

from equipment_parser import CatalogEntry, EquipmentCatalogParser, ScanMode, parse

CATALOG = (
    "equipment_inventory_items:\n"
    "  dumbbell: \"Dumbbells\"\n"
    "  band: \"Resistance Band\"\n"
    "equipment_inventory_profiles:\n"
    "  full_gym:\n"
    "    - dumbbell\n"
)


def test_items_block_is_parsed_in_order():
    assert parse(CATALOG) == [
        CatalogEntry(key="dumbbell", label="Dumbbells"),
        CatalogEntry(key="band", label="Resistance Band"),
    ]


def test_to_dict():
    assert parse(CATALOG)[0].to_dict() == {"key": "dumbbell", "label": "Dumbbells"}


@pytest.mark.parametrize("text", [
    "",
    "\n\n\n",
    "no matching lines here",
    "\x00\xff� garbage \x1b[31m",
    "  :\"\"\n  \"\n:::",
])
def test_parse_never_raises(text):
    assert isinstance(parse(text), list)


def test_non_string_input_yields_nothing():
    assert parse(None) == []
    assert parse(b"  a: \"A\"") == []


def test_lines_after_profiles_header_are_ignored():
    text = (
        "  a: \"A\"\n"
        "  b: \"B\"\n"
        "equipment_inventory_profiles:\n"
        "  c: \"C\"\n"
        "  d: \"D\"\n"
        "equipment_inventory_items:\n"
        "  e: \"E\"\n"
    )
    assert [e.key for e in parse(text)] == ["a", "b"]


def test_indented_profiles_header_does_not_switch_mode():
    text = "  equipment_inventory_profiles:\n  a: \"A\"\n"
    assert [e.key for e in parse(text)] == ["a"]


def test_parser_ends_in_excluded_mode():
    parser = EquipmentCatalogParser()
    parser.parse_catalog(CATALOG)
    assert parser.mode is ScanMode.EXCLUDED


def test_quoting_and_whitespace():
    assert parse('  foo: "Foo Bar"') == [CatalogEntry("foo", "Foo Bar")]
    assert parse('  foo:   "  Foo Bar  "   ') == [CatalogEntry("foo", "Foo Bar")]
    assert parse('foo: "Foo"') == []
    assert parse('  foo: Foo') == []
    assert parse('  foo: "Foo') == []
    assert parse('    foo: "Foo"') == []


def test_tab_indent_matches_two_spaces():
    assert parse('\tfoo: "Foo Bar"') == parse('  foo: "Foo Bar"')


def test_comments_and_blank_lines_are_skipped():
    text = "# catalog\n\n  # not an item: \"x\"\n  a: \"A\"  # trailing note\n"
    assert parse(text) == [CatalogEntry("a", "A")]


def test_duplicate_keys_are_kept():
    text = '  a: "First"\n  a: "Second"\n'
    assert [e.label for e in parse(text)] == ["First", "Second"]


def test_malformed_line_does_not_stop_scan():
    text = '  a: A\n  b: "B"\n'
    assert parse(text) == [CatalogEntry("b", "B")]


def test_crlf_line_endings():
    assert parse('  a: "A"\r\n  b: "B"\r\n') == [CatalogEntry("a", "A"), CatalogEntry("b", "B")]
