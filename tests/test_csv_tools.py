from datetime import datetime

from openpyxl import load_workbook

from csv_tools import (
    BOM,
    IMPORT_TEMPLATE_COLUMNS,
    build_xlsx,
    clean_import_value,
    format_cell,
    generate_csv,
    parse_csv,
    template_columns,
    write_csv,
)
from models import EntryStatus


def test_round_trip_with_commas_quotes_and_newlines():
    headers = ["name", "notes", "quote"]
    row = ["Sato, Hanako", "line one\nline two", 'She said "go"']
    text = generate_csv(headers, row)
    assert text.startswith(BOM)
    assert parse_csv(text) == [headers, row]


def test_quoting_doubles_embedded_quotes():
    text = generate_csv(["a"], ['x "y" z'])
    assert '"x ""y"" z"' in text


def test_parse_skips_blank_lines_and_strips_bom():
    text = BOM + "a,b\r\n\r\n1,2\r\n\r\n"
    assert parse_csv(text) == [["a", "b"], ["1", "2"]]


def test_entries_template():
    columns, sample = template_columns("entries")
    assert columns == IMPORT_TEMPLATE_COLUMNS
    assert len(sample) == len(columns)
    assert "representative_email" in columns


def test_unknown_template_type():
    try:
        template_columns("nope")
    except KeyError:
        pass
    else:
        raise AssertionError("expected KeyError")


def test_format_cell_values():
    assert format_cell(None) == ""
    assert format_cell(True) == "Yes"
    assert format_cell(False) == "No"
    assert format_cell(EntryStatus.SELECTED) == "selected"
    assert format_cell(datetime(2026, 3, 1, 12, 30)) == "2026-03-01T12:30:00"
    assert format_cell([{"name": "A"}]) == '[{"name": "A"}]'


def test_write_csv_without_bom():
    text = write_csv(["a"], [[1]], bom=False)
    assert not text.startswith(BOM)
    assert text.splitlines() == ["a", "1"]


def test_clean_import_value():
    assert clean_import_value('  "Taro"\r\n') == "Taro"
    assert clean_import_value(None) == ""


def test_build_xlsx():
    output = build_xlsx("Basic information", ["ID", "Agreed"], [[1, True], [2, None]])
    sheet = load_workbook(output).active
    assert sheet.title == "Basic information"
    assert [cell.value for cell in sheet[1]] == ["ID", "Agreed"]
    assert sheet.cell(row=2, column=2).value == "Yes"
