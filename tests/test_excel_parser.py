import io

import pytest
from openpyxl import Workbook

from utils.excel_parser import (
    PATTERN_MATCH_ADDRESS,
    ExcelParseError,
    ExcelParser,
    cell_address,
)


def workbook_bytes(sheets):
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets:
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


LAB_ROWS = [
    ['Parameter', 'Value'],
    ['pH', 5.2],
    ['Nitrogen (%)', 0.25],
    ['Available Phosphorus', 18],
]


def test_cell_address():
    assert cell_address(0, 0) == 'A1'
    assert cell_address(0, 1) == 'B1'
    assert cell_address(9, 27) == 'AB10'


def test_parse_workbook_prefers_analysis_sheet():
    content = workbook_bytes([('Cover', [['Lab report']]), ('Soil Analysis', LAB_ROWS)])

    result = ExcelParser().parse_excel_file(content, 'lab.xlsx')

    assert result.values == {'pH': 5.2, 'N': 0.25, 'P': 18.0}
    assert result.metadata['extracted_from'] == 'Soil Analysis'
    assert result.metadata['sheet_names'] == ['Cover', 'Soil Analysis']
    assert result.metadata['cell_references']['pH'] == 'A2 → B2'
    assert result.metadata['confidence'] == 95


def test_value_below_label():
    rows = [['pH', 'Potassium'], [5.6, 0.4]]
    values, locations, _ = ExcelParser().extract_values_from_rows(rows)

    assert values == {'pH': 5.6, 'K': 0.4}
    assert {loc.confidence for loc in locations} == {85}


def test_match_parameter_short_tokens():
    parser = ExcelParser()
    assert parser.match_parameter('ph') == 'pH'
    assert parser.match_parameter('k (%)') == 'K'
    assert parser.match_parameter('exchangeable k') == 'K'
    assert parser.match_parameter('sample') is None


def test_pattern_fallback_when_no_labels_have_values():
    rows = [['Report: pH 5.4 and nitrogen: 0.3']]
    values, locations, _ = ExcelParser().extract_values_from_rows(rows)

    assert values == {'pH': 5.4, 'N': 0.3}
    assert all(loc.cell_address == PATTERN_MATCH_ADDRESS for loc in locations)


def test_confidence():
    assert ExcelParser.calculate_confidence([]) == 0


def test_table_structure_and_layout():
    rows = [['Sample', 'pH'], ['S1', 5.2], [None, None]]
    assert ExcelParser.parse_table_structure(rows) == {
        'headers': ['Sample', 'pH'],
        'data': [{'Sample': 'S1', 'pH': 5.2}],
    }
    assert ExcelParser.detect_layout_type([['pH', 5.2], ['N', 0.25], ['P', 18]]) == 'key-value'
    assert ExcelParser.detect_layout_type([['a', 'b', 'c'], [1, 2, 3], [4, 5, 6]]) == 'table'


def test_unreadable_file():
    with pytest.raises(ExcelParseError, match='Failed to parse Excel file'):
        ExcelParser().parse_excel_file(b'not a workbook', 'broken.xlsx')
