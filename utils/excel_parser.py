"""
Excel Parser for laboratory spreadsheets
Locates soil/leaf parameter labels in a worksheet and reads the value next to them.
"""

import io
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from utils.parameter_standardizer import SPREADSHEET_PARAMETER_MAP, fuzzy_match, parse_number

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Grid = List[List[Any]]

SHEET_NAME_PRIORITY = ['analysis', 'results', 'data', 'soil', 'leaf', 'nutrient']

# (row offset, column offset, confidence) in search order
NEIGHBOUR_SEARCH = [
    (0, 1, 90),    # right
    (1, 0, 85),    # below
    (1, 1, 80),    # diagonal down-right
    (0, 2, 75),    # two right
    (2, 0, 70),    # two below
    (-1, 1, 65),   # diagonal up-right
    (1, -1, 60),   # diagonal down-left
]

FALLBACK_PATTERNS = {
    'pH': re.compile(r'ph\s*[:\-=]?\s*(\d+\.?\d*)'),
    'N': re.compile(r'(?:nitrogen|n)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'P': re.compile(r'(?:phosphorus|p2o5|p)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'K': re.compile(r'(?:potassium|k2o|k)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'Ca': re.compile(r'(?:calcium|ca)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'Mg': re.compile(r'(?:magnesium|mg)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'OC': re.compile(r'(?:organic\s*matter|om)\s*[:\-=]?\s*(\d+\.?\d*)'),
    'EC': re.compile(r'(?:electrical\s*conductivity|ec)\s*[:\-=]?\s*(\d+\.?\d*)'),
}

PATTERN_MATCH_ADDRESS = 'Pattern Match'
PATTERN_MATCH_CONFIDENCE = 50

# Variants this short only match as standalone tokens ("N (%)", "K:")
SHORT_VARIANT_LENGTH = 2


class ExcelParseError(ValueError):
    """Raised when a spreadsheet cannot be read or interpreted"""

    def __init__(self, cause: Any):
        super().__init__(f"Failed to parse Excel file: {cause}")


@dataclass
class ParameterLocation:
    parameter: str
    value: float
    cell_address: str
    confidence: int


@dataclass
class ExcelAnalysisResult:
    values: Dict[str, float]
    metadata: Dict[str, Any]
    locations: List[ParameterLocation] = field(default_factory=list)


def cell_address(row: int, col: int) -> str:
    """Spreadsheet-style address for zero-based indices, e.g. (0, 1) -> 'B1'"""
    from openpyxl.utils import get_column_letter
    return f"{get_column_letter(col + 1)}{row + 1}"


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty_rows(rows: Grid):
    for index, row in enumerate(rows):
        if any(not _is_empty(v) for v in row):
            yield index, row


def read_workbook(source: Union[bytes, str, io.IOBase], file_name: str = '') -> List[Tuple[str, Grid]]:
    """Load every worksheet as (name, rows) with cached formula results

    .xls goes through xlrd, everything else through openpyxl.
    """
    name = file_name or (source if isinstance(source, str) else '')
    if isinstance(source, str):
        with open(source, 'rb') as f:
            data = f.read()
    elif isinstance(source, (bytes, bytearray)):
        data = bytes(source)
    else:
        data = source.read()

    if os.path.splitext(name)[1].lower() == '.xls':
        import xlrd
        book = xlrd.open_workbook(file_contents=data)
        sheets = []
        for sheet in book.sheets():
            rows = []
            for r in range(sheet.nrows):
                row = []
                for c in range(sheet.ncols):
                    cell = sheet.cell(r, c)
                    row.append(None if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK) else cell.value)
                rows.append(row)
            sheets.append((sheet.name, rows))
        return sheets

    from openpyxl import load_workbook
    workbook = load_workbook(io.BytesIO(data), data_only=True, read_only=True)
    try:
        return [(ws.title, [list(row) for row in ws.iter_rows(values_only=True)]) for ws in workbook.worksheets]
    finally:
        workbook.close()


class ExcelParser:
    """Extracts parameter values from analysis spreadsheets"""

    def __init__(self, parameter_map: Optional[Dict[str, List[str]]] = None):
        self.logger = logging.getLogger(f"{__name__}.ExcelParser")
        self.parameter_map = parameter_map or SPREADSHEET_PARAMETER_MAP

    def parse_excel_file(self, source: Union[bytes, str, io.IOBase], file_name: str = '') -> ExcelAnalysisResult:
        """Parse a workbook and return the best guess at each parameter value

        Raises:
            ExcelParseError: when the workbook cannot be read
        """
        try:
            sheets = read_workbook(source, file_name)
            if not sheets:
                raise ValueError("Workbook has no worksheets")
            sheet_names = [name for name, _ in sheets]
            sheet_name, rows = self.find_best_worksheet(sheets)
            self.logger.info(f"Processing worksheet: {sheet_name}")

            values, locations, cell_references = self.extract_values_from_rows(rows)
            return ExcelAnalysisResult(
                values=values,
                metadata={
                    'file_name': file_name,
                    'sheet_names': sheet_names,
                    'extracted_from': sheet_name,
                    'confidence': self.calculate_confidence(locations),
                    'cell_references': cell_references,
                },
                locations=locations,
            )
        except ExcelParseError:
            raise
        except Exception as e:
            self.logger.error(f"Excel parsing error for {file_name}: {e}")
            raise ExcelParseError(e) from e

    def find_best_worksheet(self, sheets: List[Tuple[str, Grid]]) -> Tuple[str, Grid]:
        for keyword in SHEET_NAME_PRIORITY:
            for name, rows in sheets:
                if keyword in name.lower():
                    return name, rows
        for name, rows in sheets:
            if any(True for _ in _non_empty_rows(rows)):
                return name, rows
        return sheets[0]

    def match_parameter(self, cell_text: str) -> Optional[str]:
        """Return the canonical parameter a label cell refers to

        Long variants match by containment (also with whitespace removed) or
        fuzzy similarity; short ones such as 'k' or 'mg' only as whole tokens,
        and the earliest token in the label wins.
        """
        compact = re.sub(r'\s+', '', cell_text)
        for standard, variants in self.parameter_map.items():
            for variant in variants:
                if len(variant) <= SHORT_VARIANT_LENGTH:
                    continue
                if (variant in cell_text or re.sub(r'\s+', '', variant) in compact
                        or fuzzy_match(cell_text, variant)):
                    return standard

        best = None
        for standard, variants in self.parameter_map.items():
            for variant in variants:
                if len(variant) > SHORT_VARIANT_LENGTH:
                    continue
                match = re.search(r'(?<![a-z0-9])' + re.escape(variant) + r'(?![a-z0-9])', cell_text)
                if match and (best is None or match.start() < best[0]):
                    best = (match.start(), standard)
        return best[1] if best else None

    def find_value_near_cell(self, rows: Grid, row: int, col: int) -> Optional[Tuple[float, str, int]]:
        for row_offset, col_offset, confidence in NEIGHBOUR_SEARCH:
            target_row, target_col = row + row_offset, col + col_offset
            if target_row < 0 or target_col < 0 or target_row >= len(rows):
                continue
            if target_col >= len(rows[target_row]):
                continue
            value = parse_number(rows[target_row][target_col])
            if value is not None:
                return value, cell_address(target_row, target_col), confidence
        return None

    def extract_values_from_rows(self, rows: Grid):
        locations: List[ParameterLocation] = []
        cell_references: Dict[str, str] = {}

        for r, row in _non_empty_rows(rows):
            for c, value in enumerate(row):
                if not isinstance(value, str) or not value.strip():
                    continue
                parameter = self.match_parameter(value.lower().strip())
                if not parameter:
                    continue
                found = self.find_value_near_cell(rows, r, c)
                if found:
                    number, address, confidence = found
                    locations.append(ParameterLocation(parameter, number, address, confidence))
                    cell_references[parameter] = f"{cell_address(r, c)} → {address}"
                    self.logger.debug(f"Found {parameter}: {number} ({confidence}% confidence) at {address}")

        if not locations:
            locations.extend(self.extract_using_patterns(rows))

        values: Dict[str, float] = {}
        best: Dict[str, ParameterLocation] = {}
        for location in locations:
            current = best.get(location.parameter)
            if current is None or current.confidence < location.confidence:
                best[location.parameter] = location
                values[location.parameter] = location.value

        return values, locations, cell_references

    def extract_using_patterns(self, rows: Grid) -> List[ParameterLocation]:
        all_text = ''
        for _, row in _non_empty_rows(rows):
            for value in row:
                if isinstance(value, str):
                    all_text += ' ' + value.lower()

        locations = []
        for parameter, pattern in FALLBACK_PATTERNS.items():
            match = pattern.search(all_text)
            if match:
                locations.append(ParameterLocation(
                    parameter, float(match.group(1)), PATTERN_MATCH_ADDRESS, PATTERN_MATCH_CONFIDENCE))
        return locations

    @staticmethod
    def calculate_confidence(locations: List[ParameterLocation]) -> int:
        if not locations:
            return 0
        avg_confidence = sum(loc.confidence for loc in locations) / len(locations)
        parameter_bonus = min(len(locations) * 5, 30)
        structure_bonus = 15 if avg_confidence > 80 else 0
        return min(95, round(30 + avg_confidence * 0.4 + parameter_bonus + structure_bonus))

    @staticmethod
    def parse_table_structure(rows: Grid) -> Dict[str, Any]:
        """First non-empty row is the header, later rows become dicts"""
        headers: List[str] = []
        data: List[Dict[str, Any]] = []
        for _, row in _non_empty_rows(rows):
            if not headers:
                headers = [v if isinstance(v, str) else str(v) for v in row if not _is_empty(v)]
                continue
            data.append({header: (row[i] if i < len(row) else None) for i, header in enumerate(headers)})
        return {'headers': headers, 'data': data}

    @staticmethod
    def detect_layout_type(rows: Grid) -> str:
        key_value_pairs = 0
        table_structure = 0
        for index, row in _non_empty_rows(rows):
            cells = [v for v in row if not _is_empty(v)]
            has_text = any(isinstance(v, str) for v in cells)
            has_numbers = any(_is_number(v) for v in cells)
            if len(cells) == 2 and has_text and has_numbers:
                key_value_pairs += 1
            elif len(cells) > 2 and index == 0:
                table_structure += 2
            elif len(cells) > 2:
                table_structure += 1

        row_count = max(len(rows), 1)
        if key_value_pairs / row_count > 0.6:
            return 'key-value'
        if table_structure / row_count > 0.6:
            return 'table'
        return 'mixed'


# Global parser instance
excel_parser = ExcelParser()
