"""
Document processing for uploaded laboratory reports.

Extracts raw text from PDF, spreadsheet, CSV, Word, image and plain text files,
then asks the LLM to structure the chemical analysis it finds.
"""

import io
import json
import logging
import os
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from langchain_core.prompts import PromptTemplate
from langchain_text_splitters import RecursiveCharacterTextSplitter

from utils.config_manager import get_rag_config
from utils.parameter_standardizer import parameter_standardizer, parse_number

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PDF_MIME = 'application/pdf'
SPREADSHEET_MIME = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
CSV_MIME = 'text/csv'
WORD_MIME = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'
TEXT_MIME = 'text/plain'

EXTENSION_MIME_TYPES = {
    'pdf': PDF_MIME,
    'xlsx': SPREADSHEET_MIME,
    'xls': SPREADSHEET_MIME,
    'csv': CSV_MIME,
    'docx': WORD_MIME,
    'doc': WORD_MIME,
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'tif': 'image/tiff',
    'tiff': 'image/tiff',
}

MIN_TEXT_LENGTH = 10

OCR_VALUE_PATTERNS = {
    'pH': re.compile(r'ph\s*[:\-]?\s*(\d+\.?\d*)'),
    'N': re.compile(r'nitrogen\s*[:\-]?\s*(\d+\.?\d*)'),
    'P': re.compile(r'phosphorus\s*[:\-]?\s*(\d+\.?\d*)'),
    'K': re.compile(r'potassium\s*[:\-]?\s*(\d+\.?\d*)'),
    'Ca': re.compile(r'calcium\s*[:\-]?\s*(\d+\.?\d*)'),
    'Mg': re.compile(r'magnesium\s*[:\-]?\s*(\d+\.?\d*)'),
}

STRUCTURE_PROMPT = PromptTemplate.from_template("""
You are an expert in oil palm chemical analysis. Analyze the following document text and extract structured chemical analysis data.

Document: {file_name}
Text: {text}

Extract the following information and format as JSON:
1. Analysis type (soil or leaf analysis)
2. Chemical parameters with values and units
3. Sample information (location, date, depth, cultivar, sample ID)
4. Laboratory information if available

Focus on extracting:
- Nutrient levels (N, P, K, Mg, Ca, S, etc.)
- pH values
- Electrical conductivity (EC)
- Organic matter content
- Micronutrients (B, Mn, Fe, Zn, Cu, etc.)
- Any other relevant chemical parameters

Return ONLY a valid JSON object with this structure:
{{
  "type": "soil" | "leaf" | "unknown",
  "parameters": {{
    "parameter_name": {{"value": number_or_string, "unit": "unit_if_available", "confidence": confidence_score_0_to_1}}
  }},
  "sample_info": {{"location": "", "date": "", "depth": "", "cultivar": "", "sample_id": ""}},
  "laboratory": {{"name": "", "method": "", "analyst": ""}}
}}

If no chemical analysis data is found, return null.
""")


class DocumentProcessingError(ValueError):
    """Raised when a document cannot be turned into text"""


@dataclass
class ExtractedData:
    text: str
    structured_data: Optional[Dict[str, Any]]
    metadata: Dict[str, Any] = field(default_factory=dict)


def guess_file_type(file_name: str) -> str:
    """Guess a MIME type from the file extension"""
    ext = file_name.rsplit('.', 1)[-1].lower() if '.' in file_name else ''
    return EXTENSION_MIME_TYPES.get(ext, TEXT_MIME)


def strip_json_fences(response: str) -> str:
    return re.sub(r'```json\n?|\n?```', '', response).strip()


def extract_values_with_regex(text: str) -> Dict[str, float]:
    """Pull the common nutrient readings out of OCR text"""
    lower = (text or '').lower()
    values = {}
    for parameter, pattern in OCR_VALUE_PATTERNS.items():
        match = pattern.search(lower)
        if match:
            values[parameter] = float(match.group(1))
    return values


def structured_to_values(structured: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Flatten LLM-structured parameters to {canonical_name: number}"""
    if not structured:
        return {}
    values = {}
    for name, entry in (structured.get('parameters') or {}).items():
        raw = entry.get('value') if isinstance(entry, dict) else entry
        number = parse_number(raw)
        if number is None:
            continue
        values[parameter_standardizer.standardize_parameter_name(name) or name] = number
    return values


class DocumentProcessor:
    """Turns uploaded files into text and structured analysis data"""

    def __init__(self, llm=None):
        self.logger = logging.getLogger(f"{__name__}.DocumentProcessor")
        self._llm = llm
        rag_config = get_rag_config()
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=rag_config.extraction_chunk_size,
            chunk_overlap=rag_config.extraction_chunk_overlap,
            separators=["\n\n", "\n", " ", ""],
        )

    @property
    def llm(self):
        if self._llm is None:
            from utils.llm_client import get_llm_client
            self._llm = get_llm_client()
        return self._llm

    def process_file(self, content: bytes, file_name: str, mime_type: Optional[str] = None) -> ExtractedData:
        """Extract text and structured chemical data from an uploaded file

        Raises:
            DocumentProcessingError: when no text can be extracted
        """
        start = time.time()
        mime_type = mime_type or guess_file_type(file_name)
        self.logger.info(f"Starting processing for: {file_name} ({mime_type})")

        text, method = self.extract_text(content, file_name, mime_type)
        if not text or len(text.strip()) < MIN_TEXT_LENGTH:
            raise DocumentProcessingError('No readable text found in the document.')

        structured = self.analyze_with_llm(text, file_name)
        return ExtractedData(
            text=text,
            structured_data=structured,
            metadata={
                'file_name': file_name,
                'file_size': len(content),
                'mime_type': mime_type,
                'extraction_method': method,
                'processing_time': int((time.time() - start) * 1000),
            },
        )

    def extract_text(self, content: bytes, file_name: str, mime_type: Optional[str] = None) -> Tuple[str, str]:
        """Return (text, extraction_method) for a file

        Raises:
            DocumentProcessingError: wrapping any extraction failure
        """
        mime_type = mime_type or guess_file_type(file_name)
        try:
            if mime_type == PDF_MIME:
                return self._extract_pdf(content)
            if mime_type == SPREADSHEET_MIME or mime_type.endswith('ms-excel'):
                return self._extract_spreadsheet(content, file_name), 'excel'
            if mime_type == CSV_MIME:
                return self._extract_csv(content, file_name), 'csv'
            if mime_type == WORD_MIME or mime_type == 'application/msword':
                return self._extract_word(content), 'word'
            if mime_type.startswith('image/'):
                return self._extract_image(content), 'ocr'
            return content.decode('utf-8', errors='replace'), 'text'
        except DocumentProcessingError:
            raise
        except Exception as e:
            self.logger.error(f"Text extraction failed for {file_name}: {e}")
            raise DocumentProcessingError(f"Failed to extract text from {file_name}: {e}") from e

    def _extract_pdf(self, content: bytes) -> Tuple[str, str]:
        import fitz  # PyMuPDF

        doc = fitz.open(stream=content, filetype="pdf")
        try:
            pages = [page.get_text() for page in doc]
            text = '\n'.join(pages)
            if text.strip():
                return text, 'pdf'

            # Scanned PDF without a text layer
            from PIL import Image
            ocr_pages = []
            for page in doc:
                pix = page.get_pixmap(matrix=fitz.Matrix(2.0, 2.0))
                ocr_pages.append(self._ocr_image(Image.open(io.BytesIO(pix.tobytes("png")))))
            return '\n'.join(ocr_pages), 'ocr'
        finally:
            doc.close()

    def _extract_spreadsheet(self, content: bytes, file_name: str) -> str:
        from utils.excel_parser import read_workbook

        lines = [f"Excel Analysis Report: {file_name}", ""]
        for sheet_id, (sheet_name, rows) in enumerate(read_workbook(content, file_name), start=1):
            lines.append(f"Sheet {sheet_id}: {sheet_name}")
            for row_number, row in enumerate(rows, start=1):
                cells = [str(v) for v in row if v is not None and str(v).strip()]
                if cells:
                    lines.append(f"Row {row_number}: {' | '.join(cells)}")
            lines.append("")
        return '\n'.join(lines)

    def _extract_csv(self, content: bytes, file_name: str) -> str:
        df = pd.read_csv(io.BytesIO(content))
        lines = [f"CSV File: {file_name}", "", "Columns: " + ', '.join(str(c) for c in df.columns), "", "Data:"]
        for index, row in enumerate(df.itertuples(index=False), start=1):
            lines.append(f"Row {index}:")
            for header, value in zip(df.columns, row):
                if pd.notna(value) and str(value).strip():
                    lines.append(f"  {header}: {value}")
            lines.append("")
        lines.append(f"Total rows: {len(df)}")
        return '\n'.join(lines)

    def _extract_word(self, content: bytes) -> str:
        import docx

        document = docx.Document(io.BytesIO(content))
        parts = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    parts.append(' | '.join(cells))
        return '\n'.join(parts)

    def _extract_image(self, content: bytes) -> str:
        from PIL import Image
        return self._ocr_image(Image.open(io.BytesIO(content)))

    def _preprocess_image(self, image):
        """Binarize an image with Otsu thresholding for better OCR results"""
        import cv2
        from PIL import Image

        try:
            gray = cv2.cvtColor(np.array(image.convert('RGB')), cv2.COLOR_RGB2GRAY)
            _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            return Image.fromarray(binary)
        except cv2.error as e:
            self.logger.warning(f"Image preprocessing failed, using original image: {e}")
            return image

    def _ocr_image(self, image) -> str:
        import pytesseract
        return pytesseract.image_to_string(self._preprocess_image(image), config='--psm 6')

    def analyze_with_llm(self, text: str, file_name: str) -> Optional[Dict[str, Any]]:
        """Structure extracted text chunk by chunk; the first chunk with parameters wins"""
        llm = self.llm
        if llm is None:
            self.logger.warning("LLM unavailable, skipping structured extraction")
            return None

        for chunk in self.text_splitter.split_text(text):
            prompt = STRUCTURE_PROMPT.format(file_name=file_name, text=chunk)
            try:
                response = llm.generate(prompt)
                parsed = json.loads(strip_json_fences(response))
            except (json.JSONDecodeError, TypeError) as e:
                self.logger.warning(f"Failed to parse LLM response as JSON: {e}")
                continue
            except RuntimeError as e:
                self.logger.error(f"LLM structuring failed: {e}")
                return None

            if isinstance(parsed, dict) and parsed.get('parameters'):
                return self._normalize_structured(parsed)
        return None

    @staticmethod
    def _normalize_structured(parsed: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'type': parsed.get('type', 'unknown'),
            'parameters': parsed.get('parameters') or {},
            'sample_info': parsed.get('sample_info') or parsed.get('sampleInfo') or {},
            'laboratory': parsed.get('laboratory') or {},
        }

    def process_path(self, file_path: str) -> ExtractedData:
        with open(file_path, 'rb') as f:
            content = f.read()
        return self.process_file(content, os.path.basename(file_path))


def supported_extensions() -> List[str]:
    return sorted(EXTENSION_MIME_TYPES) + ['txt', 'md']


# Global processor instance
document_processor = DocumentProcessor()
