import io
import json

import pandas as pd
import pytest

from fakes import FakeLLM
from utils.document_processor import (
    CSV_MIME,
    DocumentProcessingError,
    DocumentProcessor,
    extract_values_with_regex,
    guess_file_type,
    strip_json_fences,
    structured_to_values,
    supported_extensions,
)
from utils.llm_client import LLMError

LAB_TEXT = b"Soil report for Block 7\npH: 5.2\nNitrogen: 0.25\nPhosphorus: 18"

STRUCTURED = {
    'type': 'soil',
    'parameters': {
        'pH': {'value': 5.2, 'unit': '', 'confidence': 0.9},
        'Nitrogen (%)': {'value': '0.25', 'unit': '%', 'confidence': 0.9},
    },
    'sampleInfo': {'location': 'Block 7'},
}


def test_guess_file_type():
    assert guess_file_type('report.PDF') == 'application/pdf'
    assert guess_file_type('scan.jpeg') == 'image/jpeg'
    assert guess_file_type('notes') == 'text/plain'
    assert 'xlsx' in supported_extensions()


def test_strip_json_fences():
    assert strip_json_fences('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_regex_extraction():
    values = extract_values_with_regex("pH: 5.2\nNitrogen: 0.25\nPhosphorus - 18\nMagnesium 0.3")
    assert values == {'pH': 5.2, 'N': 0.25, 'P': 18.0, 'Mg': 0.3}
    assert extract_values_with_regex('') == {}


def test_structured_to_values():
    values = structured_to_values({'parameters': {
        'Nitrogen (%)': {'value': '2.5'},
        'pH': 5.1,
        'Notes': {'value': 'n/a'},
    }})
    assert values == {'N': 2.5, 'pH': 5.1}
    assert structured_to_values(None) == {}


def test_process_text_file_with_llm_structuring():
    llm = FakeLLM('```json\n' + json.dumps(STRUCTURED) + '\n```')
    processor = DocumentProcessor(llm=llm)

    extracted = processor.process_file(LAB_TEXT, 'block7.txt')

    assert 'Nitrogen: 0.25' in extracted.text
    assert extracted.metadata['extraction_method'] == 'text'
    assert extracted.metadata['file_size'] == len(LAB_TEXT)
    assert extracted.structured_data['type'] == 'soil'
    assert extracted.structured_data['sample_info'] == {'location': 'Block 7'}
    assert 'block7.txt' in llm.prompts[0]


def test_csv_extraction():
    csv = pd.DataFrame({'Parameter': ['pH', 'N'], 'Value': [5.2, 0.25]}).to_csv(index=False).encode()
    text, method = DocumentProcessor(llm=FakeLLM()).extract_text(csv, 'lab.csv', CSV_MIME)

    assert method == 'csv'
    assert 'Columns: Parameter, Value' in text
    assert '  Parameter: pH' in text
    assert 'Total rows: 2' in text


def test_empty_document_is_rejected():
    with pytest.raises(DocumentProcessingError):
        DocumentProcessor(llm=FakeLLM()).process_file(b'   ', 'empty.txt')


def test_unparseable_llm_answers_give_no_structure():
    processor = DocumentProcessor(llm=FakeLLM('not json at all'))
    assert processor.analyze_with_llm('pH: 5.2 and more text', 'lab.txt') is None


def test_llm_failure_gives_no_structure():
    processor = DocumentProcessor(llm=FakeLLM(LLMError('quota exceeded')))
    assert processor.analyze_with_llm('pH: 5.2 and more text', 'lab.txt') is None


def test_answer_without_parameters_is_ignored():
    processor = DocumentProcessor(llm=FakeLLM({'type': 'unknown', 'parameters': {}}))
    assert processor.analyze_with_llm('pH: 5.2 and more text', 'lab.txt') is None


def test_word_document(tmp_path):
    docx = pytest.importorskip('docx')
    document = docx.Document()
    document.add_paragraph('Leaf analysis Frond 17')
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = 'N'
    table.rows[0].cells[1].text = '2.6'
    buffer = io.BytesIO()
    document.save(buffer)

    text, method = DocumentProcessor(llm=FakeLLM()).extract_text(buffer.getvalue(), 'leaf.docx')

    assert method == 'word'
    assert 'Leaf analysis Frond 17' in text
    assert 'N | 2.6' in text
