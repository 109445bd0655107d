import logging
import re
import uuid
from typing import Dict, List, Optional

import pandas as pd
import streamlit as st

from utils.analysis_engine import AdvancedAgronomistAnalyzer, AnalysisError
from utils.analytics import get_analytics_tracker
from utils.document_processor import (
    DocumentProcessingError,
    document_processor,
    extract_values_with_regex,
    guess_file_type,
    structured_to_values,
    supported_extensions,
)
from utils.excel_parser import ExcelParseError, excel_parser
from utils.reference_data import compare_with_reference
from utils.validation import (
    LeafAnalysisInput,
    RequestValidationError,
    SoilAnalysisInput,
    UserPriorities,
    validate_request,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SPREADSHEET_EXTENSIONS = ('xlsx', 'xls')

PRIORITY_OPTIONS = {
    'focus': ['balanced', 'yield', 'cost', 'sustainability'],
    'budget': ['medium', 'low', 'high'],
    'timeframe': ['short_term', 'immediate', 'long_term'],
    'language': ['en', 'ms'],
    'plantation_type': ['tenera', 'dura', 'pisifera'],
    'soil_type': ['mineral', 'peat', 'coastal'],
}

# (form field, label, default)
NUTRIENT_FIELDS = [
    ('nitrogen', 'Nitrogen (N)', 0.0),
    ('phosphorus', 'Phosphorus (P)', 0.0),
    ('potassium', 'Potassium (K)', 0.0),
    ('calcium', 'Calcium (Ca)', 0.0),
    ('magnesium', 'Magnesium (Mg)', 0.0),
    ('sulfur', 'Sulfur (S)', 0.0),
]

MICRONUTRIENT_FIELDS = [
    ('boron', 'Boron (B)'),
    ('zinc', 'Zinc (Zn)'),
    ('iron', 'Iron (Fe)'),
    ('manganese', 'Manganese (Mn)'),
    ('copper', 'Copper (Cu)'),
]


def parse_historical_yield(text: str) -> List[float]:
    """Yearly yields typed as '18.5, 20, 21.2' (oldest first)"""
    return [float(token) for token in re.findall(r'\d+(?:\.\d+)?', text or '')]


def get_session_id() -> str:
    if 'session_id' not in st.session_state:
        st.session_state.session_id = uuid.uuid4().hex
    return st.session_state.session_id


def track_feature(action: str, label: str, value: Optional[float] = None):
    try:
        get_analytics_tracker().track_event({
            'event_name': action,
            'event_category': 'feature',
            'event_action': action,
            'event_label': label,
            'event_value': value,
            'session_id': get_session_id(),
            'page': 'analyze',
        })
    except Exception as e:
        logger.warning(f"Analytics tracking failed: {e}")


def extract_values_from_upload(uploaded_file) -> Dict[str, object]:
    """Values and extraction details for an uploaded lab report"""
    content = uploaded_file.getvalue()
    file_name = uploaded_file.name
    extension = file_name.rsplit('.', 1)[-1].lower() if '.' in file_name else ''

    if extension in SPREADSHEET_EXTENSIONS:
        parsed = excel_parser.parse_excel_file(content, file_name)
        return {
            'values': parsed.values,
            'confidence': parsed.metadata.get('confidence'),
            'source': f"Worksheet '{parsed.metadata.get('extracted_from')}'",
            'details': parsed.metadata.get('cell_references', []),
        }

    extracted = document_processor.process_file(content, file_name, guess_file_type(file_name))
    values = structured_to_values(extracted.structured_data)
    method = extracted.metadata.get('extraction_method')
    if not values:
        values = extract_values_with_regex(extracted.text)
        method = f"{method} + pattern matching"
    return {
        'values': values,
        'confidence': None,
        'source': method,
        'details': [],
    }


def show_analyze_page():
    """Upload or enter lab results, choose priorities and run the analysis"""
    st.title("🔬 Analyze Soil or Leaf Sample")
    st.caption("Upload a laboratory report or enter values manually. Results are interpreted "
               "against MPOB standards for Malaysian oil palm.")

    sample_type = st.radio("Sample type", ['soil', 'leaf'], horizontal=True,
                           format_func=lambda s: s.title(), key='analyze_sample_type')

    upload_tab, manual_tab = st.tabs(["📁 Upload Lab Report", "✍️ Manual Entry"])
    with upload_tab:
        upload_section(sample_type)
    with manual_tab:
        manual_entry_section(sample_type)

    values = st.session_state.get('pending_values') or {}
    if not values:
        st.info("📋 Add sample values above to continue.")
        return

    display_pending_values(values, sample_type)
    priorities, land_size, historical_yield = priorities_section()

    if st.button("🚀 Run Analysis", type="primary", use_container_width=True):
        run_analysis(sample_type, values, priorities, land_size, historical_yield)


def upload_section(sample_type: str):
    uploaded_file = st.file_uploader(
        f"Upload {sample_type} analysis report",
        type=supported_extensions(),
        help="Excel workbooks are read cell by cell; PDFs, Word files and images are read with OCR.",
        key=f"upload_{sample_type}",
    )
    if uploaded_file is None:
        return

    if st.button("📤 Extract Values", key=f"extract_{sample_type}"):
        with st.spinner("Extracting values from your report..."):
            try:
                extraction = extract_values_from_upload(uploaded_file)
            except (ExcelParseError, DocumentProcessingError) as e:
                st.error(f"❌ {e}")
                return
            except Exception as e:
                logger.error(f"Unexpected extraction error: {e}")
                st.error("❌ The report could not be processed. Please try another file or enter values manually.")
                return

        if not extraction['values']:
            st.warning("⚠️ No recognizable parameters were found in this report.")
            return

        st.session_state.pending_values = extraction['values']
        st.session_state.pending_source = uploaded_file.name
        track_feature('upload', 'report_extraction', len(extraction['values']))

        message = f"✅ Extracted {len(extraction['values'])} parameters from {extraction['source']}"
        if extraction['confidence'] is not None:
            message += f" (confidence {extraction['confidence']}%)"
        st.success(message)
        if extraction['details']:
            with st.expander("Cell references"):
                for reference in extraction['details']:
                    st.write(reference)


def manual_entry_section(sample_type: str):
    with st.form(f"manual_entry_{sample_type}"):
        col1, col2 = st.columns(2)
        with col1:
            sample_location = st.text_input("Sample location / block", value="")
            field_id = st.text_input("Field ID (optional)", value="")
        with col2:
            if sample_type == 'soil':
                ph = st.number_input("pH", min_value=0.0, max_value=14.0, value=5.0, step=0.1)
                sample_depth = st.number_input("Sample depth (cm)", min_value=0.0, max_value=200.0, value=15.0)
                organic_matter = st.number_input("Organic matter (%)", min_value=0.0, max_value=100.0, value=2.0)
                texture = st.selectbox("Texture", ['clay', 'loam', 'sandy', 'silt'])
            else:
                leaf_age = st.selectbox("Frond age", ['mature', 'young', 'old'])
                plant_age = st.number_input("Palm age (years)", min_value=0.0, max_value=50.0, value=8.0)

        st.markdown("**Macronutrients**")
        macro_cols = st.columns(3)
        macros = {}
        for i, (field, label, default) in enumerate(NUTRIENT_FIELDS):
            with macro_cols[i % 3]:
                macros[field] = st.number_input(label, min_value=0.0, value=default, format="%.3f")

        with st.expander("Micronutrients (optional)"):
            micro_cols = st.columns(3)
            micros = {}
            for i, (field, label) in enumerate(MICRONUTRIENT_FIELDS):
                with micro_cols[i % 3]:
                    micros[field] = st.number_input(label, min_value=0.0, value=0.0, format="%.3f")

        notes = st.text_area("Notes", height=70)
        submitted = st.form_submit_button("💾 Use These Values")

    if not submitted:
        return

    data = {
        'sample_location': sample_location,
        'field_id': field_id or None,
        'notes': notes or None,
        **macros,
        **{field: value for field, value in micros.items() if value > 0},
    }
    if sample_type == 'soil':
        data.update({'ph': ph, 'sample_depth': sample_depth, 'organic_matter': organic_matter,
                     'texture': texture})
        model = SoilAnalysisInput
    else:
        data.update({'leaf_age': leaf_age, 'plant_age': plant_age})
        model = LeafAnalysisInput

    try:
        sample = validate_request(model, data)
    except RequestValidationError as e:
        st.error(f"❌ {e}")
        return

    st.session_state.pending_values = sample.analysis_values()
    st.session_state.pending_source = sample.sample_location
    st.success("✅ Values ready for analysis")


def display_pending_values(values: Dict[str, float], sample_type: str):
    st.markdown("---")
    st.subheader("📊 Sample Values")
    source = st.session_state.get('pending_source')
    if source:
        st.caption(f"Source: {source}")

    comparison = compare_with_reference(values, sample_type)
    rows = []
    for parameter, value in values.items():
        entry = comparison.get(parameter)
        rows.append({
            'Parameter': parameter,
            'Value': value,
            'Optimal Range': f"{entry['optimal'][0]} - {entry['optimal'][1]} {entry['unit']}" if entry else '-',
            'Status': entry['status'] if entry else 'No reference',
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    if st.button("🗑️ Clear Values"):
        st.session_state.pop('pending_values', None)
        st.session_state.pop('pending_source', None)
        st.rerun()


def priorities_section():
    st.subheader("🎯 Your Priorities")
    defaults = UserPriorities()
    col1, col2, col3 = st.columns(3)
    priorities = {}
    for i, (key, options) in enumerate(PRIORITY_OPTIONS.items()):
        with (col1, col2, col3)[i % 3]:
            default = getattr(defaults, key)
            priorities[key] = st.selectbox(
                key.replace('_', ' ').title(),
                options,
                index=options.index(default),
                format_func=lambda v: v.replace('_', ' ').title(),
                key=f"priority_{key}",
            )

    col1, col2 = st.columns(2)
    with col1:
        land_size = st.number_input("Land size (hectares)", min_value=0.0, value=0.0, step=1.0)
    with col2:
        history_text = st.text_input("Historical yield, tons/ha per year (oldest first)",
                                     placeholder="e.g. 18.5, 20, 21.2")
    return priorities, (land_size or None), parse_historical_yield(history_text)


def run_analysis(sample_type: str, values: Dict[str, float], priorities: Dict[str, str],
                 land_size: Optional[float], historical_yield: List[float]):
    analyzer = AdvancedAgronomistAnalyzer()
    with st.spinner("🤖 Our agronomist AI is analyzing your sample..."):
        try:
            result = analyzer.analyze_data_advanced(sample_type, values, None, priorities,
                                                    land_size=land_size,
                                                    historical_yield=historical_yield or None)
        except AnalysisError as e:
            logger.error(f"Advanced analysis failed, using basic analysis: {e}")
            st.warning("⚠️ Comprehensive analysis is unavailable right now; showing a basic analysis.")
            result = analyzer.analyze_data(sample_type, values)

    st.session_state.analysis_result = result
    st.session_state.analysis_values = values
    st.session_state.analysis_sample_type = sample_type
    track_feature('analysis', f"{sample_type}_analysis", result.get('confidence_score'))

    st.session_state.current_page = 'results'
    st.rerun()
