import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List

import pandas as pd
import streamlit as st

from modules.results import display_analysis_result, format_timestamp
from utils.analysis_store import get_analysis_store
from utils.config_manager import get_ui_config
from utils.search import get_search_service
from utils.validation import RequestValidationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SEARCHABLE_TABLES = {
    'Analysis Reports': 'analysis_reports',
    'Reference Documents': 'reference_documents',
    'Feedback': 'user_feedback',
    'Prompt Templates': 'prompt_templates',
}


def build_history_table(analyses: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for analysis in analyses:
        metadata = analysis.get('metadata') or {}
        rows.append({
            'Date': format_timestamp(analysis.get('created_at')),
            'Sample Type': (analysis.get('sample_type') or '-').title(),
            'Location': metadata.get('sample_location') or '-',
            'Risk Level': analysis.get('risk_level') or '-',
            'Confidence': analysis.get('confidence_score'),
            'ID': analysis.get('id'),
        })
    return pd.DataFrame(rows, columns=['Date', 'Sample Type', 'Location', 'Risk Level', 'Confidence', 'ID'])


def date_range_params(start: date, end: date) -> Dict[str, str]:
    """Inclusive whole-day range as ISO strings"""
    return {
        'start': datetime.combine(start, time.min, tzinfo=timezone.utc).isoformat(),
        'end': datetime.combine(end, time.max, tzinfo=timezone.utc).isoformat(),
    }


def show_history_page():
    """Past analyses with search"""
    st.title("📜 Analysis History")

    recent_tab, search_tab = st.tabs(["🕒 Recent Analyses", "🔎 Search"])
    with recent_tab:
        display_recent_analyses()
    with search_tab:
        display_search()


def display_recent_analyses():
    store = get_analysis_store()
    try:
        analyses = store.get_recent_analyses(limit=get_ui_config().history_page_size,
                                             user_id=st.session_state.get('user_id'))
    except Exception as e:
        logger.error(f"Error loading analysis history: {e}")
        st.error("❌ Could not load analysis history")
        return

    if not analyses:
        st.info("📋 No analyses yet. Your completed analyses will appear here.")
        return

    st.dataframe(build_history_table(analyses), use_container_width=True, hide_index=True)

    labels = {a['id']: f"{format_timestamp(a.get('created_at'))} - {(a.get('sample_type') or '').title()} "
                       f"({a.get('risk_level') or '-'})" for a in analyses}
    selected = st.selectbox("Select an analysis", list(labels.keys()), format_func=labels.get)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("👁️ View Report", use_container_width=True):
            st.session_state.history_selected = selected
    with col2:
        if st.button("🗑️ Delete", use_container_width=True):
            try:
                store.delete_analysis(selected)
                st.session_state.pop('history_selected', None)
                st.success("✅ Analysis deleted")
                st.rerun()
            except Exception as e:
                logger.error(f"Error deleting analysis {selected}: {e}")
                st.error("❌ Could not delete analysis")

    if st.session_state.get('history_selected'):
        display_stored_report(st.session_state.history_selected)


def display_stored_report(analysis_id: str):
    try:
        report = get_analysis_store().get_analysis(analysis_id)
    except Exception as e:
        logger.error(f"Error loading analysis {analysis_id}: {e}")
        st.error("❌ Could not load this analysis")
        return
    if report is None:
        st.warning("⚠️ This analysis no longer exists")
        return

    st.markdown("---")
    result = dict(report.get('analysis_result') or {})
    result['metadata'] = {**(result.get('metadata') or {}), 'report_id': analysis_id}
    display_analysis_result(result, report.get('input_data') or {}, report.get('sample_type') or 'soil')


def display_search():
    with st.form("history_search"):
        query = st.text_input("Search", placeholder="e.g. Johor, acidity, boron")
        col1, col2 = st.columns(2)
        with col1:
            tables = st.multiselect("Search in", list(SEARCHABLE_TABLES.keys()),
                                    default=['Analysis Reports'])
            categories = st.multiselect("Sample type / category", ['soil', 'leaf', 'research', 'guide',
                                                                    'regulation', 'case_study', 'best_practice'])
            location = st.text_input("Location contains")
        with col2:
            sort_by = st.selectbox("Sort by", ['relevance', 'created_at', 'title'])
            sort_order = st.radio("Order", ['desc', 'asc'], horizontal=True)
            use_dates = st.checkbox("Filter by date")
            dates = st.date_input("Date range", value=(date.today().replace(day=1), date.today()))
        submitted = st.form_submit_button("🔎 Search")

    if not submitted:
        return

    params = {
        'query': query or None,
        'tables': [SEARCHABLE_TABLES[t] for t in tables] or None,
        'category': categories,
        'location': location or None,
        'sort_by': sort_by,
        'sort_order': sort_order,
        'limit': 50,
    }
    if use_dates and isinstance(dates, (list, tuple)) and len(dates) == 2:
        params['date_range'] = date_range_params(dates[0], dates[1])

    try:
        response = get_search_service().search(params)
    except RequestValidationError as e:
        st.error(f"❌ {e}")
        return
    except Exception as e:
        logger.error(f"Search failed: {e}")
        st.error("❌ Search is unavailable right now")
        return

    st.caption(f"{response['total']} result(s)")
    if not response['results']:
        if response['suggestions']:
            st.info(f"No results. Did you mean: {', '.join(response['suggestions'])}?")
        else:
            st.info("No results found.")
        return

    for result in response['results']:
        with st.expander(f"{result.get('title') or result['id']} ({result['table'].replace('_', ' ')})"):
            st.write(result.get('description') or '')
            st.caption(f"Created {format_timestamp(result.get('created_at'))} | "
                       f"Status: {result.get('status') or '-'} | Relevance: {result['relevance_score']}")
            if result.get('tags'):
                st.caption("Tags: " + ', '.join(str(tag) for tag in result['tags']))

    facets = response.get('facets') or {}
    if facets:
        with st.expander("📊 Facets"):
            for name, counts in facets.items():
                if counts:
                    st.markdown(f"**{name.title()}:** " + ', '.join(f"{k} ({v})" for k, v in counts.items()))
