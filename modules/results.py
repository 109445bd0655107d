import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from utils.config_manager import get_ui_config
from utils.feedback_system import display_feedback_section
from utils.reference_data import compare_with_reference
from utils.report_pdf import generate_analysis_pdf

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RISK_COLORS = {
    'Low': '#2ecc71',
    'Medium': '#f1c40f',
    'High': '#e67e22',
    'Critical': '#e74c3c',
}

STATUS_COLORS = {
    'Optimal': '#2ecc71',
    'Deficient': '#e67e22',
    'Excess': '#3498db',
}

FORECAST_SERIES = [
    ('baseline', 'Baseline', '#95a5a6'),
    ('low_investment', 'Low Investment', '#e67e22'),
    ('medium_investment', 'Medium Investment', '#3498db'),
    ('high_investment', 'High Investment', '#2ecc71'),
]


def create_values_chart(comparison: Dict[str, Dict[str, Any]], title: str) -> go.Figure:
    """Measured values as bars with the optimal range drawn as error bars"""
    parameters = list(comparison.keys())
    values = [comparison[p]['value'] for p in parameters]
    midpoints = [sum(comparison[p]['optimal']) / 2 for p in parameters]
    half_ranges = [(comparison[p]['optimal'][1] - comparison[p]['optimal'][0]) / 2 for p in parameters]

    fig = go.Figure()
    fig.add_trace(go.Bar(
        name='Measured',
        x=parameters,
        y=values,
        marker_color=[STATUS_COLORS.get(comparison[p]['status'], '#3498db') for p in parameters],
        text=values,
        textposition='auto'
    ))
    fig.add_trace(go.Scatter(
        name='Optimal Range',
        x=parameters,
        y=midpoints,
        mode='markers',
        marker=dict(color='#2c3e50', size=8, symbol='line-ew-open'),
        error_y=dict(type='data', array=half_ranges, visible=True)
    ))
    fig.update_layout(
        title=title,
        xaxis_title="Parameter",
        yaxis_title="Value",
        showlegend=True,
        template="plotly_white",
        height=500
    )
    return fig


def create_forecast_chart(forecast: Dict[str, Any]) -> go.Figure:
    """Five year yield projection per investment level"""
    fig = go.Figure()
    for key, name, color in FORECAST_SERIES:
        series = forecast.get(key) or []
        if not series:
            continue
        fig.add_trace(go.Scatter(
            x=[f"Year {i + 1}" for i in range(len(series))],
            y=series,
            mode='lines+markers',
            name=name,
            line=dict(color=color, width=3),
            marker=dict(size=8)
        ))

    benchmark = (forecast.get('benchmark_comparison') or {}).get('malaysia_average')
    if benchmark:
        fig.add_hline(y=benchmark, line_dash='dash', line_color='#7f8c8d',
                      annotation_text=f"Malaysia average ({benchmark} t/ha)")

    fig.update_layout(
        title="Yield Forecast (tons/ha)",
        xaxis_title="Year",
        yaxis_title="Yield (tons/ha)",
        showlegend=True,
        template="plotly_white",
        height=500
    )
    return fig


def build_plan_table(plan: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = []
    for item in plan or []:
        rows.append({
            'Priority': item.get('priority', ''),
            'Recommendation': item.get('recommendation', ''),
            'Reasoning': item.get('reasoning', ''),
            'Estimated Impact': item.get('estimated_impact', ''),
            'Timeframe': item.get('timeframe') or '-',
            'Investment': item.get('investment_level') or '-',
        })
    return pd.DataFrame(rows, columns=['Priority', 'Recommendation', 'Reasoning',
                                       'Estimated Impact', 'Timeframe', 'Investment'])


def format_timestamp(value: Any) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime(get_ui_config().date_format)
    return str(value) if value else '-'


def show_results_page():
    """Display the latest analysis from this session"""
    st.title("📊 Analysis Results")

    result = st.session_state.get('analysis_result')
    if not result:
        st.info("📋 No analysis yet. Run one from the Analyze page or open a report from History.")
        if st.button("🔬 Go to Analyze", use_container_width=True):
            st.session_state.current_page = 'analyze'
            st.rerun()
        return

    display_analysis_result(
        result,
        st.session_state.get('analysis_values') or {},
        st.session_state.get('analysis_sample_type') or (result.get('metadata') or {}).get('sample_type', 'soil'),
    )


def display_analysis_result(result: Dict[str, Any], values: Dict[str, Any], sample_type: str,
                            show_feedback: bool = True):
    """Full report view, shared with the history page"""
    metadata = result.get('metadata') or {}

    display_summary(result, sample_type, metadata)

    overview_tab, plan_tab, insights_tab, references_tab = st.tabs(
        ["🔍 Overview", "📋 Improvement Plan", "📈 Insights", "📚 References"])

    with overview_tab:
        display_overview(result, values, sample_type)
    with plan_tab:
        display_improvement_plan(result.get('improvement_plan') or [])
    with insights_tab:
        display_insights(result)
    with references_tab:
        display_references(result)

    display_download(result, metadata)

    report_id = metadata.get('report_id')
    if show_feedback and report_id:
        display_feedback_section(report_id, st.session_state.get('user_id'))


def display_summary(result: Dict[str, Any], sample_type: str, metadata: Dict[str, Any]):
    risk_level = result.get('risk_level', 'Medium')
    color = RISK_COLORS.get(risk_level, '#95a5a6')

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Sample Type", sample_type.title())
    with col2:
        st.markdown(
            f"<div style='text-align:center'><div style='color:#7f8c8d'>Risk Level</div>"
            f"<div style='font-size:2rem;font-weight:700;color:{color}'>{risk_level}</div></div>",
            unsafe_allow_html=True,
        )
    with col3:
        st.metric("Confidence", f"{result.get('confidence_score', 0):.0f}%")

    if metadata.get('analyzed_at'):
        st.caption(f"Analyzed {format_timestamp(metadata['analyzed_at'])}")


def display_overview(result: Dict[str, Any], values: Dict[str, Any], sample_type: str):
    st.markdown("### 🧪 Interpretation")
    st.write(result.get('interpretation') or 'No interpretation available.')

    issues = result.get('issues') or []
    st.markdown("### ⚠️ Key Issues")
    if issues:
        for issue in issues:
            st.markdown(f"- {issue}")
    else:
        st.success("✅ No significant issues detected")

    if not values:
        return

    comparison = compare_with_reference(values, sample_type)
    if comparison:
        st.markdown("### 📏 Values vs MPOB Optimal Ranges")
        try:
            fig = create_values_chart(comparison, f"{sample_type.title()} Parameters")
            st.plotly_chart(fig, use_container_width=True)
        except Exception as e:
            logger.error(f"Error displaying values chart: {e}")
            st.error("Error displaying values chart")

        table = pd.DataFrame([
            {
                'Parameter': parameter,
                'Value': entry['value'],
                'Optimal': f"{entry['optimal'][0]} - {entry['optimal'][1]}",
                'Unit': entry['unit'],
                'Status': entry['status'],
                'Deviation (%)': entry['deviation_percent'],
            }
            for parameter, entry in comparison.items()
        ])
        st.dataframe(table, use_container_width=True, hide_index=True)


def display_improvement_plan(plan: List[Dict[str, Any]]):
    if not plan:
        st.info("No recommendations were generated for this sample.")
        return

    st.dataframe(build_plan_table(plan), use_container_width=True, hide_index=True)

    for i, item in enumerate(plan, 1):
        with st.expander(f"{i}. {item.get('recommendation', 'Recommendation')} ({item.get('priority', '')})"):
            st.markdown(f"**Why:** {item.get('reasoning', '')}")
            st.markdown(f"**Expected impact:** {item.get('estimated_impact', '')}")
            if item.get('implementation_steps'):
                st.markdown(f"**Steps:** {item['implementation_steps']}")
            if item.get('sustainability_benefits'):
                st.markdown(f"**Sustainability:** {item['sustainability_benefits']}")
            if item.get('cost_benefit_ratio'):
                st.markdown(f"**Cost/benefit:** {item['cost_benefit_ratio']}")


def display_insights(result: Dict[str, Any]):
    balance = result.get('nutrient_balance')
    if balance:
        st.markdown("### ⚖️ Nutrient Balance")
        ratios = balance.get('ratios') or {}
        if ratios:
            cols = st.columns(min(len(ratios), 4))
            for i, (name, ratio) in enumerate(ratios.items()):
                with cols[i % len(cols)]:
                    st.metric(name.replace('_', ' ').upper(), ratio)
        for label, key in (("Critical deficiencies", 'critical_deficiencies'),
                           ("Imbalances", 'imbalances'),
                           ("Antagonisms", 'antagonisms')):
            entries = balance.get(key) or []
            if entries:
                st.markdown(f"**{label}**")
                for entry in entries:
                    st.markdown(f"- {entry}")

    benchmarking = result.get('regional_benchmarking')
    if benchmarking:
        st.markdown("### 🏆 Regional Benchmarking")
        col1, col2 = st.columns(2)
        with col1:
            st.metric("Percentile", f"{benchmarking.get('ranking_percentile', 50):.0f}")
        with col2:
            st.write(benchmarking.get('current_yield_vs_benchmark', ''))
            st.caption(benchmarking.get('potential_improvement', ''))

    forecast = result.get('yield_forecast')
    if forecast:
        st.markdown("### 📈 Yield Forecast")
        try:
            st.plotly_chart(create_forecast_chart(forecast), use_container_width=True)
        except Exception as e:
            logger.error(f"Error displaying forecast chart: {e}")
            st.error("Error displaying forecast chart")
        improvement = (forecast.get('benchmark_comparison') or {}).get('potential_improvement')
        if improvement:
            st.info(improvement)

    sustainability = result.get('sustainability_metrics')
    if sustainability:
        st.markdown("### 🌱 Sustainability")
        st.markdown(f"**Carbon sequestration:** {sustainability.get('carbon_sequestration_potential', '')}")
        st.markdown(f"**RSPO compliance:** {sustainability.get('rspo_compliance', '')}")
        st.markdown(f"**Environmental impact:** {sustainability.get('environmental_impact', '')}")

    if not any((balance, benchmarking, forecast, sustainability)):
        st.info("Detailed insights are only available for comprehensive analyses.")


def display_references(result: Dict[str, Any]):
    references = result.get('scientific_references') or []
    st.markdown("## 📚 Research References")
    if not references:
        st.info("No research references were matched to this analysis.")
    for ref in references:
        authors = ', '.join(ref.get('authors') or [])
        with st.expander(f"📄 {ref.get('title', 'Untitled')} ({ref.get('year', '')})"):
            st.markdown(f"**Authors:** {authors or 'Unknown'}")
            st.markdown(f"**Journal:** {ref.get('journal') or 'Unknown'}")
            if ref.get('summary'):
                st.write(ref['summary'])
            for finding in ref.get('key_findings') or []:
                st.markdown(f"- {finding}")
            if ref.get('application_to_analysis'):
                st.caption(ref['application_to_analysis'])
            if ref.get('url'):
                st.markdown(f"[Open reference]({ref['url']})")

    rag_context = result.get('rag_context') or []
    if rag_context:
        st.markdown("### 🗂️ Knowledge Base Excerpts")
        for chunk in rag_context:
            title = chunk.get('document_title') or 'Reference document'
            with st.expander(f"{title} (similarity {chunk.get('similarity', 0):.2f})"):
                st.write(chunk.get('content', ''))


def display_download(result: Dict[str, Any], metadata: Dict[str, Any]):
    st.markdown("---")
    try:
        pdf_bytes = generate_analysis_pdf(result)
    except Exception as e:
        logger.error(f"Error generating PDF report: {e}")
        st.error("❌ PDF report could not be generated")
        return

    report_id: Optional[str] = metadata.get('report_id')
    st.download_button(
        "📥 Download PDF Report",
        data=pdf_bytes,
        file_name=f"oil_palm_analysis_{report_id or 'report'}.pdf",
        mime="application/pdf",
        use_container_width=True,
    )
