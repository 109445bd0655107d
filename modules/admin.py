import logging
from typing import Any, Dict

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from modules.results import RISK_COLORS, format_timestamp
from utils.analysis_store import get_analysis_store
from utils.analytics import get_analytics_tracker
from utils.cache import api_cache, cache, search_cache
from utils.config_manager import config_manager
from utils.feedback_system import display_feedback_analytics
from utils.module_registry import KINDS, MODULE_CATEGORIES, get_module_registry
from utils.prompt_manager import get_prompt_manager, validate_prompt_template
from utils.validation import RequestValidationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TEMPLATE_CATEGORIES = ['soil', 'leaf', 'general', 'troubleshooting', 'recommendations']
LEVELS = ['medium', 'low', 'high']


def create_risk_chart(risk_distribution: Dict[str, int]) -> go.Figure:
    levels = list(risk_distribution.keys())
    counts = [risk_distribution[level] for level in levels]
    fig = go.Figure(go.Bar(
        x=levels,
        y=counts,
        marker_color=[RISK_COLORS.get(level, '#95a5a6') for level in levels],
        text=counts,
        textposition='auto'
    ))
    fig.update_layout(
        title="Reports by Risk Level",
        xaxis_title="Risk Level",
        yaxis_title="Reports",
        template="plotly_white",
        height=400
    )
    return fig


def create_daily_events_chart(daily_counts: Dict[str, int]) -> go.Figure:
    fig = go.Figure(go.Scatter(
        x=list(daily_counts.keys()),
        y=list(daily_counts.values()),
        mode='lines+markers',
        line=dict(color='#3498db', width=3),
        marker=dict(size=8)
    ))
    fig.update_layout(
        title="Daily Events",
        xaxis_title="Date",
        yaxis_title="Events",
        template="plotly_white",
        height=400
    )
    return fig


def counts_frame(counts: Dict[str, int], label: str) -> pd.DataFrame:
    return pd.DataFrame([{label: key, 'Count': value} for key, value in counts.items()],
                        columns=[label, 'Count'])


def show_admin_page():
    """System administration"""
    st.title("🔧 Administration")

    tabs = st.tabs(["📊 Dashboard", "📝 Prompt Templates", "🧩 Modules", "💬 Feedback",
                    "📈 Usage", "⚡ Cache", "⚙️ Settings"])
    with tabs[0]:
        show_admin_dashboard()
    with tabs[1]:
        show_prompt_templates()
    with tabs[2]:
        show_module_registry()
    with tabs[3]:
        display_feedback_analytics()
    with tabs[4]:
        show_usage_analytics()
    with tabs[5]:
        show_cache_stats()
    with tabs[6]:
        show_settings()


def show_admin_dashboard():
    try:
        stats = get_analysis_store().get_dashboard_stats()
    except Exception as e:
        logger.error(f"Error loading dashboard stats: {e}")
        st.error("❌ Dashboard statistics are unavailable")
        return

    col1, col2, col3, col4, col5 = st.columns(5)
    with col1:
        st.metric("Total Reports", stats['total_reports'])
    with col2:
        st.metric("Last 7 Days", stats['recent_activity'])
    with col3:
        st.metric("Avg Confidence", f"{stats['avg_confidence']}%")
    with col4:
        st.metric("Feedback", stats['total_feedback'])
    with col5:
        st.metric("Active Prompts", stats['active_prompts'])

    if stats['total_reports']:
        st.plotly_chart(create_risk_chart(stats['risk_distribution']), use_container_width=True)


def show_prompt_templates():
    manager = get_prompt_manager()

    analytics = manager.get_template_analytics()
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Templates", analytics['total_templates'])
    with col2:
        st.metric("Active", analytics['active_templates'])
    with col3:
        st.metric("Avg Success", f"{analytics['average_success_rate'] * 100:.0f}%")
    with col4:
        st.metric("Most Used", analytics['most_used_template'] or '-')

    templates = manager.get_all_templates()
    if templates:
        for template in templates:
            status = "🟢" if template.get('is_active') else "⚪"
            with st.expander(f"{status} {template.get('name')} ({template.get('category')})"):
                st.caption(template.get('description') or '')
                st.code(template.get('template', ''), language=None)
                st.caption(f"Used {template.get('usage_count', 0)} times | "
                           f"Last used {format_timestamp(template.get('last_used'))}")
                col1, col2 = st.columns(2)
                with col1:
                    label = "⏸️ Deactivate" if template.get('is_active') else "▶️ Activate"
                    if st.button(label, key=f"toggle_{template['id']}", use_container_width=True):
                        manager.update_template(template['id'], {'is_active': not template.get('is_active')})
                        st.rerun()
                with col2:
                    if st.button("🗑️ Delete", key=f"delete_{template['id']}", use_container_width=True):
                        manager.delete_template(template['id'])
                        st.rerun()
    else:
        st.info("📋 No prompt templates yet. The built-in expert prompt is used until you add one.")

    st.markdown("---")
    st.subheader("➕ New Template")
    with st.form("new_prompt_template", clear_on_submit=True):
        name = st.text_input("Name")
        description = st.text_input("Description")
        col1, col2, col3 = st.columns(3)
        with col1:
            category = st.selectbox("Category", TEMPLATE_CATEGORIES)
            language = st.selectbox("Language", ['en', 'ms'])
        with col2:
            priority = st.selectbox("Priority", LEVELS)
            scientific_rigor = st.selectbox("Scientific rigor", LEVELS)
        with col3:
            specificity_level = st.selectbox("Specificity", LEVELS)
            malaysian_context = st.checkbox("Malaysian context", value=True)
        template_text = st.text_area("Template", height=200,
                                     help="Use {sample_type}, {data} and other placeholders")
        variables = st.text_input("Variables (comma separated)", value="sample_type, data")
        submitted = st.form_submit_button("💾 Save Template")

    if submitted:
        variable_list = [v.strip() for v in variables.split(',') if v.strip()]
        check = validate_prompt_template(template_text, variable_list)
        for warning in check['warnings']:
            st.warning(f"⚠️ {warning}")
        if not check['valid']:
            for error in check['errors']:
                st.error(f"❌ {error}")
            return
        try:
            manager.create_template({
                'name': name,
                'description': description,
                'template': template_text,
                'category': category,
                'variables': variable_list,
                'language': language,
                'priority': priority,
                'malaysian_context': malaysian_context,
                'scientific_rigor': scientific_rigor,
                'specificity_level': specificity_level,
            })
            st.success(f"✅ Template '{name}' created")
            st.rerun()
        except RequestValidationError as e:
            st.error(f"❌ {e}")
        except Exception as e:
            logger.error(f"Error creating template: {e}")
            st.error("❌ Template could not be saved")


def show_module_registry():
    registry = get_module_registry()
    kind = st.selectbox("Registry", list(KINDS.keys()), format_func=lambda k: k.replace('_', ' ').title())

    try:
        items = registry.list(kind)[kind]
    except Exception as e:
        logger.error(f"Error listing {kind}: {e}")
        st.error("❌ Registry is unavailable")
        return

    if kind == 'modules' and not items and st.button("🌱 Install Default Modules"):
        created = registry.ensure_defaults()
        st.success(f"✅ Installed {created} modules")
        st.rerun()

    for item in items:
        status = "🟢" if item.get('is_active') else "⚪"
        with st.expander(f"{status} {item.get('name')}"):
            st.caption(item.get('description') or '')
            st.json({k: v for k, v in item.items() if k not in ('id', 'created_at', 'updated_at')},
                    expanded=False)
            col1, col2 = st.columns(2)
            with col1:
                label = "⏸️ Disable" if item.get('is_active') else "▶️ Enable"
                if st.button(label, key=f"{kind}_toggle_{item['id']}", use_container_width=True):
                    if kind == 'modules' and item.get('key'):
                        registry.toggle_module({'module_key': item['key'], 'is_enabled': not item.get('is_active')})
                    else:
                        registry.update(kind, item['id'], {'is_active': not item.get('is_active')})
                    st.rerun()
            with col2:
                if st.button("🗑️ Delete", key=f"{kind}_delete_{item['id']}", use_container_width=True):
                    registry.delete(kind, item['id'])
                    st.rerun()

    with st.form(f"new_{kind}", clear_on_submit=True):
        st.markdown(f"**Add to {kind.replace('_', ' ')}**")
        name = st.text_input("Name")
        description = st.text_input("Description")
        data: Dict[str, Any] = {'name': name, 'description': description}
        if kind == 'modules':
            data['key'] = st.text_input("Module key", help="e.g. water_analysis")
            data['category'] = st.selectbox("Category", list(MODULE_CATEGORIES))
        elif kind == 'reference_sources':
            data['url'] = st.text_input("URL") or None
            data['trust_score'] = st.slider("Trust score", 0.0, 1.0, 0.8)
        submitted = st.form_submit_button("➕ Add")

    if submitted:
        try:
            registry.create(kind, data)
            st.success(f"✅ Added {name}")
            st.rerun()
        except ValueError as e:
            st.error(f"❌ {e}")


def show_usage_analytics():
    days = st.slider("Period (days)", 1, 90, 30)
    try:
        metrics = get_analytics_tracker().get_dashboard_metrics(days=days)
    except Exception as e:
        logger.error(f"Error loading usage analytics: {e}")
        st.error("❌ Usage analytics are unavailable")
        return

    if not metrics['total_events']:
        st.info("No usage events recorded in this period.")
        return

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Events", metrics['total_events'])
    with col2:
        st.metric("Sessions", metrics['unique_sessions'])
    with col3:
        st.metric("Users", metrics['unique_users'])

    st.plotly_chart(create_daily_events_chart(metrics['daily_counts']), use_container_width=True)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Top Events**")
        st.dataframe(counts_frame(metrics['top_events'], 'Event'), use_container_width=True, hide_index=True)
        st.markdown("**Devices**")
        st.dataframe(counts_frame(metrics['device_types'], 'Device'), use_container_width=True, hide_index=True)
    with col2:
        st.markdown("**Top Pages**")
        st.dataframe(counts_frame(metrics['top_pages'], 'Page'), use_container_width=True, hide_index=True)
        st.markdown("**Browsers**")
        st.dataframe(counts_frame(metrics['browsers'], 'Browser'), use_container_width=True, hide_index=True)


def show_cache_stats():
    caches = {'General': cache, 'API Responses': api_cache.cache, 'Search Results': search_cache.cache}
    rows = []
    for name, store in caches.items():
        stats = store.get_stats()
        rows.append({
            'Cache': name,
            'Entries': stats['size'],
            'Capacity': stats['max_size'],
            'Expired': sum(1 for entry in stats['entries'] if entry['expired']),
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("🧹 Remove Expired Entries", use_container_width=True):
            removed = sum(store.cleanup() for store in caches.values())
            st.success(f"✅ Removed {removed} expired entries")
    with col2:
        if st.button("🗑️ Clear All Caches", use_container_width=True):
            for store in caches.values():
                store.clear()
            get_prompt_manager().clear_cache()
            st.success("✅ Caches cleared")


def show_settings():
    """Stored overrides for the AI and retrieval settings"""
    configs = config_manager.get_all_configs()

    for config_type, label in (('ai_config', "🤖 AI"), ('rag_config', "🗂️ Retrieval")):
        current = configs[config_type]
        with st.form(f"settings_{config_type}"):
            st.markdown(f"**{label}**")
            updated = {}
            for key, value in current.items():
                if isinstance(value, bool):
                    updated[key] = st.checkbox(key, value=value)
                elif isinstance(value, int):
                    updated[key] = int(st.number_input(key, value=value, step=1))
                elif isinstance(value, float):
                    updated[key] = st.number_input(key, value=value, format="%.2f")
                else:
                    updated[key] = st.text_input(key, value=str(value))
            col1, col2 = st.columns(2)
            with col1:
                save = st.form_submit_button("💾 Save")
            with col2:
                reset = st.form_submit_button("↩️ Reset to Defaults")

        if save:
            if config_manager.save_config(config_type, updated):
                st.success("✅ Settings saved")
            else:
                st.error("❌ Settings could not be saved")
        elif reset:
            config_manager.reset_to_defaults(config_type)
            st.success("✅ Defaults restored")
            st.rerun()

    with st.expander("📏 MPOB Standards"):
        for sample_type in ('soil', 'leaf'):
            standards = configs['mpob_standards'][f"{sample_type}_standards"]
            st.markdown(f"**{sample_type.title()}**")
            st.dataframe(pd.DataFrame(list(standards.values())), use_container_width=True, hide_index=True)
